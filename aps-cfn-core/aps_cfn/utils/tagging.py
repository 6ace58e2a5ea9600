from typing import Dict, List, Optional, Tuple


def tag_list_to_map(tags: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    """Converts a ``[{"Key": .., "Value": ..}]`` list into a dict."""
    return {tag["Key"]: tag.get("Value") for tag in tags or []}


def tag_map_to_list(tags: Optional[Dict[str, str]]) -> List[Dict[str, str]]:
    return [{"Key": key, "Value": value} for key, value in (tags or {}).items()]


def tag_map_difference(
    current: Optional[Dict[str, Optional[str]]], previous: Optional[Dict[str, Optional[str]]]
) -> Tuple[Dict[str, Optional[str]], List[str]]:
    """
    Computes which tags have to be set and which have to be removed to get from ``previous`` to ``current``.

    A key whose value changed (including a change from ``None`` to a value or back) is in the first result,
    a key that only exists in ``previous`` is in the second. Keys with equal values are in neither.

    :param current: the desired tags
    :param previous: the tags applied before
    :return: a tuple of (tags to add or change, keys to remove)
    """
    current = current or {}
    previous = previous or {}

    to_change = {
        key: value
        for key, value in current.items()
        if key not in previous or previous[key] != value
    }
    to_remove = [key for key in previous if key not in current]
    return to_change, to_remove


def merge_system_tags(
    tags: Optional[Dict[str, str]], system_tags: Optional[Dict[str, str]]
) -> Dict[str, str]:
    """Returns the resource tags merged over the system tags, the resource tags take precedence."""
    result = dict(system_tags or {})
    result.update(tags or {})
    return result
