"""
Helpers to build and read the callback context that is handed back to the caller with every IN_PROGRESS event.

A context holds at most one wait marker (``{<wait key>: <workspace arn>}``) plus the index of the stage that set
it. An empty context means the operation has not started yet.
"""
from typing import Optional

STAGE_KEY = "stage"


def build_wait_context(key: str, identifier: Optional[str]) -> dict:
    return {key: identifier or ""}


def add_stage_marker(context: dict, stage: int) -> dict:
    """Returns a copy of the context that also records the given stage index."""
    return {**(context or {}), STAGE_KEY: stage}


def get_stage(context: Optional[dict]) -> int:
    try:
        stage = int((context or {}).get(STAGE_KEY, 0))
    except (TypeError, ValueError):
        return 0
    return max(stage, 0)


def has_wait_marker(context: Optional[dict], key: str) -> bool:
    return key in (context or {})


def get_wait_identifier(context: Optional[dict], key: str) -> Optional[str]:
    return (context or {}).get(key)


def is_fresh(context: Optional[dict]) -> bool:
    """Whether the context carries no progress from a previous invocation."""
    return not any(key != STAGE_KEY for key in context or {})
