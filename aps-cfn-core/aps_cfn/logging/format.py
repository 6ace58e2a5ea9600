"""Tools for formatting provider logs."""
import logging
from functools import lru_cache

MAX_NAME_LEN = 30

LOG_FORMAT = f"%(asctime)s.%(msecs)03d %(aps_level)5s --- %(aps_name)-{MAX_NAME_LEN}s : %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

CUSTOM_LEVEL_NAMES = {
    50: "FATAL",
    40: "ERROR",
    30: "WARN",
    20: "INFO",
    10: "DEBUG",
}


class DefaultFormatter(logging.Formatter):
    """
    A formatter that uses ``LOG_FORMAT`` and ``LOG_DATE_FORMAT``.
    """

    def __init__(self, fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT):
        super().__init__(fmt=fmt, datefmt=datefmt)


class AddFormattedAttributes(logging.Filter):
    """
    Filter that adds two attributes to a log record:

    - aps_level: the abbreviated loglevel that's max 5 characters long
    - aps_name: the abbreviated name of the logger (e.g., `a.s.a.resource_providers.stages`), trimmed to
      ``MAX_NAME_LEN``
    """

    def __init__(self, max_name_len: int = None):
        super().__init__()
        self.max_name_len = max_name_len if max_name_len else MAX_NAME_LEN

    def filter(self, record):
        record.aps_level = CUSTOM_LEVEL_NAMES.get(record.levelno, record.levelname)
        record.aps_name = self._get_compressed_logger_name(record.name)
        return True

    @lru_cache(maxsize=256)
    def _get_compressed_logger_name(self, name):
        return compress_logger_name(name, self.max_name_len)


def compress_logger_name(name: str, length: int) -> str:
    """
    Shortens a dotted logger name by collapsing its leading parts to their first letter, from the left, until
    the name fits into ``length``. ``aps_cfn.services.aps.resource_providers`` with length=30 turns into
    ``a.s.aps.resource_providers``. The last part is cut from the left if even that does not fit.

    :param name: the logger name
    :param length: the max length of the logger name
    :return: the compressed name
    """
    if len(name) <= length:
        return name

    parts = name.split(".")
    for i in range(len(parts) - 1):
        parts[i] = parts[i][0]
        compressed = ".".join(parts)
        if len(compressed) <= length:
            return compressed

    compressed = ".".join(parts)
    return compressed[-length:]
