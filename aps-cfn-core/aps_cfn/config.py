import logging
import os
from typing import Union

from aps_cfn.constants import FALSE_STRINGS, LOG_LEVELS, TRACE_LOG_LEVELS, TRUE_STRINGS


def eval_log_type(env_var_name: str) -> Union[str, bool]:
    """Get the log type from environment variable"""
    aps_log = os.environ.get(env_var_name, "").lower().strip()
    return aps_log if aps_log in LOG_LEVELS else False


def is_env_true(env_var_name: str) -> bool:
    """Whether the given environment variable has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() in TRUE_STRINGS


def is_env_not_false(env_var_name: str) -> bool:
    """Whether the given environment variable is empty or has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() not in FALSE_STRINGS


def parse_int_env(env_var_name: str, default: int) -> int:
    """Parse a positive integer from the given env variable, falling back to the default."""
    value = os.environ.get(env_var_name, "").strip()
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        logging.getLogger(__name__).warning(
            "Ignoring non-numeric value %r of %s, using %s", value, env_var_name, default
        )
        return default
    return parsed if parsed > 0 else default


# whether to enable verbose debug logging
APS_LOG = eval_log_type("APS_LOG")
DEBUG = is_env_true("DEBUG") or APS_LOG in TRACE_LOG_LEVELS

# log translated remote errors including their stack trace
APS_VERBOSE_ERRORS = is_env_true("APS_VERBOSE_ERRORS")

# callback delay hints (in seconds) returned with IN_PROGRESS events. The short delay is used while
# waiting on the workspace itself, the long one for the attached configurations and for deletion.
CALLBACK_DELAY_SHORT = parse_int_env("APS_CALLBACK_DELAY_SHORT", 2)
CALLBACK_DELAY_LONG = parse_int_env("APS_CALLBACK_DELAY_LONG", 10)

# endpoint override for the prometheus service API, e.g., to run against an emulator
APS_ENDPOINT_URL = os.environ.get("APS_ENDPOINT_URL", "").strip() or None

# the calling environment owns the retry cadence, so botocore's own retries are off by default
DISABLE_BOTO_RETRIES = is_env_not_false("APS_DISABLE_BOTO_RETRIES")


def is_trace_logging_enabled():
    if APS_LOG:
        log_level = str(APS_LOG).upper()
        return log_level.lower() in TRACE_LOG_LEVELS
    return False


# set log levels immediately, but will be overwritten later by setup_logging
if DEBUG:
    logging.getLogger("").setLevel(logging.DEBUG)
    logging.getLogger("aps_cfn").setLevel(logging.DEBUG)
