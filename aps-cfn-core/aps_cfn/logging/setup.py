import logging
import sys
import warnings

from aps_cfn import config, constants

from .format import AddFormattedAttributes, DefaultFormatter

# default levels of third party loggers, the provider loggers follow the configured level

default_log_levels = {
    "boto3": logging.WARNING,
    "botocore": logging.ERROR,
    "plux": logging.WARNING,
    "s3transfer": logging.WARNING,
    "urllib3": logging.WARNING,
}

trace_log_levels = {
    "botocore": logging.DEBUG,
    "aps_cfn.aws.connect": logging.DEBUG,
}


def setup_logging_for_cli(log_level=logging.INFO):
    logging.basicConfig(level=log_level)

    # set log levels of loggers
    logging.root.setLevel(log_level)
    logging.getLogger("aps_cfn").setLevel(log_level)
    for logger, level in default_log_levels.items():
        logging.getLogger(logger).setLevel(level)


def get_log_level_from_config():
    # overriding the log level if APS_LOG has been set
    if config.APS_LOG:
        log_level = str(config.APS_LOG).upper()
        if log_level.lower() in constants.TRACE_LOG_LEVELS:
            log_level = "DEBUG"
        if log_level == "WARN":
            log_level = "WARNING"
        return logging.getLevelName(log_level)

    return logging.DEBUG if config.DEBUG else logging.INFO


def setup_logging_from_config():
    log_level = get_log_level_from_config()
    setup_logging(log_level)

    if config.is_trace_logging_enabled():
        for name, level in trace_log_levels.items():
            logging.getLogger(name).setLevel(level)


def create_default_handler(log_level: int):
    log_handler = logging.StreamHandler(stream=sys.stderr)
    log_handler.setLevel(log_level)
    log_handler.setFormatter(DefaultFormatter())
    log_handler.addFilter(AddFormattedAttributes())
    return log_handler


def setup_logging(log_level=logging.INFO) -> None:
    """
    Configures the python logging environment for the resource providers.

    :param log_level: the optional log level.
    """
    log_handler = create_default_handler(log_level)

    # replace any existing handlers
    logging.basicConfig(level=log_level, handlers=[log_handler], force=True)

    # botocore emits deprecation warnings for every client creation
    warnings.filterwarnings("ignore", module="botocore")
    logging.captureWarnings(True)

    # set log levels of loggers
    logging.root.setLevel(log_level)
    logging.getLogger("aps_cfn").setLevel(log_level)
    for logger, level in default_log_levels.items():
        logging.getLogger(logger).setLevel(level)
