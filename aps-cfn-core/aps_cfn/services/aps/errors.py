"""
Translation of errors raised while talking to the prometheus service into FAILED progress events.

Remote errors are mapped by their botocore error code, everything the mapping does not know about is reported as
a generic internal failure so no internal details leak to the caller.
"""
import logging
from enum import Enum
from typing import Optional

from botocore.exceptions import ClientError, ParamValidationError

from aps_cfn import config
from aps_cfn.services.cloudformation.resource_provider import (
    HandlerErrorCode,
    OperationStatus,
    ProgressEvent,
)
from aps_cfn.utils.aws.arns import MalformedIdentifier, UnsupportedKind

LOG = logging.getLogger(__name__)

MESSAGE_INTERNAL_FAILURE = "Internal Failure"
MESSAGE_RATE_LIMIT_EXCEEDED = "API rate limit exceeded"

NOT_FOUND_ERROR_CODES = ("ResourceNotFoundException", "NotFoundException")

# errors raised by a call of the prometheus client, the parameter validation happens before sending the request
REMOTE_ERRORS = (ClientError, ParamValidationError)


class MissingRequiredField(ValueError):
    """Raised if a property the operation depends on is absent from the resource model."""

    def __init__(self, field_name: str, message: str = None):
        super().__init__(message or f"Missing required property {field_name}")
        self.field_name = field_name


class ErrorKind(Enum):
    MalformedIdentifier = "MalformedIdentifier"
    UnsupportedKind = "UnsupportedKind"
    MissingRequiredField = "MissingRequiredField"
    RemoteTransient = "RemoteTransient"
    RemoteNotFound = "RemoteNotFound"
    RemoteAccessDenied = "RemoteAccessDenied"
    RemoteConflict = "RemoteConflict"
    RemoteQuotaExceeded = "RemoteQuotaExceeded"
    RemoteValidation = "RemoteValidation"
    RemoteUnhandled = "RemoteUnhandled"


REMOTE_ERROR_KINDS = {
    "BadRequestException": ErrorKind.RemoteValidation,
    "InvalidParameter": ErrorKind.RemoteValidation,
    "InvalidRequest": ErrorKind.RemoteValidation,
    "ValidationException": ErrorKind.RemoteValidation,
    "TooManyRequestsException": ErrorKind.RemoteTransient,
    "ThrottlingException": ErrorKind.RemoteTransient,
    "NotFoundException": ErrorKind.RemoteNotFound,
    "ResourceNotFoundException": ErrorKind.RemoteNotFound,
    "AccessDeniedException": ErrorKind.RemoteAccessDenied,
    "ConflictException": ErrorKind.RemoteConflict,
    "ServiceQuotaExceededException": ErrorKind.RemoteQuotaExceeded,
}

HANDLER_ERROR_CODES = {
    ErrorKind.MalformedIdentifier: HandlerErrorCode.NotFound,
    ErrorKind.UnsupportedKind: HandlerErrorCode.NotFound,
    ErrorKind.MissingRequiredField: HandlerErrorCode.NotFound,
    ErrorKind.RemoteTransient: HandlerErrorCode.Throttling,
    ErrorKind.RemoteNotFound: HandlerErrorCode.NotFound,
    ErrorKind.RemoteAccessDenied: HandlerErrorCode.AccessDenied,
    ErrorKind.RemoteConflict: HandlerErrorCode.ResourceConflict,
    ErrorKind.RemoteQuotaExceeded: HandlerErrorCode.ServiceLimitExceeded,
    ErrorKind.RemoteValidation: HandlerErrorCode.InvalidRequest,
    ErrorKind.RemoteUnhandled: HandlerErrorCode.GeneralServiceException,
}


def get_error_code(exc: Exception) -> Optional[str]:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def is_not_found(exc: Exception) -> bool:
    return get_error_code(exc) in NOT_FOUND_ERROR_CODES


def classify_error(exc: Exception) -> ErrorKind:
    if isinstance(exc, MalformedIdentifier):
        return ErrorKind.MalformedIdentifier
    if isinstance(exc, UnsupportedKind):
        return ErrorKind.UnsupportedKind
    if isinstance(exc, MissingRequiredField):
        return ErrorKind.MissingRequiredField
    if isinstance(exc, ParamValidationError):
        return ErrorKind.RemoteValidation
    return REMOTE_ERROR_KINDS.get(get_error_code(exc), ErrorKind.RemoteUnhandled)


def _error_message(exc: Exception, kind: ErrorKind) -> str:
    if isinstance(exc, ParamValidationError):
        # the caller shows the message in a single line
        message = str(exc).replace("\n", " ")
        return f"InvalidParameter: {' '.join(message.split())}"
    if not isinstance(exc, ClientError):
        return str(exc)

    code = get_error_code(exc)
    if code == "TooManyRequestsException":
        message = MESSAGE_RATE_LIMIT_EXCEEDED
    else:
        message = exc.response.get("Error", {}).get("Message") or ""
    return f"{code}: {message}"


def failed_event(
    exc: Exception, model=None, error_code: Optional[HandlerErrorCode] = None
) -> ProgressEvent:
    """
    Builds the FAILED progress event for the given error.

    :param exc: the error raised by the remote call or by the local validation
    :param model: the resource model returned with the event
    :param error_code: overrides the handler error code derived from the error
    :return: the terminal progress event
    """
    kind = classify_error(exc)
    if config.APS_VERBOSE_ERRORS:
        LOG.info("Translating error of kind %s", kind.value, exc_info=exc)

    if kind == ErrorKind.RemoteUnhandled:
        LOG.warning("Unhandled error: %s", exc, exc_info=LOG.isEnabledFor(logging.DEBUG))
        return ProgressEvent(
            status=OperationStatus.FAILED,
            resource_model=model,
            message=MESSAGE_INTERNAL_FAILURE,
            error_code=error_code or HandlerErrorCode.GeneralServiceException,
        )

    return ProgressEvent(
        status=OperationStatus.FAILED,
        resource_model=model,
        message=_error_message(exc, kind),
        error_code=error_code or HANDLER_ERROR_CODES[kind],
    )
