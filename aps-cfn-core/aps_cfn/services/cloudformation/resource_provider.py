from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from logging import Logger
from typing import Generic, Optional, TypedDict, TypeVar

from plux import Plugin, PluginManager

from aps_cfn.aws.connect import ServiceLevelClientFactory, connect_to

LOG = logging.getLogger(__name__)

Properties = TypeVar("Properties")


class OperationStatus(Enum):
    PENDING = auto()
    IN_PROGRESS = auto()
    SUCCESS = auto()
    FAILED = auto()


class HandlerErrorCode(str, Enum):
    """Outcome codes reported with a FAILED progress event."""

    InvalidRequest = "InvalidRequest"
    AccessDenied = "AccessDenied"
    NotFound = "NotFound"
    ResourceConflict = "ResourceConflict"
    Throttling = "Throttling"
    ServiceLimitExceeded = "ServiceLimitExceeded"
    GeneralServiceException = "GeneralServiceException"
    InternalFailure = "InternalFailure"
    NotStabilized = "NotStabilized"


@dataclass
class ProgressEvent(Generic[Properties]):
    status: OperationStatus
    resource_model: Optional[Properties] = None
    resource_models: Optional[list[Properties]] = None

    message: str = ""
    error_code: Optional[HandlerErrorCode] = None
    custom_context: dict = field(default_factory=dict)
    callback_delay_seconds: int = 0
    next_token: Optional[str] = None


class Credentials(TypedDict):
    accessKeyId: str
    secretAccessKey: str
    sessionToken: str


class ResourceProviderPayloadRequestData(TypedDict, total=False):
    logicalResourceId: str
    resourceProperties: Properties
    previousResourceProperties: Optional[Properties]
    callerCredentials: Credentials
    systemTags: dict[str, str]
    previousSystemTags: dict[str, str]


class ResourceProviderPayload(TypedDict, total=False):
    callbackContext: dict
    stackId: str
    requestData: ResourceProviderPayloadRequestData
    resourceType: str
    awsAccountId: str
    bearerToken: str
    region: str
    action: str
    nextToken: Optional[str]


def convert_payload(payload: ResourceProviderPayload) -> ResourceRequest[Properties]:
    """
    Converts the handler request of the calling environment into a ``ResourceRequest``.
    Credentials missing from the payload are resolved by the boto session.
    """
    request_data = payload.get("requestData") or {}
    credentials = request_data.get("callerCredentials") or {}
    client_factory = connect_to(
        aws_access_key_id=credentials.get("accessKeyId"),
        aws_session_token=credentials.get("sessionToken"),
        aws_secret_access_key=credentials.get("secretAccessKey"),
        region_name=payload.get("region"),
    )
    resource_type = payload.get("resourceType", "")
    rr = ResourceRequest(
        aws_client_factory=client_factory,
        request_token=payload.get("bearerToken") or str(uuid.uuid4()),
        stack_id=payload.get("stackId", ""),
        account_id=payload.get("awsAccountId", ""),
        region_name=payload.get("region", ""),
        action=payload.get("action", ""),
        desired_state=request_data.get("resourceProperties") or {},
        logical_resource_id=request_data.get("logicalResourceId", ""),
        resource_type=resource_type,
        logger=logging.getLogger(f"aps_cfn.resource.{resource_type.replace('::', '.')}"),
        custom_context=dict(payload.get("callbackContext") or {}),
        system_tags=dict(request_data.get("systemTags") or {}),
        previous_system_tags=dict(request_data.get("previousSystemTags") or {}),
        next_token=payload.get("nextToken"),
    )

    if previous_properties := request_data.get("previousResourceProperties"):
        rr.previous_state = previous_properties

    return rr


@dataclass
class ResourceRequest(Generic[Properties]):
    aws_client_factory: ServiceLevelClientFactory
    request_token: str
    stack_id: str
    account_id: str
    region_name: str
    action: str

    desired_state: Properties

    logical_resource_id: str
    resource_type: str

    logger: Logger

    custom_context: dict = field(default_factory=dict)

    previous_state: Optional[Properties] = None
    system_tags: dict[str, str] = field(default_factory=dict)
    previous_system_tags: dict[str, str] = field(default_factory=dict)
    next_token: Optional[str] = None


class CloudFormationResourceProviderPlugin(Plugin):
    """
    Base class for resource provider plugins.
    """

    namespace = "aps_cfn.cloudformation.resource_providers"


class ResourceProvider(Generic[Properties]):
    """
    This provides a base class onto which service-specific resource providers are built.
    """

    def create(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        raise NotImplementedError

    def read(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        raise NotImplementedError

    def update(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        raise NotImplementedError

    def delete(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        raise NotImplementedError

    def list(self, request: ResourceRequest[Properties]) -> ProgressEvent[Properties]:
        raise NotImplementedError


class NoResourceProvider(Exception):
    pass


def progress_event_to_response(event: ProgressEvent) -> dict:
    """
    Serializes a progress event into the response shape expected by the calling environment. Empty fields are
    left out.
    """
    response = {"status": event.status.name}
    if event.message:
        response["message"] = event.message
    if event.error_code:
        response["errorCode"] = HandlerErrorCode(event.error_code).value
    if event.callback_delay_seconds:
        response["callbackDelaySeconds"] = event.callback_delay_seconds
    if event.custom_context:
        response["callbackContext"] = event.custom_context
    if event.resource_model is not None:
        response["resourceModel"] = event.resource_model
    if event.resource_models is not None:
        response["resourceModels"] = event.resource_models
    if event.next_token is not None:
        response["nextToken"] = event.next_token
    return response


class ResourceProviderExecutor:
    """
    Point of abstraction between the calling environment and the resource providers. Every invocation runs a
    single action once, the caller re-invokes with the returned callback context until a terminal status.
    """

    def invoke(self, raw_payload: ResourceProviderPayload) -> ProgressEvent[Properties]:
        resource_type = raw_payload.get("resourceType", "")
        try:
            resource_provider = self.load_resource_provider(resource_type)
        except NoResourceProvider:
            LOG.warning('No resource provider found for "%s"', resource_type)
            return ProgressEvent(
                status=OperationStatus.FAILED,
                message=f"Unsupported resource type {resource_type}",
                error_code=HandlerErrorCode.InvalidRequest,
            )

        try:
            return self.execute_action(resource_provider, raw_payload)
        except Exception:
            LOG.exception(
                "Unexpected error executing %s on %s",
                raw_payload.get("action"),
                resource_type,
            )
            return ProgressEvent(
                status=OperationStatus.FAILED,
                message="Internal Failure",
                error_code=HandlerErrorCode.InternalFailure,
            )

    def execute_action(
        self, resource_provider: ResourceProvider, raw_payload: ResourceProviderPayload
    ) -> ProgressEvent[Properties]:
        request = convert_payload(raw_payload)

        match request.action.upper():
            case "CREATE":
                return resource_provider.create(request)
            case "READ":
                return resource_provider.read(request)
            case "UPDATE":
                return resource_provider.update(request)
            case "DELETE":
                return resource_provider.delete(request)
            case "LIST":
                return resource_provider.list(request)
            case _:
                return ProgressEvent(
                    status=OperationStatus.FAILED,
                    resource_model=request.desired_state,
                    message=f"Unsupported action {request.action}",
                    error_code=HandlerErrorCode.InvalidRequest,
                )

    def load_resource_provider(self, resource_type: str) -> ResourceProvider:
        try:
            plugin = plugin_manager.load(resource_type)
            return plugin.factory()
        except ValueError:
            # could not find a plugin for that name
            pass
        except Exception:
            LOG.warning(
                "Failed to load resource type %s as a ResourceProvider.",
                resource_type,
                exc_info=LOG.isEnabledFor(logging.DEBUG),
            )

        raise NoResourceProvider


plugin_manager = PluginManager(CloudFormationResourceProviderPlugin.namespace)
