import logging
from typing import Optional, TypedDict

from aps_cfn.services.aps.errors import REMOTE_ERRORS, failed_event, is_not_found
from aps_cfn.services.aps.resource_providers.alert_manager import (
    AlertManagerStage,
    read_alert_manager_definition,
)
from aps_cfn.services.aps.resource_providers.callback_context import (
    get_wait_identifier,
    has_wait_marker,
    is_fresh,
)
from aps_cfn.services.aps.resource_providers.logging_configuration import (
    LoggingConfigurationStage,
    read_logging_configuration,
)
from aps_cfn.services.aps.resource_providers.stages import (
    MESSAGE_LIST_COMPLETE,
    MESSAGE_READ_COMPLETE,
    StagePipeline,
)
from aps_cfn.services.aps.resource_providers.workspace import WorkspaceStage, read_workspace
from aps_cfn.services.cloudformation.resource_provider import (
    HandlerErrorCode,
    OperationStatus,
    ProgressEvent,
    ResourceProvider,
    ResourceRequest,
)
from aps_cfn.utils.aws.arns import (
    InvalidArnException,
    UnsupportedKind,
    extract_resource_id_from_arn,
)
from aps_cfn.utils.tagging import tag_map_to_list

LOG = logging.getLogger(__name__)


class LoggingConfiguration(TypedDict, total=False):
    LogGroupArn: Optional[str]


class Tag(TypedDict):
    Key: str
    Value: str


class APSWorkspaceProperties(TypedDict, total=False):
    Alias: Optional[str]
    AlertManagerDefinition: Optional[str]
    Arn: Optional[str]
    LoggingConfiguration: Optional[LoggingConfiguration]
    PrometheusEndpoint: Optional[str]
    Tags: Optional[list[Tag]]
    WorkspaceId: Optional[str]


def _failed(message: str, error_code: HandlerErrorCode) -> ProgressEvent:
    return ProgressEvent(status=OperationStatus.FAILED, message=message, error_code=error_code)


class APSWorkspaceProvider(ResourceProvider[APSWorkspaceProperties]):
    TYPE = "AWS::APS::Workspace"

    @staticmethod
    def pipeline(client) -> StagePipeline:
        # the attached configurations need an ACTIVE workspace
        return StagePipeline(
            [WorkspaceStage(client), AlertManagerStage(client), LoggingConfigurationStage(client)]
        )

    def create(
        self,
        request: ResourceRequest[APSWorkspaceProperties],
    ) -> ProgressEvent[APSWorkspaceProperties]:
        """
        Create a new workspace together with its alert manager definition and logging configuration.

        Primary identifier: /properties/Arn
        Read-only properties: WorkspaceId, Arn, PrometheusEndpoint
        """
        model = request.desired_state
        if model.get("WorkspaceId") is not None and is_fresh(request.custom_context):
            return _failed(
                "Invalid Create: cannot create a resource using readOnly workspaceId property",
                HandlerErrorCode.InvalidRequest,
            )

        return self.pipeline(request.aws_client_factory.amp).create(request)

    def read(
        self,
        request: ResourceRequest[APSWorkspaceProperties],
    ) -> ProgressEvent[APSWorkspaceProperties]:
        model = request.desired_state
        if not model.get("Arn"):
            return _failed("Invalid Read: workspace Arn cannot be empty", HandlerErrorCode.NotFound)

        client = request.aws_client_factory.amp
        try:
            read_workspace(client, model)
        except (*REMOTE_ERRORS, InvalidArnException, UnsupportedKind) as e:
            return failed_event(e, model)

        # attached configurations that do not exist are simply not part of the model
        for reader, key in (
            (read_alert_manager_definition, "AlertManagerDefinition"),
            (read_logging_configuration, "LoggingConfiguration"),
        ):
            try:
                reader(client, model)
            except REMOTE_ERRORS as e:
                if not is_not_found(e):
                    return failed_event(e, model)
                LOG.debug("Workspace %s has no %s", model.get("WorkspaceId"), key)
                model.pop(key, None)

        return ProgressEvent(
            status=OperationStatus.SUCCESS, resource_model=model, message=MESSAGE_READ_COMPLETE
        )

    def update(
        self,
        request: ResourceRequest[APSWorkspaceProperties],
    ) -> ProgressEvent[APSWorkspaceProperties]:
        model = request.desired_state
        if not model.get("Arn"):
            return _failed("Invalid Update: workspace ARN cannot be empty", HandlerErrorCode.NotFound)

        if not (workspace_id := extract_resource_id_from_arn(model["Arn"])):
            return _failed("Invalid Update: invalid workspace ARN format", HandlerErrorCode.NotFound)
        model["WorkspaceId"] = workspace_id

        return self.pipeline(request.aws_client_factory.amp).update(request)

    def delete(
        self,
        request: ResourceRequest[APSWorkspaceProperties],
    ) -> ProgressEvent[APSWorkspaceProperties]:
        model = request.desired_state
        if not model.get("Arn"):
            return _failed("Invalid Delete: workspace ARN cannot be empty", HandlerErrorCode.NotFound)

        stage = WorkspaceStage(request.aws_client_factory.amp)
        if has_wait_marker(request.custom_context, stage.config.active_key):
            model["Arn"] = get_wait_identifier(request.custom_context, stage.config.active_key)
            return stage.resume_delete(request)

        if not (workspace_id := extract_resource_id_from_arn(model["Arn"])):
            return _failed("Invalid Delete: invalid workspace ARN format", HandlerErrorCode.NotFound)
        model["WorkspaceId"] = workspace_id

        return stage.delete(request)

    def list(
        self,
        request: ResourceRequest[APSWorkspaceProperties],
    ) -> ProgressEvent[APSWorkspaceProperties]:
        params = {}
        if request.next_token:
            params["nextToken"] = request.next_token

        try:
            response = request.aws_client_factory.amp.list_workspaces(**params)
        except REMOTE_ERRORS as e:
            return failed_event(e)

        models = [
            APSWorkspaceProperties(
                WorkspaceId=workspace.get("workspaceId"),
                Alias=workspace.get("alias"),
                Arn=workspace.get("arn"),
                Tags=tag_map_to_list(workspace.get("tags")),
            )
            for workspace in response.get("workspaces", [])
        ]
        return ProgressEvent(
            status=OperationStatus.SUCCESS,
            resource_models=models,
            message=MESSAGE_LIST_COMPLETE,
            next_token=response.get("nextToken") or "",
        )
