import logging

from aps_cfn import config
from aps_cfn.services.aps.errors import REMOTE_ERRORS, failed_event, is_not_found
from aps_cfn.services.aps.resource_providers.callback_context import is_fresh
from aps_cfn.services.aps.resource_providers.stages import (
    MESSAGE_CREATE_COMPLETE,
    MESSAGE_DELETE_COMPLETE,
    MESSAGE_UPDATE_COMPLETE,
    Stage,
    StageConfig,
)
from aps_cfn.services.cloudformation.resource_provider import (
    OperationStatus,
    ProgressEvent,
    ResourceRequest,
)
from aps_cfn.utils.aws.arns import parse_aps_arn
from aps_cfn.utils.tagging import (
    merge_system_tags,
    tag_list_to_map,
    tag_map_difference,
    tag_map_to_list,
)

LOG = logging.getLogger(__name__)

WORKSPACE_STATUS_ACTIVE = "ACTIVE"
WORKSPACE_FAILED_STATUSES = ("CREATION_FAILED",)


def read_workspace(client, model: dict) -> str:
    """
    Refreshes the workspace properties of the model from the service.

    :param client: the amp client
    :param model: the resource model, must contain the workspace ``Arn``
    :return: the status code of the workspace
    :raises MalformedIdentifier: if the ARN of the model cannot be parsed
    :raises ClientError: if the workspace cannot be described
    """
    workspace_id = parse_aps_arn(model.get("Arn")).resource_id
    workspace = client.describe_workspace(workspaceId=workspace_id)["workspace"]

    model["WorkspaceId"] = workspace_id
    model["Arn"] = workspace.get("arn", model["Arn"])
    if endpoint := workspace.get("prometheusEndpoint"):
        model["PrometheusEndpoint"] = endpoint
    if "alias" in workspace:
        model["Alias"] = workspace["alias"]
    else:
        model.pop("Alias", None)
    model["Tags"] = tag_map_to_list(workspace.get("tags"))

    return workspace.get("status", {}).get("statusCode")


class WorkspaceStage(Stage):
    """The workspace itself, always the first stage. It is created only on a fresh callback context."""

    config = StageConfig(name="workspace", active_key="Arn")

    def should_create(self, request: ResourceRequest) -> bool:
        return is_fresh(request.custom_context)

    def create(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        params = {"tags": merge_system_tags(tag_list_to_map(model.get("Tags")), request.system_tags)}
        if alias := model.get("Alias"):
            params["alias"] = alias

        try:
            response = self.client.create_workspace(**params)
        except REMOTE_ERRORS as e:
            return failed_event(e, model)

        model["Arn"] = response["arn"]
        model["WorkspaceId"] = response["workspaceId"]
        LOG.debug("Created workspace %s", model["WorkspaceId"])
        return self.wait_for_active(model)

    def resume_create(self, request: ResourceRequest) -> ProgressEvent:
        return self._wait_until_active(request.desired_state, MESSAGE_CREATE_COMPLETE)

    def resume_update(self, request: ResourceRequest) -> ProgressEvent:
        return self._wait_until_active(request.desired_state, MESSAGE_UPDATE_COMPLETE)

    def _wait_until_active(self, model: dict, success_message: str) -> ProgressEvent:
        try:
            status = read_workspace(self.client, model)
        except (*REMOTE_ERRORS, ValueError) as e:
            return failed_event(e, model)

        if status == WORKSPACE_STATUS_ACTIVE:
            return self.advance(model, success_message)
        if status in WORKSPACE_FAILED_STATUSES:
            return self.failed_status(model, f"Workspace status: {status}")
        return self.wait_for_active(model)

    def update(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        previous = request.previous_state or {}
        workspace_id = model["WorkspaceId"]
        changed = False

        try:
            if model.get("Alias") != previous.get("Alias"):
                params = {"workspaceId": workspace_id}
                if model.get("Alias") is not None:
                    params["alias"] = model["Alias"]
                self.client.update_workspace_alias(**params)
                changed = True

            to_change, to_remove = tag_map_difference(
                merge_system_tags(tag_list_to_map(model.get("Tags")), request.system_tags),
                merge_system_tags(
                    tag_list_to_map(previous.get("Tags")), request.previous_system_tags
                ),
            )
            if to_remove:
                self.client.untag_resource(resourceArn=model["Arn"], tagKeys=to_remove)
                changed = True
            if to_change:
                self.client.tag_resource(resourceArn=model["Arn"], tags=to_change)
                changed = True
        except REMOTE_ERRORS as e:
            return failed_event(e, model)

        if not changed:
            return self.advance(model)
        return self.wait_for_active(model)

    def delete(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        try:
            self.client.delete_workspace(workspaceId=model["WorkspaceId"])
        except REMOTE_ERRORS as e:
            if is_not_found(e):
                LOG.debug("Workspace %s is already gone", model["WorkspaceId"])
                return ProgressEvent(status=OperationStatus.SUCCESS, message=MESSAGE_DELETE_COMPLETE)
            return failed_event(e, model)

        # the service removes the attached configurations together with the workspace
        return self.wait_for_deleted(model)

    def resume_delete(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        try:
            read_workspace(self.client, model)
        except REMOTE_ERRORS as e:
            if is_not_found(e):
                return ProgressEvent(status=OperationStatus.SUCCESS, message=MESSAGE_DELETE_COMPLETE)
            return failed_event(e, model)
        except ValueError as e:
            return failed_event(e, model)
        return self.wait_for_deleted(model)

    def wait_for_deleted(self, model: dict) -> ProgressEvent:
        # deletion is polled through the same marker, with the long delay
        event = self.wait_for(model, self.config.active_key)
        event.callback_delay_seconds = config.CALLBACK_DELAY_LONG
        return event
