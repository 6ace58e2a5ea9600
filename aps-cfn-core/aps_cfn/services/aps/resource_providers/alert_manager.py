import logging
from typing import Optional

from aps_cfn.services.aps.errors import REMOTE_ERRORS, failed_event, is_not_found
from aps_cfn.services.aps.resource_providers.stages import (
    MESSAGE_CREATE_COMPLETE,
    MESSAGE_UPDATE_COMPLETE,
    Stage,
    StageConfig,
    UpdateIntent,
    derive_update_intent,
)
from aps_cfn.services.aps.resource_providers.workspace import read_workspace
from aps_cfn.services.cloudformation.resource_provider import (
    HandlerErrorCode,
    OperationStatus,
    ProgressEvent,
    ResourceRequest,
)

LOG = logging.getLogger(__name__)

ALERT_MANAGER_STATUS_ACTIVE = "ACTIVE"
ALERT_MANAGER_FAILED_STATUSES = ("CREATION_FAILED", "UPDATE_FAILED")


def read_alert_manager_definition(client, model: dict) -> dict:
    """
    Refreshes the ``AlertManagerDefinition`` of the model and returns the status of the definition.
    """
    definition = client.describe_alert_manager_definition(workspaceId=model["WorkspaceId"])[
        "alertManagerDefinition"
    ]
    data = definition.get("data") or b""
    model["AlertManagerDefinition"] = data.decode("utf-8") if isinstance(data, bytes) else data
    return definition.get("status") or {}


class AlertManagerStage(Stage):
    config = StageConfig(
        name="alert_manager",
        active_key="waitForAlertManagerActive",
        deleted_key="waitForAlertManagerDeleted",
        long_wait=True,
    )

    def payload(self, model: Optional[dict]) -> Optional[str]:
        return (model or {}).get("AlertManagerDefinition")

    def create(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        try:
            self.client.create_alert_manager_definition(
                workspaceId=model["WorkspaceId"], data=self.payload(model).encode("utf-8")
            )
        except REMOTE_ERRORS as e:
            return failed_event(e, model)
        return self.wait_for_active(model)

    def resume_create(self, request: ResourceRequest) -> ProgressEvent:
        return self._wait_until_active(request.desired_state, MESSAGE_CREATE_COMPLETE)

    def resume_update(self, request: ResourceRequest) -> ProgressEvent:
        return self._wait_until_active(request.desired_state, MESSAGE_UPDATE_COMPLETE)

    def _wait_until_active(self, model: dict, success_message: str) -> ProgressEvent:
        try:
            read_workspace(self.client, model)
        except (*REMOTE_ERRORS, ValueError) as e:
            return failed_event(e, model)

        try:
            status = read_alert_manager_definition(self.client, model)
        except REMOTE_ERRORS as e:
            if is_not_found(e):
                return ProgressEvent(
                    status=OperationStatus.FAILED,
                    resource_model=model,
                    message="AlertManagerDefinition was deleted out-of-band",
                    error_code=HandlerErrorCode.NotFound,
                )
            return failed_event(e, model)

        status_code = status.get("statusCode")
        if status_code in ALERT_MANAGER_FAILED_STATUSES:
            return self.failed_status(
                model,
                f"AlertManagerDefinition status: {status_code}. Reason: {status.get('statusReason')}",
            )
        if status_code != ALERT_MANAGER_STATUS_ACTIVE:
            return self.wait_for_active(model)
        return self.advance(model, success_message)

    def update(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        intent = derive_update_intent(self.payload(model), self.payload(request.previous_state))

        match intent:
            case UpdateIntent.CREATE:
                return self.create(request)
            case UpdateIntent.DELETE:
                return self.delete(request)
            case UpdateIntent.MODIFY:
                try:
                    self.client.put_alert_manager_definition(
                        workspaceId=model["WorkspaceId"], data=self.payload(model).encode("utf-8")
                    )
                except REMOTE_ERRORS as e:
                    return failed_event(e, model)
                return self.wait_for_active(model)
            case _:
                return self.advance(model)

    def delete(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        try:
            self.client.delete_alert_manager_definition(workspaceId=model["WorkspaceId"])
        except REMOTE_ERRORS as e:
            if is_not_found(e):
                LOG.debug("Alert manager definition of %s is already gone", model["WorkspaceId"])
                model.pop("AlertManagerDefinition", None)
                return self.advance(model)
            return failed_event(e, model)
        return self.wait_for_deleted(model)

    def resume_delete(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        try:
            read_workspace(self.client, model)
        except (*REMOTE_ERRORS, ValueError) as e:
            return failed_event(e, model)

        try:
            self.client.describe_alert_manager_definition(workspaceId=model["WorkspaceId"])
        except REMOTE_ERRORS as e:
            if is_not_found(e):
                model.pop("AlertManagerDefinition", None)
                return self.advance(model, MESSAGE_UPDATE_COMPLETE)
            return failed_event(e, model)
        return self.wait_for_deleted(model)
