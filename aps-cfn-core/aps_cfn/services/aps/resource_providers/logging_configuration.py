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

LOGGING_CONFIGURATION_STATUS_ACTIVE = "ACTIVE"
LOGGING_CONFIGURATION_FAILED_STATUSES = ("CREATION_FAILED", "UPDATE_FAILED")


def read_logging_configuration(client, model: dict) -> dict:
    """
    Refreshes the ``LoggingConfiguration`` of the model and returns the status of the configuration.
    """
    configuration = client.describe_logging_configuration(workspaceId=model["WorkspaceId"])[
        "loggingConfiguration"
    ]
    model["LoggingConfiguration"] = {"LogGroupArn": configuration.get("logGroupArn")}
    return configuration.get("status") or {}


class LoggingConfigurationStage(Stage):
    config = StageConfig(
        name="logging_configuration",
        active_key="waitForLoggingConfigurationActive",
        deleted_key="waitForLoggingConfigurationDeleted",
        long_wait=True,
    )

    def payload(self, model: Optional[dict]) -> Optional[str]:
        return ((model or {}).get("LoggingConfiguration") or {}).get("LogGroupArn")

    def create(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        try:
            response = self.client.create_logging_configuration(
                workspaceId=model["WorkspaceId"], logGroupArn=self.payload(model).strip()
            )
        except REMOTE_ERRORS as e:
            return failed_event(e, model)
        return self._check_mutation(model, response, "CREATION_FAILED", "creation")

    def _check_mutation(
        self, model: dict, response: dict, failed_status: str, operation: str
    ) -> ProgressEvent:
        status = response.get("status") or {}
        if status.get("statusCode") == failed_status:
            return self.failed_status(
                model, f"logging config {operation} failed due to {status.get('statusReason')}"
            )
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
            status = read_logging_configuration(self.client, model)
        except REMOTE_ERRORS as e:
            if is_not_found(e):
                return ProgressEvent(
                    status=OperationStatus.FAILED,
                    resource_model=model,
                    message="LoggingConfiguration was deleted out-of-band",
                    error_code=HandlerErrorCode.NotFound,
                )
            return failed_event(e, model)

        status_code = status.get("statusCode")
        if status_code in LOGGING_CONFIGURATION_FAILED_STATUSES:
            return self.failed_status(
                model,
                f"Logging configuration status: {status_code}. Reason: {status.get('statusReason')}",
            )
        if status_code != LOGGING_CONFIGURATION_STATUS_ACTIVE:
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
                    response = self.client.update_logging_configuration(
                        workspaceId=model["WorkspaceId"], logGroupArn=self.payload(model).strip()
                    )
                except REMOTE_ERRORS as e:
                    return failed_event(e, model)
                return self._check_mutation(model, response, "UPDATE_FAILED", "update")
            case _:
                return self.advance(model)

    def delete(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        try:
            self.client.delete_logging_configuration(workspaceId=model["WorkspaceId"])
        except REMOTE_ERRORS as e:
            if not is_not_found(e):
                return failed_event(e, model)
            # the removal is only reported once a describe confirms it
            LOG.debug("Logging configuration of %s not found on delete", model["WorkspaceId"])
        return self.wait_for_deleted(model)

    def resume_delete(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        try:
            read_workspace(self.client, model)
        except (*REMOTE_ERRORS, ValueError) as e:
            return failed_event(e, model)

        try:
            self.client.describe_logging_configuration(workspaceId=model["WorkspaceId"])
        except REMOTE_ERRORS as e:
            if is_not_found(e):
                model.pop("LoggingConfiguration", None)
                return self.advance(model, MESSAGE_UPDATE_COMPLETE)
            return failed_event(e, model)
        return self.wait_for_deleted(model)
