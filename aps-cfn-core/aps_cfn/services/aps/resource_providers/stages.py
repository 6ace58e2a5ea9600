"""
The staged lifecycle of a workspace.

A create or update is a fixed, ordered list of stages (the workspace itself, then the configurations attached to
it). Each stage is a small state machine against the prometheus service that either completes right away, or
issues an asynchronous mutation and asks to be polled again. The ``StagePipeline`` runs the stages in order,
starting from the stage recorded in the callback context, and stops at the first stage that has to wait.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from aps_cfn import config
from aps_cfn.services.aps.resource_providers.callback_context import (
    add_stage_marker,
    build_wait_context,
    get_stage,
    get_wait_identifier,
    has_wait_marker,
)
from aps_cfn.services.cloudformation.resource_provider import (
    HandlerErrorCode,
    OperationStatus,
    ProgressEvent,
    ResourceRequest,
)

LOG = logging.getLogger(__name__)

MESSAGE_IN_PROGRESS = "In Progress"
MESSAGE_CREATE_COMPLETE = "Create Completed"
MESSAGE_UPDATE_COMPLETE = "Update Completed"
MESSAGE_DELETE_COMPLETE = "Delete Complete"
MESSAGE_READ_COMPLETE = "Read Complete"
MESSAGE_LIST_COMPLETE = "List complete"


@dataclass(frozen=True)
class StageConfig:
    name: str
    # wait key of "poll until the sub-resource is active"
    active_key: str
    # wait key of "poll until the sub-resource is gone", stages without an in-place delete have none
    deleted_key: Optional[str] = None
    long_wait: bool = False

    @property
    def callback_delay_seconds(self) -> int:
        return config.CALLBACK_DELAY_LONG if self.long_wait else config.CALLBACK_DELAY_SHORT


class UpdateIntent(Enum):
    NONE = "none"
    CREATE = "create"
    DELETE = "delete"
    MODIFY = "modify"


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def derive_update_intent(desired: Any, previous: Any) -> UpdateIntent:
    """
    Derives what has to happen to a sub-resource given its desired and its previous payload. Blank payloads
    count as absent.
    """
    desired_present = not is_blank(desired)
    previous_present = not is_blank(previous)

    if desired_present and not previous_present:
        return UpdateIntent.CREATE
    if previous_present and not desired_present:
        return UpdateIntent.DELETE
    if desired_present and desired != previous:
        return UpdateIntent.MODIFY
    return UpdateIntent.NONE


class Stage(ABC):
    """
    State machine of a single sub-resource of the workspace.

    ``handle_create`` and ``handle_update`` dispatch on the callback context: a wait marker owned by this stage
    resumes polling, otherwise the stage decides which mutation to issue. A SUCCESS event lets the pipeline
    continue with the next stage, IN_PROGRESS suspends the pipeline and FAILED ends it.
    """

    config: StageConfig

    def __init__(self, client):
        self.client = client

    def handle_create(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        if has_wait_marker(request.custom_context, self.config.active_key):
            self._restore_identifier(model, request.custom_context, self.config.active_key)
            return self.resume_create(request)
        if self.should_create(request):
            return self.create(request)
        return self.advance(model)

    def handle_update(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        context = request.custom_context
        if has_wait_marker(context, self.config.active_key):
            self._restore_identifier(model, context, self.config.active_key)
            return self.resume_update(request)
        if self.config.deleted_key and has_wait_marker(context, self.config.deleted_key):
            self._restore_identifier(model, context, self.config.deleted_key)
            return self.resume_delete(request)
        return self.update(request)

    @staticmethod
    def _restore_identifier(model: dict, context: dict, key: str):
        if identifier := get_wait_identifier(context, key):
            model["Arn"] = identifier

    def payload(self, model: Optional[dict]) -> Any:
        """Returns the part of the model this stage manages."""
        return None

    def should_create(self, request: ResourceRequest) -> bool:
        return not is_blank(self.payload(request.desired_state))

    @abstractmethod
    def create(self, request: ResourceRequest) -> ProgressEvent:
        pass

    @abstractmethod
    def resume_create(self, request: ResourceRequest) -> ProgressEvent:
        pass

    @abstractmethod
    def update(self, request: ResourceRequest) -> ProgressEvent:
        pass

    def resume_update(self, request: ResourceRequest) -> ProgressEvent:
        return self.resume_create(request)

    @abstractmethod
    def delete(self, request: ResourceRequest) -> ProgressEvent:
        pass

    @abstractmethod
    def resume_delete(self, request: ResourceRequest) -> ProgressEvent:
        pass

    # event helpers

    def advance(self, model: dict, message: str = "") -> ProgressEvent:
        return ProgressEvent(status=OperationStatus.SUCCESS, resource_model=model, message=message)

    def wait_for(self, model: dict, key: str) -> ProgressEvent:
        return ProgressEvent(
            status=OperationStatus.IN_PROGRESS,
            resource_model=model,
            message=MESSAGE_IN_PROGRESS,
            callback_delay_seconds=self.config.callback_delay_seconds,
            custom_context=build_wait_context(key, model.get("Arn")),
        )

    def wait_for_active(self, model: dict) -> ProgressEvent:
        return self.wait_for(model, self.config.active_key)

    def wait_for_deleted(self, model: dict) -> ProgressEvent:
        return self.wait_for(model, self.config.deleted_key)

    def failed_status(self, model: dict, message: str) -> ProgressEvent:
        LOG.debug("Stage %s reached a failed status: %s", self.config.name, message)
        return ProgressEvent(
            status=OperationStatus.FAILED,
            resource_model=model,
            message=message,
            error_code=HandlerErrorCode.NotStabilized,
        )


class StagePipeline:
    """
    Drives the stages of an operation in order, starting at the stage index stored in the callback context.
    """

    def __init__(self, stages: list[Stage]):
        self.stages = stages

    def create(self, request: ResourceRequest) -> ProgressEvent:
        return self._run(request, Stage.handle_create, MESSAGE_CREATE_COMPLETE)

    def update(self, request: ResourceRequest) -> ProgressEvent:
        return self._run(request, Stage.handle_update, MESSAGE_UPDATE_COMPLETE)

    def _run(self, request: ResourceRequest, handler, success_message: str) -> ProgressEvent:
        start = get_stage(request.custom_context)
        for index in range(start, len(self.stages)):
            stage = self.stages[index]
            event = handler(stage, request)

            match event.status:
                case OperationStatus.SUCCESS:
                    LOG.debug("Stage %s (%s) complete", index, stage.config.name)
                    continue
                case OperationStatus.IN_PROGRESS:
                    event.custom_context = add_stage_marker(event.custom_context, index)
                    return event
                case _:
                    return event

        return ProgressEvent(
            status=OperationStatus.SUCCESS,
            resource_model=request.desired_state,
            message=success_message,
        )
