import logging
from typing import Optional, TypedDict

from aps_cfn.services.aps.errors import (
    REMOTE_ERRORS,
    MissingRequiredField,
    failed_event,
    is_not_found,
)
from aps_cfn.services.aps.resource_providers.callback_context import (
    get_wait_identifier,
    has_wait_marker,
    is_fresh,
)
from aps_cfn.services.aps.resource_providers.stages import (
    MESSAGE_CREATE_COMPLETE,
    MESSAGE_DELETE_COMPLETE,
    MESSAGE_LIST_COMPLETE,
    MESSAGE_READ_COMPLETE,
    MESSAGE_UPDATE_COMPLETE,
    Stage,
    StageConfig,
    StagePipeline,
)
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
    aps_workspace_arn,
    parse_aps_arn,
)
from aps_cfn.utils.tagging import (
    merge_system_tags,
    tag_list_to_map,
    tag_map_difference,
    tag_map_to_list,
)

LOG = logging.getLogger(__name__)

RULE_GROUPS_NAMESPACE_STATUS_ACTIVE = "ACTIVE"
RULE_GROUPS_NAMESPACE_FAILED_STATUSES = ("CREATION_FAILED", "UPDATE_FAILED")


class Tag(TypedDict):
    Key: str
    Value: str


class APSRuleGroupsNamespaceProperties(TypedDict, total=False):
    Arn: Optional[str]
    Data: Optional[str]
    Name: Optional[str]
    Tags: Optional[list[Tag]]
    Workspace: Optional[str]


def read_rule_groups_namespace(client, model: dict) -> dict:
    """
    Refreshes the model from the service, the workspace and the namespace name are taken from the ``Arn``
    (``arn:aws:aps:<region>:<account>:rulegroupsnamespace/<workspace id>/<name>``).
    """
    arn = parse_aps_arn(model.get("Arn"))
    if not arn.sub_path:
        raise InvalidArnException(f"Rule groups namespace ARN has no name: {model.get('Arn')}")

    namespace = client.describe_rule_groups_namespace(workspaceId=arn.resource_id, name=arn.sub_path)[
        "ruleGroupsNamespace"
    ]
    data = namespace.get("data") or b""
    model["Name"] = arn.sub_path
    model["Workspace"] = aps_workspace_arn(arn)
    model["Data"] = data.decode("utf-8") if isinstance(data, bytes) else data
    model["Tags"] = tag_map_to_list(namespace.get("tags"))
    return namespace.get("status") or {}


class RuleGroupsNamespaceStage(Stage):
    config = StageConfig(name="rule_groups_namespace", active_key="Arn")

    def should_create(self, request: ResourceRequest) -> bool:
        return is_fresh(request.custom_context)

    def create(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        try:
            workspace_id = parse_aps_arn(model["Workspace"]).resource_id
            response = self.client.create_rule_groups_namespace(
                workspaceId=workspace_id,
                name=model["Name"],
                data=model["Data"].encode("utf-8"),
                tags=merge_system_tags(tag_list_to_map(model.get("Tags")), request.system_tags),
            )
        except (*REMOTE_ERRORS, InvalidArnException, UnsupportedKind) as e:
            return failed_event(e, model)

        model["Arn"] = response["arn"]
        return self.wait_for_active(model)

    def resume_create(self, request: ResourceRequest) -> ProgressEvent:
        return self._wait_until_active(request.desired_state, MESSAGE_CREATE_COMPLETE)

    def resume_update(self, request: ResourceRequest) -> ProgressEvent:
        return self._wait_until_active(request.desired_state, MESSAGE_UPDATE_COMPLETE)

    def _wait_until_active(self, model: dict, success_message: str) -> ProgressEvent:
        try:
            status = read_rule_groups_namespace(self.client, model)
        except (*REMOTE_ERRORS, ValueError) as e:
            return failed_event(e, model)

        status_code = status.get("statusCode")
        if status_code in RULE_GROUPS_NAMESPACE_FAILED_STATUSES:
            return self.failed_status(
                model,
                f"RuleGroupsNamespace status: {status_code}. Reason: {status.get('statusReason')}",
            )
        if status_code != RULE_GROUPS_NAMESPACE_STATUS_ACTIVE:
            return self.wait_for_active(model)
        return self.advance(model, success_message)

    def update(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        previous = request.previous_state or {}
        arn = parse_aps_arn(model["Arn"])

        to_change, to_remove = tag_map_difference(
            merge_system_tags(tag_list_to_map(model.get("Tags")), request.system_tags),
            merge_system_tags(tag_list_to_map(previous.get("Tags")), request.previous_system_tags),
        )
        try:
            if to_remove:
                self.client.untag_resource(resourceArn=model["Arn"], tagKeys=to_remove)
            if to_change:
                self.client.tag_resource(resourceArn=model["Arn"], tags=to_change)
            self.client.put_rule_groups_namespace(
                workspaceId=arn.resource_id,
                name=model.get("Name") or arn.sub_path,
                data=(model.get("Data") or "").encode("utf-8"),
            )
        except REMOTE_ERRORS as e:
            return failed_event(e, model)
        return self.wait_for_active(model)

    def delete(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        arn = parse_aps_arn(model["Arn"])
        try:
            self.client.delete_rule_groups_namespace(
                workspaceId=arn.resource_id, name=model.get("Name") or arn.sub_path
            )
        except REMOTE_ERRORS as e:
            if is_not_found(e):
                return ProgressEvent(status=OperationStatus.SUCCESS, message=MESSAGE_DELETE_COMPLETE)
            return failed_event(e, model)
        return self.wait_for_active(model)

    def resume_delete(self, request: ResourceRequest) -> ProgressEvent:
        model = request.desired_state
        try:
            read_rule_groups_namespace(self.client, model)
        except REMOTE_ERRORS as e:
            if is_not_found(e):
                return ProgressEvent(status=OperationStatus.SUCCESS, message=MESSAGE_DELETE_COMPLETE)
            return failed_event(e, model)
        except ValueError as e:
            return failed_event(e, model)
        return self.wait_for_active(model)


class APSRuleGroupsNamespaceProvider(ResourceProvider[APSRuleGroupsNamespaceProperties]):
    TYPE = "AWS::APS::RuleGroupsNamespace"

    REQUIRED_PROPERTIES = (
        ("Workspace", "Missing Workspace ARN"),
        ("Data", "Missing RuleGroupsNamespace Data"),
        ("Name", "Missing RuleGroupsNamespace Name"),
    )

    def create(
        self,
        request: ResourceRequest[APSRuleGroupsNamespaceProperties],
    ) -> ProgressEvent[APSRuleGroupsNamespaceProperties]:
        """
        Create a rule groups namespace in an existing workspace.

        Primary identifier: /properties/Arn
        Required properties: Workspace, Name, Data
        """
        model = request.desired_state
        if is_fresh(request.custom_context):
            for field_name, message in self.REQUIRED_PROPERTIES:
                if model.get(field_name) is None:
                    return failed_event(
                        MissingRequiredField(field_name, message),
                        model,
                        error_code=HandlerErrorCode.InvalidRequest,
                    )

        client = request.aws_client_factory.amp
        return StagePipeline([RuleGroupsNamespaceStage(client)]).create(request)

    def read(
        self,
        request: ResourceRequest[APSRuleGroupsNamespaceProperties],
    ) -> ProgressEvent[APSRuleGroupsNamespaceProperties]:
        model = request.desired_state
        if not model.get("Arn"):
            return ProgressEvent(
                status=OperationStatus.FAILED,
                resource_model=model,
                message="Invalid Read: Arn cannot be empty",
                error_code=HandlerErrorCode.NotFound,
            )

        try:
            read_rule_groups_namespace(request.aws_client_factory.amp, model)
        except (*REMOTE_ERRORS, ValueError) as e:
            return failed_event(e, model)

        return ProgressEvent(
            status=OperationStatus.SUCCESS, resource_model=model, message=MESSAGE_READ_COMPLETE
        )

    def update(
        self,
        request: ResourceRequest[APSRuleGroupsNamespaceProperties],
    ) -> ProgressEvent[APSRuleGroupsNamespaceProperties]:
        model = request.desired_state
        if error := self._check_arn(model, "Update"):
            return error

        client = request.aws_client_factory.amp
        return StagePipeline([RuleGroupsNamespaceStage(client)]).update(request)

    def delete(
        self,
        request: ResourceRequest[APSRuleGroupsNamespaceProperties],
    ) -> ProgressEvent[APSRuleGroupsNamespaceProperties]:
        model = request.desired_state
        stage = RuleGroupsNamespaceStage(request.aws_client_factory.amp)
        if model.get("Arn") and has_wait_marker(request.custom_context, stage.config.active_key):
            model["Arn"] = get_wait_identifier(request.custom_context, stage.config.active_key)
            return stage.resume_delete(request)

        if error := self._check_arn(model, "Delete"):
            return error
        return stage.delete(request)

    def list(
        self,
        request: ResourceRequest[APSRuleGroupsNamespaceProperties],
    ) -> ProgressEvent[APSRuleGroupsNamespaceProperties]:
        workspace = request.desired_state.get("Workspace")
        if not workspace:
            return failed_event(
                MissingRequiredField("Workspace", "Missing Workspace ARN"),
                error_code=HandlerErrorCode.InvalidRequest,
            )

        try:
            params = {"workspaceId": parse_aps_arn(workspace).resource_id}
            if request.next_token:
                params["nextToken"] = request.next_token
            response = request.aws_client_factory.amp.list_rule_groups_namespaces(**params)
        except (*REMOTE_ERRORS, ValueError) as e:
            return failed_event(e)

        models = [
            APSRuleGroupsNamespaceProperties(
                Arn=namespace.get("arn"),
                Name=namespace.get("name"),
                Workspace=workspace,
                Tags=tag_map_to_list(namespace.get("tags")),
            )
            for namespace in response.get("ruleGroupsNamespaces", [])
        ]
        return ProgressEvent(
            status=OperationStatus.SUCCESS,
            resource_models=models,
            message=MESSAGE_LIST_COMPLETE,
            next_token=response.get("nextToken") or "",
        )

    @staticmethod
    def _check_arn(model: dict, operation: str) -> Optional[ProgressEvent]:
        if not model.get("Arn"):
            message = f"Invalid {operation}: Arn cannot be empty"
        else:
            try:
                if parse_aps_arn(model["Arn"]).sub_path:
                    return None
            except (InvalidArnException, UnsupportedKind):
                pass
            message = f"Invalid {operation}: invalid ARN format"
        return ProgressEvent(
            status=OperationStatus.FAILED,
            resource_model=model,
            message=message,
            error_code=HandlerErrorCode.NotFound,
        )
