import pytest
from botocore.exceptions import ParamValidationError

from aps_cfn import config
from aps_cfn.services.aps.resource_providers.aws_aps_workspace import APSWorkspaceProvider
from aps_cfn.services.cloudformation.resource_provider import (
    HandlerErrorCode,
    OperationStatus,
    ResourceProviderExecutor,
)
from aps_cfn.testing.config import (
    TEST_AWS_ACCESS_KEY_ID,
    TEST_AWS_ACCOUNT_ID,
    TEST_AWS_REGION_NAME,
    TEST_AWS_SECRET_ACCESS_KEY,
    TEST_LOG_GROUP_ARN,
    TEST_WORKSPACE_ARN,
    TEST_WORKSPACE_ID,
)


@pytest.fixture
def provider():
    return APSWorkspaceProvider()


@pytest.fixture(autouse=True)
def callback_delays(monkeypatch):
    monkeypatch.setattr(config, "CALLBACK_DELAY_SHORT", 2)
    monkeypatch.setattr(config, "CALLBACK_DELAY_LONG", 10)


class TestCreate:
    def test_create_and_resume_until_active(self, provider, amp, create_request, workspace_description):
        amp.create_workspace.return_value = {
            "arn": TEST_WORKSPACE_ARN,
            "workspaceId": TEST_WORKSPACE_ID,
            "status": {"statusCode": "CREATING"},
        }

        event = provider.create(create_request(desired={"Alias": "prod"}))

        amp.create_workspace.assert_called_once_with(alias="prod", tags={})
        assert event.status == OperationStatus.IN_PROGRESS
        assert event.callback_delay_seconds > 0
        assert event.custom_context == {"Arn": TEST_WORKSPACE_ARN, "stage": 0}
        assert event.resource_model["Arn"] == TEST_WORKSPACE_ARN

        amp.describe_workspace.return_value = workspace_description("ACTIVE")
        event = provider.create(
            create_request(desired={"Alias": "prod"}, context=event.custom_context)
        )

        assert event.status == OperationStatus.SUCCESS
        assert event.message == "Create Completed"
        assert event.resource_model["WorkspaceId"] == TEST_WORKSPACE_ID
        assert event.resource_model["PrometheusEndpoint"].startswith("https://")
        amp.describe_workspace.assert_called_once_with(workspaceId=TEST_WORKSPACE_ID)
        amp.create_workspace.assert_called_once()
        amp.create_alert_manager_definition.assert_not_called()
        amp.create_logging_configuration.assert_not_called()

    def test_create_keeps_waiting_while_creating(self, provider, amp, create_request, workspace_description):
        amp.describe_workspace.return_value = workspace_description("CREATING")
        context = {"Arn": TEST_WORKSPACE_ARN, "stage": 0}

        event = provider.create(create_request(desired={"Alias": "prod"}, context=context))

        assert event.status == OperationStatus.IN_PROGRESS
        assert event.custom_context == context
        amp.create_workspace.assert_not_called()

    def test_create_failed_workspace_status(self, provider, amp, create_request, workspace_description):
        amp.describe_workspace.return_value = workspace_description("CREATION_FAILED")

        event = provider.create(
            create_request(desired={"Alias": "prod"}, context={"Arn": TEST_WORKSPACE_ARN})
        )

        assert event.status == OperationStatus.FAILED
        assert event.message == "Workspace status: CREATION_FAILED"

    def test_create_with_read_only_workspace_id(self, provider, amp, create_request):
        event = provider.create(create_request(desired={"WorkspaceId": TEST_WORKSPACE_ID}))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.InvalidRequest
        assert not amp.method_calls

    def test_create_merges_system_tags(self, provider, amp, create_request):
        amp.create_workspace.return_value = {"arn": TEST_WORKSPACE_ARN, "workspaceId": TEST_WORKSPACE_ID}
        request = create_request(
            desired={"Tags": [{"Key": "team", "Value": "metrics"}, {"Key": "env", "Value": "dev"}]},
            system_tags={"aws:cloudformation:stack-name": "stack", "env": "system"},
        )

        provider.create(request)

        amp.create_workspace.assert_called_once_with(
            tags={"aws:cloudformation:stack-name": "stack", "env": "dev", "team": "metrics"}
        )

    def test_create_error_is_translated(self, provider, amp, create_request, client_error):
        amp.create_workspace.side_effect = client_error(
            "ServiceQuotaExceededException", "too many workspaces", "CreateWorkspace"
        )

        event = provider.create(create_request(desired={"Alias": "prod"}))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.ServiceLimitExceeded
        assert event.message == "ServiceQuotaExceededException: too many workspaces"

    def test_create_with_alert_manager_and_logging(
        self, provider, amp, create_request, workspace_description
    ):
        desired = {
            "Alias": "prod",
            "AlertManagerDefinition": "alertmanager_config: |\n  route:\n    receiver: default",
            "LoggingConfiguration": {"LogGroupArn": TEST_LOG_GROUP_ARN},
        }

        # workspace became active, the alert manager definition is created next
        event = provider.create(
            create_request(desired=dict(desired), context={"Arn": TEST_WORKSPACE_ARN, "stage": 0})
        )
        assert event.status == OperationStatus.IN_PROGRESS
        assert event.custom_context == {"waitForAlertManagerActive": TEST_WORKSPACE_ARN, "stage": 1}
        assert event.callback_delay_seconds == 10
        amp.create_alert_manager_definition.assert_called_once_with(
            workspaceId=TEST_WORKSPACE_ID, data=desired["AlertManagerDefinition"].encode()
        )

        # alert manager definition became active, the logging configuration is created next
        amp.describe_alert_manager_definition.return_value = {
            "alertManagerDefinition": {
                "data": desired["AlertManagerDefinition"].encode(),
                "status": {"statusCode": "ACTIVE"},
            }
        }
        amp.create_logging_configuration.return_value = {"status": {"statusCode": "CREATING"}}
        event = provider.create(create_request(desired=dict(desired), context=event.custom_context))
        assert event.status == OperationStatus.IN_PROGRESS
        assert event.custom_context == {
            "waitForLoggingConfigurationActive": TEST_WORKSPACE_ARN,
            "stage": 2,
        }
        amp.create_logging_configuration.assert_called_once_with(
            workspaceId=TEST_WORKSPACE_ID, logGroupArn=TEST_LOG_GROUP_ARN
        )

        # logging configuration became active
        amp.describe_logging_configuration.return_value = {
            "loggingConfiguration": {
                "logGroupArn": TEST_LOG_GROUP_ARN,
                "status": {"statusCode": "ACTIVE"},
                "workspace": TEST_WORKSPACE_ID,
            }
        }
        event = provider.create(create_request(desired=dict(desired), context=event.custom_context))
        assert event.status == OperationStatus.SUCCESS
        assert event.message == "Create Completed"
        assert event.resource_model["LoggingConfiguration"] == {"LogGroupArn": TEST_LOG_GROUP_ARN}
        amp.create_workspace.assert_not_called()
        amp.create_alert_manager_definition.assert_called_once()


class TestUpdate:
    def test_update_without_arn(self, provider, amp, create_request):
        event = provider.update(create_request(desired={"Alias": "prod"}, action="UPDATE"))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.NotFound
        assert not amp.method_calls

    @pytest.mark.parametrize(
        "arn",
        [
            "invalid",
            f"xyz:aws:aps:{TEST_AWS_REGION_NAME}:{TEST_AWS_ACCOUNT_ID}:workspace/{TEST_WORKSPACE_ID}",
            f"arn:aws:aps:{TEST_AWS_REGION_NAME}:{TEST_AWS_ACCOUNT_ID}:scraper/s-1",
        ],
    )
    def test_update_with_invalid_arn(self, provider, amp, create_request, arn):
        event = provider.update(create_request(desired={"Arn": arn}, action="UPDATE"))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.NotFound
        assert event.message == "Invalid Update: invalid workspace ARN format"
        assert not amp.method_calls

    def test_update_with_invalid_parameter(self, monkeypatch):
        # the client validates the parameters before any request is sent
        monkeypatch.setattr(config, "APS_ENDPOINT_URL", None)
        payload = {
            "action": "UPDATE",
            "awsAccountId": TEST_AWS_ACCOUNT_ID,
            "region": TEST_AWS_REGION_NAME,
            "resourceType": "AWS::APS::Workspace",
            "requestData": {
                "logicalResourceId": "Workspace",
                "resourceProperties": {"Arn": TEST_WORKSPACE_ARN, "Alias": ""},
                "previousResourceProperties": {"Arn": TEST_WORKSPACE_ARN, "Alias": "old"},
                "callerCredentials": {
                    "accessKeyId": TEST_AWS_ACCESS_KEY_ID,
                    "secretAccessKey": TEST_AWS_SECRET_ACCESS_KEY,
                    "sessionToken": "token",
                },
            },
        }

        event = ResourceProviderExecutor().execute_action(APSWorkspaceProvider(), payload)

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.InvalidRequest
        assert event.message.startswith("InvalidParameter: Parameter validation failed:")
        assert "alias" in event.message
        assert "\n" not in event.message

    def test_update_alias_rejected_by_client(self, provider, amp, create_request):
        amp.update_workspace_alias.side_effect = ParamValidationError(
            report="Invalid length for parameter alias, value: 0, valid min length: 1"
        )
        request = create_request(
            desired={"Arn": TEST_WORKSPACE_ARN, "Alias": ""},
            previous={"Arn": TEST_WORKSPACE_ARN, "Alias": "old"},
            action="UPDATE",
        )

        event = provider.update(request)

        amp.update_workspace_alias.assert_called_once_with(workspaceId=TEST_WORKSPACE_ID, alias="")
        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.InvalidRequest

    def test_update_without_changes_completes(self, provider, amp, create_request):
        model = {"Arn": TEST_WORKSPACE_ARN, "Alias": "prod"}

        event = provider.update(
            create_request(desired=dict(model), previous=dict(model), action="UPDATE")
        )

        assert event.status == OperationStatus.SUCCESS
        assert event.message == "Update Completed"
        assert not amp.method_calls

    def test_update_alias_waits_for_workspace(self, provider, amp, create_request):
        request = create_request(
            desired={"Arn": TEST_WORKSPACE_ARN, "Alias": "new"},
            previous={"Arn": TEST_WORKSPACE_ARN, "Alias": "old"},
            action="UPDATE",
        )

        event = provider.update(request)

        amp.update_workspace_alias.assert_called_once_with(workspaceId=TEST_WORKSPACE_ID, alias="new")
        assert event.status == OperationStatus.IN_PROGRESS
        assert event.custom_context == {"Arn": TEST_WORKSPACE_ARN, "stage": 0}
        assert event.callback_delay_seconds == 2

    def test_update_removes_tags_before_adding(self, provider, amp, create_request):
        request = create_request(
            desired={"Arn": TEST_WORKSPACE_ARN, "Tags": [{"Key": "a", "Value": "2"}]},
            previous={
                "Arn": TEST_WORKSPACE_ARN,
                "Tags": [{"Key": "a", "Value": "1"}, {"Key": "b", "Value": "x"}],
            },
            action="UPDATE",
        )

        provider.update(request)

        assert [c[0] for c in amp.method_calls] == ["untag_resource", "tag_resource"]
        amp.untag_resource.assert_called_once_with(resourceArn=TEST_WORKSPACE_ARN, tagKeys=["b"])
        amp.tag_resource.assert_called_once_with(resourceArn=TEST_WORKSPACE_ARN, tags={"a": "2"})

    def test_update_ignores_unchanged_system_tags(self, provider, amp, create_request):
        system_tags = {"aws:cloudformation:stack-name": "stack"}
        model = {"Arn": TEST_WORKSPACE_ARN, "Tags": [{"Key": "a", "Value": "1"}]}

        event = provider.update(
            create_request(
                desired=dict(model),
                previous=dict(model),
                system_tags=system_tags,
                previous_system_tags=system_tags,
                action="UPDATE",
            )
        )

        assert event.status == OperationStatus.SUCCESS
        amp.tag_resource.assert_not_called()

    def test_remove_logging_configuration_verifies_deletion(
        self, provider, amp, create_request, client_error
    ):
        previous = {
            "Arn": TEST_WORKSPACE_ARN,
            "Alias": "prod",
            "LoggingConfiguration": {"LogGroupArn": TEST_LOG_GROUP_ARN},
        }
        desired = {"Arn": TEST_WORKSPACE_ARN, "Alias": "prod"}
        amp.delete_logging_configuration.side_effect = client_error(
            "ResourceNotFoundException", "not found", "DeleteLoggingConfiguration"
        )

        event = provider.update(
            create_request(desired=dict(desired), previous=previous, action="UPDATE")
        )

        assert event.status == OperationStatus.IN_PROGRESS
        assert event.custom_context == {
            "waitForLoggingConfigurationDeleted": TEST_WORKSPACE_ARN,
            "stage": 2,
        }

        amp.describe_logging_configuration.side_effect = client_error(
            "ResourceNotFoundException", "not found", "DescribeLoggingConfiguration"
        )
        event = provider.update(
            create_request(
                desired=dict(desired),
                previous=previous,
                context=event.custom_context,
                action="UPDATE",
            )
        )

        assert event.status == OperationStatus.SUCCESS
        assert event.message == "Update Completed"
        assert "LoggingConfiguration" not in event.resource_model

    def test_remove_alert_manager_definition_already_gone(
        self, provider, amp, create_request, client_error
    ):
        previous = {"Arn": TEST_WORKSPACE_ARN, "AlertManagerDefinition": "config"}
        amp.delete_alert_manager_definition.side_effect = client_error(
            "ResourceNotFoundException", "not found", "DeleteAlertManagerDefinition"
        )

        event = provider.update(
            create_request(desired={"Arn": TEST_WORKSPACE_ARN}, previous=previous, action="UPDATE")
        )

        assert event.status == OperationStatus.SUCCESS
        assert event.message == "Update Completed"
        amp.describe_alert_manager_definition.assert_not_called()

    def test_resume_workspace_then_update_alert_manager(
        self, provider, amp, create_request, workspace_description
    ):
        amp.describe_workspace.return_value = workspace_description("ACTIVE", alias="new")
        request = create_request(
            desired={"Arn": TEST_WORKSPACE_ARN, "Alias": "new", "AlertManagerDefinition": "new"},
            previous={"Arn": TEST_WORKSPACE_ARN, "Alias": "old", "AlertManagerDefinition": "old"},
            context={"Arn": TEST_WORKSPACE_ARN, "stage": 0},
            action="UPDATE",
        )

        event = provider.update(request)

        amp.update_workspace_alias.assert_not_called()
        amp.put_alert_manager_definition.assert_called_once_with(
            workspaceId=TEST_WORKSPACE_ID, data=b"new"
        )
        assert event.status == OperationStatus.IN_PROGRESS
        assert event.custom_context == {"waitForAlertManagerActive": TEST_WORKSPACE_ARN, "stage": 1}


class TestDelete:
    def test_delete_and_wait_until_gone(self, provider, amp, create_request, client_error):
        event = provider.delete(create_request(desired={"Arn": TEST_WORKSPACE_ARN}, action="DELETE"))

        amp.delete_workspace.assert_called_once_with(workspaceId=TEST_WORKSPACE_ID)
        assert event.status == OperationStatus.IN_PROGRESS
        assert event.custom_context == {"Arn": TEST_WORKSPACE_ARN}
        assert event.callback_delay_seconds == 10

        # still there
        event = provider.delete(
            create_request(
                desired={"Arn": TEST_WORKSPACE_ARN}, context=event.custom_context, action="DELETE"
            )
        )
        assert event.status == OperationStatus.IN_PROGRESS
        assert event.custom_context == {"Arn": TEST_WORKSPACE_ARN}

        amp.describe_workspace.side_effect = client_error("ResourceNotFoundException", "gone")
        event = provider.delete(
            create_request(
                desired={"Arn": TEST_WORKSPACE_ARN}, context=event.custom_context, action="DELETE"
            )
        )
        assert event.status == OperationStatus.SUCCESS
        assert event.message == "Delete Complete"
        assert event.resource_model is None
        amp.delete_workspace.assert_called_once()

    def test_delete_of_missing_workspace_succeeds(self, provider, amp, create_request, client_error):
        amp.delete_workspace.side_effect = client_error(
            "ResourceNotFoundException", "gone", "DeleteWorkspace"
        )

        event = provider.delete(create_request(desired={"Arn": TEST_WORKSPACE_ARN}, action="DELETE"))

        assert event.status == OperationStatus.SUCCESS
        assert event.message == "Delete Complete"

    def test_delete_error_is_translated(self, provider, amp, create_request, client_error):
        amp.delete_workspace.side_effect = client_error(
            "ConflictException", "workspace is busy", "DeleteWorkspace"
        )

        event = provider.delete(create_request(desired={"Arn": TEST_WORKSPACE_ARN}, action="DELETE"))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.ResourceConflict

    @pytest.mark.parametrize(
        "model, message",
        [
            ({}, "Invalid Delete: workspace ARN cannot be empty"),
            ({"Arn": "arn:aws:aps"}, "Invalid Delete: invalid workspace ARN format"),
        ],
    )
    def test_delete_validation(self, provider, amp, create_request, model, message):
        event = provider.delete(create_request(desired=model, action="DELETE"))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.NotFound
        assert event.message == message
        assert not amp.method_calls


class TestRead:
    def test_read_without_arn(self, provider, amp, create_request):
        event = provider.read(create_request(desired={}, action="READ"))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.NotFound

    def test_read_drops_missing_configurations(
        self, provider, amp, create_request, client_error, workspace_description
    ):
        amp.describe_workspace.return_value = workspace_description(tags={"team": "metrics"})
        amp.describe_alert_manager_definition.side_effect = client_error(
            "ResourceNotFoundException", "", "DescribeAlertManagerDefinition"
        )
        amp.describe_logging_configuration.return_value = {
            "loggingConfiguration": {
                "logGroupArn": TEST_LOG_GROUP_ARN,
                "status": {"statusCode": "ACTIVE"},
            }
        }
        request = create_request(
            desired={"Arn": TEST_WORKSPACE_ARN, "AlertManagerDefinition": "stale"}, action="READ"
        )

        event = provider.read(request)

        assert event.status == OperationStatus.SUCCESS
        assert event.message == "Read Complete"
        assert event.resource_model == {
            "Arn": TEST_WORKSPACE_ARN,
            "WorkspaceId": TEST_WORKSPACE_ID,
            "Alias": "prod",
            "PrometheusEndpoint": f"https://aps-workspaces.us-west-2.amazonaws.com/workspaces/{TEST_WORKSPACE_ID}/",
            "Tags": [{"Key": "team", "Value": "metrics"}],
            "LoggingConfiguration": {"LogGroupArn": TEST_LOG_GROUP_ARN},
        }

    def test_read_missing_workspace(self, provider, amp, create_request, client_error):
        amp.describe_workspace.side_effect = client_error("ResourceNotFoundException", "gone")

        event = provider.read(create_request(desired={"Arn": TEST_WORKSPACE_ARN}, action="READ"))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.NotFound
        assert event.message == "ResourceNotFoundException: gone"


class TestList:
    def test_list_pages(self, provider, amp, create_request):
        amp.list_workspaces.return_value = {
            "workspaces": [
                {"workspaceId": "ws-1", "alias": "one", "arn": "arn:1", "tags": {"a": "b"}},
                {"workspaceId": "ws-2", "arn": "arn:2"},
            ],
            "nextToken": "page-2",
        }

        event = provider.list(create_request(action="LIST"))

        amp.list_workspaces.assert_called_once_with()
        assert event.status == OperationStatus.SUCCESS
        assert event.message == "List complete"
        assert event.next_token == "page-2"
        assert event.resource_models == [
            {"WorkspaceId": "ws-1", "Alias": "one", "Arn": "arn:1", "Tags": [{"Key": "a", "Value": "b"}]},
            {"WorkspaceId": "ws-2", "Alias": None, "Arn": "arn:2", "Tags": []},
        ]

    def test_list_last_page(self, provider, amp, create_request):
        amp.list_workspaces.return_value = {"workspaces": []}

        event = provider.list(create_request(action="LIST", next_token="page-2"))

        amp.list_workspaces.assert_called_once_with(nextToken="page-2")
        assert event.resource_models == []
        assert event.next_token == ""

    def test_list_error(self, provider, amp, create_request, client_error):
        amp.list_workspaces.side_effect = client_error("AccessDeniedException", "denied", "ListWorkspaces")

        event = provider.list(create_request(action="LIST"))

        assert event.status == OperationStatus.FAILED
        assert event.error_code == HandlerErrorCode.AccessDenied
