import logging
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from aps_cfn.services.cloudformation.resource_provider import ResourceRequest
from aps_cfn.testing.config import (
    TEST_AWS_ACCESS_KEY_ID,
    TEST_AWS_ACCOUNT_ID,
    TEST_AWS_REGION_NAME,
    TEST_AWS_SECRET_ACCESS_KEY,
    TEST_WORKSPACE_ARN,
    TEST_WORKSPACE_ID,
)


@pytest.fixture(autouse=True)
def set_boto_test_credentials_and_region(monkeypatch):
    """
    Automatically sets the default credentials and region for all unit tests.
    """
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", TEST_AWS_ACCESS_KEY_ID)
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", TEST_AWS_SECRET_ACCESS_KEY)
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_AWS_REGION_NAME)


@pytest.fixture
def client_error():
    def _create(code: str, message: str = "", operation: str = "DescribeWorkspace") -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": message}}, operation)

    return _create


@pytest.fixture
def workspace_description():
    def _create(status: str = "ACTIVE", alias: str = "prod", tags: dict = None) -> dict:
        return {
            "workspace": {
                "alias": alias,
                "arn": TEST_WORKSPACE_ARN,
                "prometheusEndpoint": f"https://aps-workspaces.us-west-2.amazonaws.com/workspaces/{TEST_WORKSPACE_ID}/",
                "status": {"statusCode": status},
                "tags": tags or {},
                "workspaceId": TEST_WORKSPACE_ID,
            }
        }

    return _create


@pytest.fixture
def amp(workspace_description):
    """A fake amp client that describes an ACTIVE workspace."""
    client = MagicMock()
    client.describe_workspace.return_value = workspace_description()
    return client


@pytest.fixture
def create_request(amp):
    def _create(
        desired: dict = None,
        previous: dict = None,
        context: dict = None,
        action: str = "CREATE",
        system_tags: dict = None,
        previous_system_tags: dict = None,
        next_token: str = None,
    ) -> ResourceRequest:
        client_factory = MagicMock()
        client_factory.amp = amp
        return ResourceRequest(
            aws_client_factory=client_factory,
            request_token="token",
            stack_id="stack-id",
            account_id=TEST_AWS_ACCOUNT_ID,
            region_name=TEST_AWS_REGION_NAME,
            action=action,
            desired_state=desired if desired is not None else {},
            logical_resource_id="Workspace",
            resource_type="AWS::APS::Workspace",
            logger=logging.getLogger("aps_cfn.test"),
            custom_context=dict(context or {}),
            previous_state=previous,
            system_tags=system_tags or {},
            previous_system_tags=previous_system_tags or {},
            next_token=next_token,
        )

    return _create
