from typing import Optional, Type

from aps_cfn.services.cloudformation.resource_provider import (
    CloudFormationResourceProviderPlugin,
    ResourceProvider,
)


class APSWorkspaceProviderPlugin(CloudFormationResourceProviderPlugin):
    name = "AWS::APS::Workspace"

    def __init__(self):
        self.factory: Optional[Type[ResourceProvider]] = None

    def load(self):
        from aps_cfn.services.aps.resource_providers.aws_aps_workspace import (
            APSWorkspaceProvider,
        )

        self.factory = APSWorkspaceProvider
