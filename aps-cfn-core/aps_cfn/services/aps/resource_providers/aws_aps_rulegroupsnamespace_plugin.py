from typing import Optional, Type

from aps_cfn.services.cloudformation.resource_provider import (
    CloudFormationResourceProviderPlugin,
    ResourceProvider,
)


class APSRuleGroupsNamespaceProviderPlugin(CloudFormationResourceProviderPlugin):
    name = "AWS::APS::RuleGroupsNamespace"

    def __init__(self):
        self.factory: Optional[Type[ResourceProvider]] = None

    def load(self):
        from aps_cfn.services.aps.resource_providers.aws_aps_rulegroupsnamespace import (
            APSRuleGroupsNamespaceProvider,
        )

        self.factory = APSRuleGroupsNamespaceProvider
