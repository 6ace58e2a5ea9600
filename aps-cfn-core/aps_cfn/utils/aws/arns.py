import logging
from dataclasses import dataclass
from typing import Optional, TypedDict

from botocore.utils import ArnParser, InvalidArnException

LOG = logging.getLogger(__name__)

_arn_parser = ArnParser()

# resource kinds of the prometheus service handled by the resource providers
SUPPORTED_RESOURCE_KINDS = ("workspace", "rulegroupsnamespace")


class MalformedIdentifier(InvalidArnException):
    """Raised if a string does not follow the ``arn:<partition>:<service>:<region>:<account>:<kind>/<id>`` form."""


class UnsupportedKind(ValueError):
    def __init__(self, kind: str, arn: str):
        super().__init__(f"Unsupported resource type '{kind}' in ARN {arn}")
        self.kind = kind
        self.arn = arn


class ArnData(TypedDict):
    partition: str
    service: str
    region: str
    account: str
    resource: str


@dataclass(frozen=True)
class ApsArn:
    partition: str
    service: str
    region: str
    account: str
    resource_type: str
    resource_id: str
    sub_path: Optional[str] = None

    def __str__(self) -> str:
        resource = f"{self.resource_type}/{self.resource_id}"
        if self.sub_path:
            resource = f"{resource}/{self.sub_path}"
        return f"arn:{self.partition}:{self.service}:{self.region}:{self.account}:{resource}"


def parse_arn(arn: str) -> ArnData:
    """
    Uses a botocore ArnParser to parse an arn.

    :param arn: the arn string to parse
    :returns: a dictionary containing the ARN components
    :raises InvalidArnException: if the arn is invalid
    """
    return _arn_parser.parse_arn(arn)


def parse_aps_arn(arn: str) -> ApsArn:
    """
    Parses the ARN of a prometheus workspace or of a resource nested in a workspace. The instance id is the
    first path segment of the resource, anything after it is kept as ``sub_path``:

    - ``arn:aws:aps:us-west-2:123456789012:workspace/ws-1234`` -> ("workspace", "ws-1234", None)
    - ``arn:aws:aps:us-west-2:123456789012:rulegroupsnamespace/ws-1234/rules`` ->
      ("rulegroupsnamespace", "ws-1234", "rules")

    :param arn: the arn string to parse
    :returns: the structured identity
    :raises MalformedIdentifier: if the string is not an ARN or has no ``<kind>/<id>`` resource
    :raises UnsupportedKind: if the kind is not one of ``SUPPORTED_RESOURCE_KINDS``
    """
    if not isinstance(arn, str):
        raise MalformedIdentifier(f"Provided ARN is not a string: {arn!r}")
    if arn.split(":", 1)[0] != "arn":
        raise MalformedIdentifier(f"Provided ARN does not start with 'arn:': {arn}")
    try:
        data = parse_arn(arn)
    except InvalidArnException as e:
        raise MalformedIdentifier(str(e)) from e

    resource_type, _, rest = data["resource"].partition("/")
    resource_id, _, sub_path = rest.partition("/")
    if not resource_type or not resource_id:
        raise MalformedIdentifier(f"Provided ARN has no resource id: {arn}")
    if resource_type not in SUPPORTED_RESOURCE_KINDS:
        raise UnsupportedKind(resource_type, arn)

    return ApsArn(
        partition=data["partition"],
        service=data["service"],
        region=data["region"],
        account=data["account"],
        resource_type=resource_type,
        resource_id=resource_id,
        sub_path=sub_path or None,
    )


def extract_resource_id_from_arn(arn: str) -> Optional[str]:
    try:
        return parse_aps_arn(arn).resource_id
    except (InvalidArnException, UnsupportedKind):
        return None


def aps_workspace_arn(arn: ApsArn) -> str:
    """Returns the ARN of the workspace the given resource belongs to."""
    return str(
        ApsArn(
            partition=arn.partition,
            service=arn.service,
            region=arn.region,
            account=arn.account,
            resource_type="workspace",
            resource_id=arn.resource_id,
        )
    )
