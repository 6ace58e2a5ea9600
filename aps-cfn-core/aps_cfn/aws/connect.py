"""
Client stack of the resource providers.

Resource providers never create boto clients themselves, they get them from the ``aws_client_factory`` of the
``ResourceRequest``, which is a ``ServiceLevelClientFactory`` pre-seeded with the credentials and region of the
handler request.
"""
import logging
import threading
from functools import lru_cache
from typing import Optional

from boto3.session import Session
from botocore.client import BaseClient
from botocore.config import Config

from aps_cfn import config as aps_config
from aps_cfn.constants import APS_SERVICE_NAME, REQUEST_ID_HEADER, XRAY_TRACE_ID_HEADER

LOG = logging.getLogger(__name__)


def attribute_name_to_service_name(attribute_name):
    """
    Converts a python-compatible attribute name to the boto service name
    :param attribute_name: Python compatible attribute name using the following replacements:
                            a) Add an underscore suffix `_` to any reserved Python keyword (PEP-8).
                            b) Replace any dash `-` with an underscore `_`
    :return:
    """
    if attribute_name.endswith("_"):
        # lambda_ -> lambda
        attribute_name = attribute_name[:-1]
    # replace all _ with -: cognito_idp -> cognito-idp
    return attribute_name.replace("_", "-")


def log_server_side_failure(http_response, parsed, model, **kwargs):
    """
    botocore ``after-call`` handler logging the operation, request id and trace id of every call that was
    answered with a 5xx status code.
    """
    status_code = getattr(http_response, "status_code", None)
    if status_code is None or status_code < 500:
        return
    headers = getattr(http_response, "headers", None) or {}
    LOG.warning(
        "%s failed with status %s. requestID: %r, traceID: %r.",
        model.name,
        status_code,
        headers.get(REQUEST_ID_HEADER),
        headers.get(XRAY_TRACE_ID_HEADER),
    )


class ServiceLevelClientFactory:
    """
    A service level client factory, preseeded with parameters for the boto3 client creation.
    Will create any service client with parameters already provided by the ClientFactory.
    """

    def __init__(self, *, factory: "ClientFactory", client_creation_params: dict):
        self._factory = factory
        self._client_creation_params = client_creation_params

    def get_client(self, service: str):
        return self._factory.get_client(service_name=service, **self._client_creation_params)

    def __getattr__(self, service: str):
        if service.startswith("__"):
            raise AttributeError(service)
        return self.get_client(attribute_name_to_service_name(service))


class ClientFactory:
    """
    Factory to build the AWS clients.

    Boto client creation is resource intensive. This class caches all Boto
    clients it creates and must be used instead of directly using boto lib.
    """

    def __init__(self, session: Session = None, config: Config = None):
        """
        :param session: Session to be used for client creation. Will create a new session if not provided.
        :param config: Config used as default for client creation.
        """
        self._config: Optional[Config] = config
        self._session: Session = session or Session()
        self._create_client_lock = threading.RLock()

    def __call__(
        self,
        *,
        region_name: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ) -> ServiceLevelClientFactory:
        """
        Get back an object which lets you select the service you want to access with the given attributes

        :param region_name: Name of the AWS region to be associated with the client
            If set to None, loads from botocore session.
        :param aws_access_key_id: Access key to use for the client.
            If set to None, loads from botocore session.
        :param aws_secret_access_key: Secret key to use for the client.
            If set to None, loads from botocore session.
        :param aws_session_token: Session token to use for the client.
            Not being used if not set.
        :param endpoint_url: Full endpoint URL to be used by the client.
            Defaults to ``APS_ENDPOINT_URL`` for the prometheus service.
        :return: Service Region Client Creator
        """
        params = {
            "region_name": region_name,
            "aws_access_key_id": aws_access_key_id,
            "aws_secret_access_key": aws_secret_access_key,
            "aws_session_token": aws_session_token,
            "endpoint_url": endpoint_url,
        }
        return ServiceLevelClientFactory(factory=self, client_creation_params=params)

    def get_client(
        self,
        service_name: str,
        region_name: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ) -> BaseClient:
        if endpoint_url is None and service_name == APS_SERVICE_NAME:
            endpoint_url = aps_config.APS_ENDPOINT_URL
        return self._get_client(
            service_name=service_name,
            region_name=region_name or self._session.region_name,
            endpoint_url=endpoint_url,
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            aws_session_token=aws_session_token,
        )

    def _get_client_post_hook(self, client: BaseClient) -> BaseClient:
        """
        This is called after the client is created by Boto.

        Registers the handler logging server side failures.
        """
        client.meta.events.register(
            "after-call.*.*", handler=log_server_side_failure, unique_id="aps-cfn-5xx-diagnostics"
        )
        return client

    @lru_cache(maxsize=256)
    def _get_client(
        self,
        service_name: str,
        region_name: Optional[str],
        endpoint_url: Optional[str],
        aws_access_key_id: Optional[str],
        aws_secret_access_key: Optional[str],
        aws_session_token: Optional[str],
    ) -> BaseClient:
        """
        Returns a boto3 client with the given configuration, and the hooks added by `_get_client_post_hook`.
        This is a cached call, so modifications to the used client will affect others.
        Client creation is behind a lock as it is not generally thread safe.
        """
        with self._create_client_lock:
            default_config = (
                Config(retries={"max_attempts": 0})
                if aps_config.DISABLE_BOTO_RETRIES
                else Config()
            )
            client_config = default_config.merge(self._config) if self._config else default_config

            client = self._session.client(
                service_name=service_name,
                region_name=region_name,
                endpoint_url=endpoint_url,
                aws_access_key_id=aws_access_key_id,
                aws_secret_access_key=aws_secret_access_key,
                aws_session_token=aws_session_token,
                config=client_config,
            )

        return self._get_client_post_hook(client)


connect_to = ClientFactory()
