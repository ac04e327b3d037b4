"""
Factory functions for creating the service clients.

This module wires Keystone authentication, TLS settings and catalog
endpoints into the httpx clients the rest of the package receives by
injection, so the target and the CLI never build HTTP clients themselves.
"""

import logging
import re
from dataclasses import dataclass, field

import httpx

from nova_autoscaler.compute_client import ComputeClient
from nova_autoscaler.exceptions import AuthenticationError
from nova_autoscaler.image_client import ImageClient
from nova_autoscaler.keystone import KeystoneAuth, KeystoneSession, authenticate, tls_verify
from nova_autoscaler.network_client import NetworkClient
from nova_autoscaler.settings import NomadSettings, OpenStackSettings

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 30.0

NOMAD_TOKEN_HEADER = "X-Nomad-Token"

# Client paths carry the API version themselves.
_IMAGE_VERSION_SUFFIX = re.compile(r"/v2(?:\.\d+)?$")
_NETWORK_VERSION_SUFFIX = re.compile(r"/v2\.0$")


def service_base_url(url: str, version_suffix: re.Pattern[str] | None = None) -> str:
    """Normalize a catalog URL into a base_url, dropping a trailing version."""
    base = url.rstrip("/")
    if version_suffix is not None:
        base = version_suffix.sub("", base)
    return base


@dataclass
class OpenStackClients:
    """
    Authenticated OpenStack service clients sharing one Keystone session.

    Attributes:
        compute: Nova client.
        image: Glance client.
        network: Neutron client, None when the catalog has no network service.
        session: Keystone token and catalog.
    """

    compute: ComputeClient
    image: ImageClient
    network: NetworkClient | None
    session: KeystoneSession | None = None
    _http: list[httpx.AsyncClient] = field(default_factory=list, repr=False)

    async def aclose(self) -> None:
        """Close every underlying httpx client."""
        for http in self._http:
            await http.aclose()
        self._http.clear()


async def create_openstack_clients(
    settings: OpenStackSettings,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    keystone_http: httpx.AsyncClient | None = None,
) -> OpenStackClients:
    """
    Authenticate and create the compute, image and network clients.

    Args:
        settings: Credentials, region and TLS options.
        timeout: Per-request HTTP timeout in seconds.
        keystone_http: Optional pre-configured client for the initial token
            request. If None, a temporary client is created and closed.

    Returns:
        OpenStackClients ready for use.

    Raises:
        AuthenticationError: On rejected credentials or a catalog without
            compute or image endpoints.
    """
    verify = tls_verify(settings)

    if keystone_http is None:
        async with httpx.AsyncClient(verify=verify, timeout=timeout) as http:
            session = await authenticate(settings, http)
    else:
        session = await authenticate(settings, keystone_http)

    auth = KeystoneAuth(session)

    def client_for(base_url: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=base_url, auth=auth, verify=verify, timeout=timeout)

    compute_http = client_for(service_base_url(session.endpoint_for("compute")))
    image_http = client_for(
        service_base_url(session.endpoint_for("image"), _IMAGE_VERSION_SUFFIX)
    )
    clients = [compute_http, image_http]

    network = None
    try:
        network_url = session.endpoint_for("network")
    except AuthenticationError as e:
        logger.warning(f"network client unavailable, network names and floating IPs disabled: {e}")
    else:
        network_http = client_for(service_base_url(network_url, _NETWORK_VERSION_SUFFIX))
        clients.append(network_http)
        network = NetworkClient(http=network_http)

    logger.debug(f"created OpenStack clients, region={settings.region_name}")
    return OpenStackClients(
        compute=ComputeClient(http=compute_http),
        image=ImageClient(http=image_http),
        network=network,
        session=session,
        _http=clients,
    )


def create_nomad_http(
    settings: NomadSettings, timeout: float = DEFAULT_HTTP_TIMEOUT
) -> httpx.AsyncClient:
    """
    Create the httpx client for the Nomad API.

    Sends X-Nomad-Token when a token is configured and the namespace as a
    default query parameter when one is set.
    """
    headers = {NOMAD_TOKEN_HEADER: settings.token} if settings.token else {}
    params = {"namespace": settings.namespace} if settings.namespace else {}
    return httpx.AsyncClient(
        base_url=settings.addr.rstrip("/"),
        headers=headers,
        params=params,
        timeout=timeout,
    )
