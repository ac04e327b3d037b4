"""
Keystone v3 password authentication for the OpenStack service clients.

KeystoneSession holds the current token and service catalog. KeystoneAuth is
an httpx.Auth flow attached to every service client: it injects the
X-Auth-Token header and, when a service answers 401 (expired token), fetches
a fresh token once and replays the request.

Example:
    async with httpx.AsyncClient(verify=tls_verify(settings)) as http:
        session = await authenticate(settings, http)
    compute_http = httpx.AsyncClient(
        base_url=session.endpoint_for("compute"),
        auth=KeystoneAuth(session),
    )
"""

import logging
import ssl
from collections.abc import Generator
from typing import Any

import httpx

from nova_autoscaler.api_types import CatalogService, TokenResponse
from nova_autoscaler.exceptions import AuthenticationError
from nova_autoscaler.settings import OpenStackSettings

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Auth-Token"
SUBJECT_TOKEN_HEADER = "X-Subject-Token"


def tls_verify(settings: OpenStackSettings) -> ssl.SSLContext | bool:
    """Build the httpx verify argument from the TLS settings."""
    if settings.insecure:
        return False
    if settings.cacert:
        return ssl.create_default_context(cafile=settings.cacert)
    return True


def token_url(auth_url: str) -> str:
    """Return the token endpoint for an identity URL with or without /v3."""
    base = auth_url.rstrip("/")
    if not base.endswith("/v3"):
        base = f"{base}/v3"
    return f"{base}/auth/tokens"


class KeystoneSession:
    """
    Token and catalog obtained from Keystone.

    Attributes:
        settings: Credentials and region used to authenticate.
        token: Current token, None before the first authentication.
        catalog: Service catalog from the last token response.
    """

    def __init__(self, settings: OpenStackSettings) -> None:
        if not settings.auth_url:
            raise AuthenticationError("no auth_url configured (set OS_AUTH_URL or auth_url)")
        self.settings = settings
        self.token: str | None = None
        self.catalog: list[CatalogService] = []

    def build_token_request(self) -> httpx.Request:
        """Build the POST /v3/auth/tokens request for password auth."""
        s = self.settings
        body: dict[str, Any] = {
            "auth": {
                "identity": {
                    "methods": ["password"],
                    "password": {
                        "user": {
                            "name": s.username,
                            "domain": {"name": s.user_domain},
                            "password": s.password,
                        }
                    },
                }
            }
        }
        if s.project_id:
            body["auth"]["scope"] = {"project": {"id": s.project_id}}
        elif s.project_name:
            body["auth"]["scope"] = {
                "project": {"name": s.project_name, "domain": {"name": s.project_domain}}
            }
        return httpx.Request("POST", token_url(s.auth_url), json=body)

    def update_from_response(self, response: httpx.Response) -> None:
        """
        Store the token and catalog from a token response.

        Raises:
            AuthenticationError: If Keystone rejected the request.
        """
        if response.status_code >= 400:
            raise AuthenticationError(
                f"keystone returned {response.status_code}: {response.text}"
            )
        token = response.headers.get(SUBJECT_TOKEN_HEADER)
        if not token:
            raise AuthenticationError("keystone response carried no token")
        self.token = token
        self.catalog = TokenResponse.model_validate(response.json()).token.catalog

    def endpoint_for(self, service_type: str, interface: str = "public") -> str:
        """
        Find a service endpoint URL in the catalog.

        Raises:
            AuthenticationError: If the catalog has no matching endpoint.
        """
        region = self.settings.region_name
        for service in self.catalog:
            if service.type != service_type:
                continue
            for endpoint in service.endpoints:
                if endpoint.interface != interface:
                    continue
                if region and region not in (endpoint.region_id, endpoint.region):
                    continue
                return endpoint.url.rstrip("/")
        raise AuthenticationError(
            f"no {interface} endpoint for service {service_type} in region {region}"
        )


class KeystoneAuth(httpx.Auth):
    """httpx auth flow injecting the Keystone token, re-authenticating on 401."""

    requires_response_body = True

    def __init__(self, session: KeystoneSession) -> None:
        self._session = session

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        if self._session.token is None:
            token_response = yield self._session.build_token_request()
            self._session.update_from_response(token_response)

        request.headers[TOKEN_HEADER] = self._session.token or ""
        response = yield request

        if response.status_code == 401:
            logger.debug("token rejected, re-authenticating")
            token_response = yield self._session.build_token_request()
            self._session.update_from_response(token_response)
            request.headers[TOKEN_HEADER] = self._session.token or ""
            yield request


async def authenticate(
    settings: OpenStackSettings, http: httpx.AsyncClient
) -> KeystoneSession:
    """
    Authenticate against Keystone and return the populated session.

    Raises:
        AuthenticationError: On rejected credentials.
        httpx.TransportError: If Keystone is unreachable.
    """
    session = KeystoneSession(settings)
    response = await http.send(session.build_token_request())
    session.update_from_response(response)
    logger.debug(f"authenticated with keystone, services={len(session.catalog)}")
    return session
