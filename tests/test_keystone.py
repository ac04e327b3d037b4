"""
Tests for Keystone authentication and client wiring.

These tests verify:
- Password auth requests are scoped to the configured project
- Tokens and the service catalog are read from the token response
- Endpoints are picked by service type, interface and region
- The httpx auth flow injects the token and re-authenticates once on 401
- The client factory strips API versions from catalog URLs
"""

import json

import httpx
import pytest
from httpx import Request, Response

from nova_autoscaler.exceptions import AuthenticationError
from nova_autoscaler.factory import create_openstack_clients
from nova_autoscaler.keystone import KeystoneAuth, KeystoneSession, authenticate, token_url
from nova_autoscaler.settings import OpenStackSettings


@pytest.fixture
def settings():
    return OpenStackSettings(
        auth_url="http://keystone:5000/v3",
        username="scaler",
        password="secret",
        project_name="autoscaling",
        domain_name="Default",
        region_name="RegionOne",
    )


def catalog(network: bool = True) -> dict:
    services = [
        {"type": "compute", "endpoints": [
            {"interface": "public", "region_id": "RegionTwo", "url": "http://nova-2:8774/v2.1/p1"},
            {"interface": "public", "region_id": "RegionOne", "url": "http://nova:8774/v2.1/p1"},
            {"interface": "internal", "region_id": "RegionOne", "url": "http://nova-int:8774/v2.1/p1"},
        ]},
        {"type": "image", "endpoints": [
            {"interface": "public", "region_id": "RegionOne", "url": "http://glance:9292/v2/"},
        ]},
    ]
    if network:
        services.append({"type": "network", "endpoints": [
            {"interface": "public", "region_id": "RegionOne", "url": "http://neutron:9696/v2.0"},
        ]})
    return {"token": {"catalog": services}}


class KeystoneTransport(httpx.AsyncBaseTransport):
    """Issues tokens on POST /v3/auth/tokens and answers service requests."""

    def __init__(self, service_statuses: list[int] | None = None, network: bool = True):
        self.tokens_issued = 0
        self.requests: list[Request] = []
        self._service_statuses = list(service_statuses or [])
        self._network = network

    async def handle_async_request(self, request: Request) -> Response:
        self.requests.append(request)
        if request.url.path == "/v3/auth/tokens":
            self.tokens_issued += 1
            return Response(
                status_code=201,
                headers={"X-Subject-Token": f"token-{self.tokens_issued}"},
                json=catalog(self._network),
                request=request,
            )
        status = self._service_statuses.pop(0) if self._service_statuses else 200
        return Response(status_code=status, json={}, request=request)


def test_token_url_variants():
    assert token_url("http://keystone:5000/v3") == "http://keystone:5000/v3/auth/tokens"
    assert token_url("http://keystone:5000/") == "http://keystone:5000/v3/auth/tokens"


def test_missing_auth_url():
    with pytest.raises(AuthenticationError):
        KeystoneSession(OpenStackSettings(auth_url=""))


def test_token_request_is_project_scoped(settings):
    request = KeystoneSession(settings).build_token_request()

    body = json.loads(request.content)
    user = body["auth"]["identity"]["password"]["user"]
    assert user == {"name": "scaler", "domain": {"name": "Default"}, "password": "secret"}
    assert body["auth"]["scope"] == {
        "project": {"name": "autoscaling", "domain": {"name": "Default"}}
    }


def test_project_id_scope_wins(settings):
    session = KeystoneSession(settings.model_copy(update={"project_id": "p1"}))

    body = json.loads(session.build_token_request().content)

    assert body["auth"]["scope"] == {"project": {"id": "p1"}}


@pytest.mark.parametrize(
    "config,expected",
    [
        ({}, False),
        ({"insecure_skip_verify": ""}, False),
        ({"insecure_skip_verify": "true"}, True),
    ],
)
def test_insecure_flag_needs_a_value(settings, config, expected):
    assert settings.with_overrides(config).insecure is expected


def test_config_overrides_environment(settings):
    updated = settings.with_overrides({"region_name": "RegionTwo", "cacert_file": "/etc/ca.pem"})

    assert (updated.region_name, updated.cacert) == ("RegionTwo", "/etc/ca.pem")
    assert updated.username == "scaler"


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_reads_token_and_catalog(self, settings):
        async with httpx.AsyncClient(transport=KeystoneTransport()) as http:
            session = await authenticate(settings, http)

        assert session.token == "token-1"
        assert session.endpoint_for("compute") == "http://nova:8774/v2.1/p1"
        assert session.endpoint_for("compute", "internal") == "http://nova-int:8774/v2.1/p1"

    @pytest.mark.asyncio
    async def test_unknown_service(self, settings):
        async with httpx.AsyncClient(transport=KeystoneTransport()) as http:
            session = await authenticate(settings, http)

        with pytest.raises(AuthenticationError):
            session.endpoint_for("object-store")

    def test_rejected_credentials(self, settings):
        session = KeystoneSession(settings)
        response = Response(status_code=401, json={"error": {"message": "bad"}})

        with pytest.raises(AuthenticationError, match="401"):
            session.update_from_response(response)


class TestKeystoneAuth:
    @pytest.mark.asyncio
    async def test_injects_token(self, settings):
        transport = KeystoneTransport()
        session = KeystoneSession(settings)
        async with httpx.AsyncClient(
            transport=transport, base_url="http://nova:8774/v2.1", auth=KeystoneAuth(session)
        ) as http:
            response = await http.get("/servers/detail")

        assert response.status_code == 200
        assert transport.tokens_issued == 1
        assert transport.requests[-1].headers["X-Auth-Token"] == "token-1"

    @pytest.mark.asyncio
    async def test_reauthenticates_once_on_401(self, settings):
        transport = KeystoneTransport(service_statuses=[401, 200])
        session = KeystoneSession(settings)
        session.token = "expired"
        async with httpx.AsyncClient(
            transport=transport, base_url="http://nova:8774/v2.1", auth=KeystoneAuth(session)
        ) as http:
            response = await http.get("/servers/detail")

        assert response.status_code == 200
        assert transport.tokens_issued == 1
        assert transport.requests[-1].headers["X-Auth-Token"] == "token-1"


def endpoint(http: httpx.AsyncClient) -> tuple[str, str]:
    """Host and path of a client base URL, ignoring the trailing slash."""
    return http.base_url.host, http.base_url.path.rstrip("/")


class TestFactory:
    @pytest.mark.asyncio
    async def test_base_urls_drop_api_versions(self, settings):
        async with httpx.AsyncClient(transport=KeystoneTransport()) as keystone_http:
            clients = await create_openstack_clients(settings, keystone_http=keystone_http)

        try:
            assert endpoint(clients.compute.http) == ("nova", "/v2.1/p1")
            assert endpoint(clients.image.http) == ("glance", "")
            assert clients.network is not None
            assert endpoint(clients.network.http) == ("neutron", "")
            assert clients.image.http.base_url.join("v2/images").path == "/v2/images"
        finally:
            await clients.aclose()

    @pytest.mark.asyncio
    async def test_missing_network_service_is_tolerated(self, settings):
        async with httpx.AsyncClient(transport=KeystoneTransport(network=False)) as keystone_http:
            clients = await create_openstack_clients(settings, keystone_http=keystone_http)

        try:
            assert clients.network is None
        finally:
            await clients.aclose()
