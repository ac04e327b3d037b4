"""
Nova API client for pool instance management.

This module provides the ComputeClient class for listing, creating, stopping
and deleting Nova servers, plus the discovery calls used at setup
(availability zones, current microversion) and flavor name lookups.

ComputeClient receives an injected httpx.AsyncClient with base_url set to
the compute endpoint from the service catalog. All methods are async and
fail loudly on HTTP errors; nothing is retried here.

Nova API reference:
- https://docs.openstack.org/api-ref/compute/
"""

import base64
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx

from nova_autoscaler.api_types import (
    APIVersionsResponse,
    AvailabilityZonesResponse,
    FlavorsResponse,
    NovaCreateServerResponse,
    NovaServerResponse,
    NovaServersResponse,
)
from nova_autoscaler.exceptions import ResolutionError
from nova_autoscaler.types import (
    CreateSpec,
    Instance,
    InstanceId,
    InstanceSlot,
    pool_tag,
)

# Server tags need >= 2.26; used until discovery finds the current version
DEFAULT_MICROVERSION = "2.52"

# Nova's implicit zone; never used for balancing
DEFAULT_NOVA_ZONE = "nova"

_VERSION_SUFFIX = re.compile(r"/v2(?:\.\d+)?(?:/.*)?$")


def server_create_body(
    spec: CreateSpec, slot: InstanceSlot, user_data: bytes | None = None
) -> dict[str, Any]:
    """
    Build the POST /servers request body for one pool instance.

    The pool tag is always appended to the configured tags. The AZ is only
    sent when the distributor assigned one.
    """
    server: dict[str, Any] = {
        "name": slot.name or spec.name,
        "imageRef": spec.image_id,
        "flavorRef": spec.flavor_id,
        "tags": [*spec.tags, pool_tag(spec.pool)],
    }
    if spec.network_id:
        server["networks"] = [{"uuid": spec.network_id}]
    else:
        server["networks"] = "auto"
    if spec.security_groups:
        server["security_groups"] = [{"name": sg} for sg in spec.security_groups]
    if spec.metadata:
        server["metadata"] = dict(spec.metadata)
    if slot.availability_zone:
        server["availability_zone"] = slot.availability_zone
    if user_data is not None:
        server["user_data"] = base64.b64encode(user_data).decode("ascii")

    body: dict[str, Any] = {"server": server}
    if spec.server_group_id:
        body["os:scheduler_hints"] = {"group": spec.server_group_id}
    return body


@dataclass
class ComputeClient:
    """
    Nova API client with injected httpx client.

    Attributes:
        http: Pre-configured httpx.AsyncClient with base_url set to the
            compute endpoint (e.g. "https://nova:8774/v2.1/<project>").
        microversion: Compute API microversion sent with every request.

    Example:
        async with httpx.AsyncClient(base_url=endpoint, auth=auth) as http:
            client = ComputeClient(http=http)
            for instance in await client.list_servers("na_pool:workers"):
                print(f"{instance.name} in {instance.availability_zone}: {instance.state}")
    """

    http: httpx.AsyncClient
    microversion: str = DEFAULT_MICROVERSION

    @property
    def _headers(self) -> dict[str, str]:
        return {"OpenStack-API-Version": f"compute {self.microversion}"}

    # -------------------------------------------------------------------------
    # Servers - Observations
    # -------------------------------------------------------------------------

    async def iter_server_pages(self, tag: str) -> AsyncIterator[list[Instance]]:
        """
        Yield pages of servers carrying the given tag.

        Calls GET /servers/detail?tags=<tag> and follows the "next" link of
        each page until the last one.

        Raises:
            httpx.HTTPStatusError: On HTTP errors (4xx, 5xx responses).
            pydantic.ValidationError: On malformed response data.
        """
        response = await self.http.get(
            "/servers/detail", params={"tags": tag}, headers=self._headers
        )
        while True:
            response.raise_for_status()
            page = NovaServersResponse.model_validate(response.json())
            yield [server.to_instance() for server in page.servers]

            next_href = page.next_href()
            if not next_href or not page.servers:
                return
            response = await self.http.get(next_href, headers=self._headers)

    async def list_servers(self, tag: str) -> list[Instance]:
        """Return all servers carrying the given tag, across all pages."""
        instances: list[Instance] = []
        async for page in self.iter_server_pages(tag):
            instances.extend(page)
        return instances

    async def get_server(self, instance_id: InstanceId) -> Instance | None:
        """
        Get a single server.

        Calls GET /servers/{id}.

        Returns:
            The Instance, or None when Nova answers 404 (server gone).

        Raises:
            httpx.HTTPStatusError: On HTTP errors other than 404.
        """
        response = await self.http.get(f"/servers/{instance_id}", headers=self._headers)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return NovaServerResponse.model_validate(response.json()).server.to_instance()

    # -------------------------------------------------------------------------
    # Servers - Actions
    # -------------------------------------------------------------------------

    async def create_server(self, body: dict[str, Any]) -> InstanceId:
        """
        Submit a server creation request.

        Calls POST /servers. Returns once Nova accepted the request; the
        server is still in BUILD state.

        Args:
            body: Request body, see server_create_body().

        Returns:
            ID of the new server.
        """
        response = await self.http.post("/servers", json=body, headers=self._headers)
        response.raise_for_status()
        return NovaCreateServerResponse.model_validate(response.json()).server.id

    async def delete_server(self, instance_id: InstanceId) -> None:
        """Calls DELETE /servers/{id}."""
        response = await self.http.delete(f"/servers/{instance_id}", headers=self._headers)
        response.raise_for_status()

    async def force_delete_server(self, instance_id: InstanceId) -> None:
        """Calls POST /servers/{id}/action with forceDelete."""
        await self._server_action(instance_id, {"forceDelete": None})

    async def stop_server(self, instance_id: InstanceId) -> None:
        """Calls POST /servers/{id}/action with os-stop."""
        await self._server_action(instance_id, {"os-stop": None})

    async def _server_action(self, instance_id: InstanceId, body: dict[str, Any]) -> None:
        response = await self.http.post(
            f"/servers/{instance_id}/action", json=body, headers=self._headers
        )
        response.raise_for_status()

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    async def list_availability_zones(self) -> list[str]:
        """
        List availability zones, excluding Nova's default "nova" zone.

        Calls GET /os-availability-zone.
        """
        response = await self.http.get("/os-availability-zone", headers=self._headers)
        response.raise_for_status()

        data = AvailabilityZonesResponse.model_validate(response.json())
        return [
            zone.zoneName
            for zone in data.availabilityZoneInfo
            if zone.zoneName != DEFAULT_NOVA_ZONE
        ]

    async def current_microversion(self) -> str | None:
        """
        Return the maximum microversion of the CURRENT compute API version.

        Calls GET on the endpoint root (the version document). Returns None
        when no version is marked CURRENT.
        """
        root = self.http.base_url.copy_with(
            path=_VERSION_SUFFIX.sub("", self.http.base_url.path) + "/"
        )
        response = await self.http.get(root)
        response.raise_for_status()

        data = APIVersionsResponse.model_validate(response.json())
        for version in data.versions:
            if version.status == "CURRENT" and version.version:
                return version.version
        return None

    async def flavor_id_from_name(self, name: str) -> str:
        """
        Resolve a flavor name to its ID.

        Calls GET /flavors (following pagination) and matches names exactly.

        Raises:
            ResolutionError: If no flavor or more than one flavor matches.
        """
        matches: list[str] = []
        response = await self.http.get("/flavors", headers=self._headers)
        while True:
            response.raise_for_status()
            page = FlavorsResponse.model_validate(response.json())
            matches.extend(f.id for f in page.flavors if f.name == name)

            next_href = next((l.href for l in page.flavors_links if l.rel == "next"), None)
            if not next_href or not page.flavors:
                break
            response = await self.http.get(next_href, headers=self._headers)

        if not matches:
            raise ResolutionError("flavor", name, "no flavor found")
        if len(matches) > 1:
            raise ResolutionError("flavor", name, f"{len(matches)} flavors found")
        return matches[0]
