"""
Neutron API client for network lookups and floating IP management.

NetworkClient receives an injected httpx.AsyncClient with base_url set to the
network endpoint from the service catalog. All methods are async and fail
loudly on HTTP errors.

Neutron API reference:
- https://docs.openstack.org/api-ref/network/v2/
"""

from dataclasses import dataclass

import httpx

from nova_autoscaler.api_types import (
    FloatingIP,
    FloatingIPResponse,
    NetworksResponse,
    Port,
    PortsResponse,
)
from nova_autoscaler.exceptions import ResolutionError


@dataclass
class NetworkClient:
    """
    Neutron v2.0 API client with injected httpx client.

    Attributes:
        http: Pre-configured httpx.AsyncClient with base_url set to the
            network endpoint (e.g. "https://neutron:9696").

    Example:
        async with httpx.AsyncClient(base_url=endpoint, auth=auth) as http:
            client = NetworkClient(http=http)
            ports = await client.list_ports(device_id=server_id)
            fip = await client.create_floating_ip(public_net_id, ports[0].id)
    """

    http: httpx.AsyncClient

    async def network_id_from_name(self, name: str) -> str:
        """
        Resolve a network name to its ID.

        Calls GET /v2.0/networks?name=<name>.

        Raises:
            ResolutionError: If no network or more than one network matches.
            httpx.HTTPStatusError: On HTTP errors (4xx, 5xx responses).
        """
        response = await self.http.get("/v2.0/networks", params={"name": name})
        response.raise_for_status()

        networks = NetworksResponse.model_validate(response.json()).networks
        if not networks:
            raise ResolutionError("network", name, "no network found")
        if len(networks) > 1:
            raise ResolutionError("network", name, f"{len(networks)} networks found")
        return networks[0].id

    async def list_ports(self, device_id: str) -> list[Port]:
        """
        List ports attached to a device (server).

        Calls GET /v2.0/ports?device_id=<id>.
        """
        response = await self.http.get("/v2.0/ports", params={"device_id": device_id})
        response.raise_for_status()

        return PortsResponse.model_validate(response.json()).ports

    async def create_floating_ip(self, network_id: str, port_id: str) -> FloatingIP:
        """
        Allocate a floating IP from an external network and bind it to a port.

        Calls POST /v2.0/floatingips.

        Args:
            network_id: External network the floating IP is allocated from.
            port_id: Instance port the floating IP is associated with.
        """
        response = await self.http.post(
            "/v2.0/floatingips",
            json={"floatingip": {"floating_network_id": network_id, "port_id": port_id}},
        )
        response.raise_for_status()

        return FloatingIPResponse.model_validate(response.json()).floatingip

    async def delete_floating_ip(self, floating_ip_id: str) -> None:
        """
        Release a floating IP.

        Calls DELETE /v2.0/floatingips/{id}. A 404 means it is already gone.
        """
        response = await self.http.delete(f"/v2.0/floatingips/{floating_ip_id}")
        if response.status_code == 404:
            return
        response.raise_for_status()
