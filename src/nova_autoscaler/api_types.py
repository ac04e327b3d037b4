"""
OpenStack and Nomad Pydantic response types.

This module provides Pydantic models for parsing responses from:
- Nova (compute): servers, availability zones, API versions, flavors
- Glance (image): image listings
- Neutron (network): networks, ports, floating IPs
- Keystone (identity): token catalog
- Nomad: node and allocation stubs

These are API response types for external data validation. Internal
types (Instance, PoolScan, etc.) are dataclasses in nova_autoscaler.types.

Notes:
- Nova reports the AZ under the extension key "OS-EXT-AZ:availability_zone"
- Server tags are only returned with compute microversion >= 2.26
- Pagination links come back as "<collection>_links" with rel="next"
"""

from pydantic import BaseModel, ConfigDict, Field

from nova_autoscaler.types import Instance


# =============================================================================
# Nova (compute) Response Types
# =============================================================================


class Link(BaseModel):
    """A pagination or self link."""

    href: str
    rel: str


class NovaServer(BaseModel):
    """
    Server entry from GET /servers/detail or GET /servers/{id}.

    Only the fields the engine reads are declared; the rest is ignored.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    status: str = ""
    availability_zone: str = Field(default="", alias="OS-EXT-AZ:availability_zone")
    metadata: dict[str, str] = Field(default_factory=dict)
    tags: list[str] | None = None

    def to_instance(self) -> Instance:
        """Convert to the internal Instance type."""
        return Instance(
            id=self.id,
            name=self.name,
            availability_zone=self.availability_zone or "",
            state=self.status,
            metadata=dict(self.metadata),
            tags=list(self.tags or []),
        )


class NovaServersResponse(BaseModel):
    """
    Response from GET /servers/detail.

    Example response:
    {
        "servers": [{"id": "...", "name": "web-1", "status": "ACTIVE"}],
        "servers_links": [{"href": "...?marker=...", "rel": "next"}]
    }
    """

    servers: list[NovaServer]
    servers_links: list[Link] = Field(default_factory=list)

    def next_href(self) -> str | None:
        """Return the next-page href, or None on the last page."""
        for link in self.servers_links:
            if link.rel == "next":
                return link.href
        return None


class NovaServerResponse(BaseModel):
    """Response from GET /servers/{id}."""

    server: NovaServer


class NovaCreatedServer(BaseModel):
    """Server stub returned by POST /servers."""

    id: str


class NovaCreateServerResponse(BaseModel):
    """Response from POST /servers (202 Accepted)."""

    server: NovaCreatedServer


class ZoneState(BaseModel):
    available: bool = True


class AvailabilityZoneInfo(BaseModel):
    """Single entry from GET /os-availability-zone."""

    zoneName: str
    zoneState: ZoneState = Field(default_factory=ZoneState)


class AvailabilityZonesResponse(BaseModel):
    """Response from GET /os-availability-zone."""

    availabilityZoneInfo: list[AvailabilityZoneInfo] = Field(default_factory=list)


class APIVersion(BaseModel):
    """
    Single entry of the compute version document.

    "version" is the maximum microversion supported by that API version.
    """

    id: str
    status: str
    version: str = ""
    min_version: str = ""


class APIVersionsResponse(BaseModel):
    """Response from GET / on the compute endpoint root."""

    versions: list[APIVersion]


class Flavor(BaseModel):
    id: str
    name: str


class FlavorsResponse(BaseModel):
    """Response from GET /flavors."""

    flavors: list[Flavor]
    flavors_links: list[Link] = Field(default_factory=list)


# =============================================================================
# Glance (image) Response Types
# =============================================================================


class Image(BaseModel):
    id: str
    name: str | None = None


class ImagesResponse(BaseModel):
    """Response from GET /v2/images."""

    images: list[Image]


# =============================================================================
# Neutron (network) Response Types
# =============================================================================


class Network(BaseModel):
    id: str
    name: str = ""


class NetworksResponse(BaseModel):
    """Response from GET /v2.0/networks."""

    networks: list[Network]


class Port(BaseModel):
    id: str
    network_id: str = ""
    device_id: str = ""


class PortsResponse(BaseModel):
    """Response from GET /v2.0/ports."""

    ports: list[Port]


class FloatingIP(BaseModel):
    id: str
    floating_ip_address: str = ""
    floating_network_id: str = ""
    port_id: str | None = None


class FloatingIPResponse(BaseModel):
    """Response from POST /v2.0/floatingips."""

    floatingip: FloatingIP


# =============================================================================
# Keystone (identity) Response Types
# =============================================================================


class CatalogEndpoint(BaseModel):
    model_config = ConfigDict(extra="allow")

    interface: str
    url: str
    region: str | None = None
    region_id: str | None = None


class CatalogService(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    endpoints: list[CatalogEndpoint] = Field(default_factory=list)


class Token(BaseModel):
    model_config = ConfigDict(extra="allow")

    catalog: list[CatalogService] = Field(default_factory=list)


class TokenResponse(BaseModel):
    """Response body of POST /v3/auth/tokens."""

    token: Token


# =============================================================================
# Nomad Response Types
# =============================================================================
# Nomad uses PascalCase keys; unknown keys are ignored.


class NomadNodeStub(BaseModel):
    """Entry from GET /v1/nodes."""

    ID: str
    Name: str = ""
    Datacenter: str = ""
    NodeClass: str = ""
    NodePool: str = ""
    Status: str = ""
    Drain: bool = False
    SchedulingEligibility: str = ""
    CreateIndex: int = 0


class NomadAllocationStub(BaseModel):
    """Entry from GET /v1/node/{id}/allocations."""

    ID: str
    ClientStatus: str = ""
