"""
Shared data types for the Nova pool autoscaler.

This module defines the internal data structures passed between the
inventory, distributor, lifecycle driver and reconciler. These are internal
types - not API models. Provider response parsing lives in api_types.

All types use @dataclass for simplicity. Pydantic models are reserved for
settings and API responses.
"""

from dataclasses import dataclass, field
from enum import Enum

# Type aliases for common patterns
InstanceId = str
"""Provider-assigned identifier of a Nova server."""

AvailabilityZone = str
"""Name of a provider availability zone."""

DRY_RUN_COUNT = -1
"""Count value the orchestrator sends when a scaling action is a dry run."""

POOL_TAG_FORMAT = "na_pool:{pool}"
"""Tag carried by every pool member; inventory queries filter on it."""


def pool_tag(pool: str) -> str:
    """Return the tag identifying members of the given pool."""
    return POOL_TAG_FORMAT.format(pool=pool)


class InstanceState(str, Enum):
    """Nova server states the engine reasons about explicitly."""

    ACTIVE = "ACTIVE"
    BUILD = "BUILD"
    REBOOT = "REBOOT"
    HARD_REBOOT = "HARD_REBOOT"
    SHUTOFF = "SHUTOFF"
    DELETED = "DELETED"
    SOFT_DELETED = "SOFT_DELETED"
    ERROR = "ERROR"


# States that always count toward the pool and may never be ignored
NON_IGNORABLE_STATES = frozenset(
    {
        InstanceState.ACTIVE.value,
        InstanceState.BUILD.value,
        InstanceState.REBOOT.value,
        InstanceState.HARD_REBOOT.value,
    }
)

# Counted toward total but not ready; these are normal transitions
TRANSITIONAL_STATES = frozenset(
    {
        InstanceState.BUILD.value,
        InstanceState.REBOOT.value,
        InstanceState.HARD_REBOOT.value,
    }
)

# Terminal states observed while waiting for a delete to complete
GONE_STATES = frozenset({InstanceState.DELETED.value, InstanceState.SOFT_DELETED.value})


class ScaleDirection(str, Enum):
    """Direction of a reconciliation decision."""

    NONE = "none"
    OUT = "out"
    IN = "in"


class ResourceKind(str, Enum):
    """Kinds of named resources resolved to provider IDs."""

    FLAVOR = "flavor"
    IMAGE = "image"
    NETWORK = "network"


@dataclass
class Instance:
    """
    A Nova server as observed in one inventory scan.

    Instances are never cached across reconciliation cycles; every cycle
    re-queries the provider.

    Attributes:
        id: Provider-assigned server ID.
        name: Server name.
        availability_zone: AZ the server was scheduled into ("" if unknown).
        state: Provider status string (ACTIVE, BUILD, SHUTOFF, ...).
        metadata: Server metadata key/value pairs.
        tags: Server tags, including the pool tag.
    """

    id: InstanceId
    name: str
    availability_zone: AvailabilityZone
    state: str
    metadata: dict[str, str] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)


@dataclass
class PoolScan:
    """
    Aggregated result of one inventory scan.

    Attributes:
        total: Counted members (ignored states excluded).
        ready: Members in ACTIVE state.
        az_distribution: Counted members per availability zone. Built fresh
            every scan and discarded after one use by the distributor.
        member_ids: Identifiers of counted members, produced by the
            configured instance identity selector (ID or name).
        instances: The counted instances themselves.
    """

    total: int = 0
    ready: int = 0
    az_distribution: dict[AvailabilityZone, int] = field(default_factory=dict)
    member_ids: list[str] = field(default_factory=list)
    instances: list[Instance] = field(default_factory=list)


@dataclass
class CreateSpec:
    """
    Creation fields shared by every instance of a scale-out batch.

    IDs here are already resolved; name-based configuration is turned into
    IDs by the resolver cache before the batch starts.
    """

    pool: str
    image_id: str
    flavor_id: str
    name: str = ""
    name_prefix: str = ""
    network_id: str = ""
    server_group_id: str = ""
    security_groups: list[str] = field(default_factory=list)
    availability_zones: list[AvailabilityZone] = field(default_factory=list)
    evenly_split_azs: bool = False
    floating_ip_network_id: str = ""
    user_data_template: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)


@dataclass
class InstanceSlot:
    """
    Per-instance creation fields for one pending instance.

    Attributes:
        name: Final server name.
        random_uuid: Random UUID in canonical dashed hex form. Used as a
            name suffix and as a user-data template variable.
        availability_zone: AZ assigned by the distributor, "" when the
            provider default applies.
    """

    name: str
    random_uuid: str
    availability_zone: AvailabilityZone = ""

    @property
    def short_uuid(self) -> str:
        """First 13 characters of the random UUID."""
        return self.random_uuid[:13]


@dataclass
class ScalingAction:
    """
    A scaling decision issued by the orchestrator's policy engine.

    Attributes:
        count: Desired pool size, or DRY_RUN_COUNT for a dry run.
        reason: Human-readable explanation from the strategy.
        direction: Direction hint from the strategy (informational only).
        meta: Free-form strategy metadata.
    """

    count: int
    reason: str = ""
    direction: str = ""
    meta: dict[str, str] = field(default_factory=dict)

    @property
    def is_dry_run(self) -> bool:
        return self.count == DRY_RUN_COUNT


@dataclass
class TargetStatus:
    """Status reported back to the orchestrator."""

    ready: bool
    count: int = 0
    meta: dict[str, str] = field(default_factory=dict)


@dataclass
class NodeResourceID:
    """
    Pairing of an orchestrator node with the provider resource behind it.

    Attributes:
        node_id: Orchestrator (Nomad) node ID.
        remote_resource_id: Instance identifier (server ID or name).
    """

    node_id: str
    remote_resource_id: str


@dataclass
class PluginInfo:
    """Plugin identification returned to the host."""

    name: str
    plugin_type: str
