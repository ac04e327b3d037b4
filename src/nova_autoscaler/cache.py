"""
Process-lifetime stores shared across reconciliation cycles.

ResolverCache memoizes flavor/image/network name -> ID lookups. Entries are
never evicted or expired: a renamed resource is only picked up after a
restart. FloatingIPRegistry remembers which floating IP was attached to
which instance so it can be released when the instance is deleted.

Both stores are owned by the target instance (not module globals) and guard
their maps with an asyncio.Lock because the entry points are coroutines.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from nova_autoscaler.types import InstanceId, ResourceKind

logger = logging.getLogger(__name__)

Lookup = Callable[[str], Awaitable[str]]


def cache_key(kind: ResourceKind | str, name: str) -> str:
    """Build the "kind:name" key used by the resolver cache."""
    kind_value = kind.value if isinstance(kind, ResourceKind) else kind
    return f"{kind_value}:{name}"


class ResolverCache:
    """
    Name -> ID memoization for flavors, images and networks.

    On a miss the supplied lookup coroutine is awaited and its result is
    stored under "kind:name"; on a hit the stored ID is returned without
    calling the provider. Failed lookups are not cached.

    Example:
        cache = ResolverCache()
        flavor_id = await cache.resolve(
            ResourceKind.FLAVOR, "m1.small", compute.flavor_id_from_name
        )
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def resolve(self, kind: ResourceKind, name: str, lookup: Lookup) -> str:
        """
        Return the provider ID for a named resource.

        Args:
            kind: Resource kind being resolved.
            name: Human-readable resource name.
            lookup: Coroutine function performing the provider lookup on miss.

        Returns:
            The provider-assigned ID.

        Raises:
            Whatever the lookup raises (ResolutionError, httpx errors).
        """
        key = cache_key(kind, name)
        async with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                return cached

            logger.debug(f"searching for {kind.value}, name={name}")
            resource_id = await lookup(name)
            logger.debug(f"found {kind.value} ID, name={name} id={resource_id}")

            self._entries[key] = resource_id
            return resource_id

    def get(self, kind: ResourceKind, name: str) -> str | None:
        """Return a cached ID without performing a lookup."""
        return self._entries.get(cache_key(kind, name))

    def __len__(self) -> int:
        return len(self._entries)


class FloatingIPRegistry:
    """
    Floating IP IDs keyed by the instance they are attached to.

    Populated after a successful floating IP attach during creation and
    consumed when the instance is deleted. Not persisted: floating IPs of
    instances created before a restart are not released by the engine.
    """

    def __init__(self) -> None:
        self._entries: dict[InstanceId, str] = {}
        self._lock = asyncio.Lock()

    async def record(self, instance_id: InstanceId, floating_ip_id: str) -> None:
        async with self._lock:
            self._entries[instance_id] = floating_ip_id

    async def get(self, instance_id: InstanceId) -> str | None:
        async with self._lock:
            return self._entries.get(instance_id)

    async def discard(self, instance_id: InstanceId) -> None:
        async with self._lock:
            self._entries.pop(instance_id, None)

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
