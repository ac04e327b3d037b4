"""Tests for the resolver cache and floating IP registry."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from nova_autoscaler.cache import FloatingIPRegistry, ResolverCache, cache_key
from nova_autoscaler.exceptions import ResolutionError
from nova_autoscaler.types import ResourceKind


def test_cache_key_format():
    assert cache_key(ResourceKind.FLAVOR, "m1.small") == "flavor:m1.small"
    assert cache_key("image", "ubuntu") == "image:ubuntu"


class TestResolverCache:
    @pytest.mark.asyncio
    async def test_second_resolve_hits_cache(self):
        cache = ResolverCache()
        lookup = AsyncMock(return_value="flv-1")

        first = await cache.resolve(ResourceKind.FLAVOR, "m1.small", lookup)
        second = await cache.resolve(ResourceKind.FLAVOR, "m1.small", lookup)

        assert first == second == "flv-1"
        lookup.assert_awaited_once_with("m1.small")
        assert cache.get(ResourceKind.FLAVOR, "m1.small") == "flv-1"

    @pytest.mark.asyncio
    async def test_kinds_do_not_collide(self):
        cache = ResolverCache()

        await cache.resolve(ResourceKind.FLAVOR, "default", AsyncMock(return_value="flv"))
        await cache.resolve(ResourceKind.NETWORK, "default", AsyncMock(return_value="net"))

        assert cache.get(ResourceKind.FLAVOR, "default") == "flv"
        assert cache.get(ResourceKind.NETWORK, "default") == "net"
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        cache = ResolverCache()
        failing = AsyncMock(side_effect=ResolutionError("image", "ubuntu", "no image found"))

        with pytest.raises(ResolutionError):
            await cache.resolve(ResourceKind.IMAGE, "ubuntu", failing)

        assert cache.get(ResourceKind.IMAGE, "ubuntu") is None
        assert await cache.resolve(
            ResourceKind.IMAGE, "ubuntu", AsyncMock(return_value="img-1")
        ) == "img-1"

    @pytest.mark.asyncio
    async def test_concurrent_resolves_look_up_once(self):
        cache = ResolverCache()
        lookup = AsyncMock(return_value="img-1")

        results = await asyncio.gather(
            *(cache.resolve(ResourceKind.IMAGE, "ubuntu", lookup) for _ in range(5))
        )

        assert results == ["img-1"] * 5
        lookup.assert_awaited_once()


class TestFloatingIPRegistry:
    @pytest.mark.asyncio
    async def test_record_get_discard(self):
        registry = FloatingIPRegistry()

        await registry.record("srv-1", "fip-1")
        assert "srv-1" in registry
        assert await registry.get("srv-1") == "fip-1"

        await registry.discard("srv-1")
        assert "srv-1" not in registry
        assert await registry.get("srv-1") is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_discard_unknown_is_noop(self):
        registry = FloatingIPRegistry()

        await registry.discard("missing")

        assert len(registry) == 0
