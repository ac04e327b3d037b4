"""
Tests for the reconciler.

These tests verify:
- Direction and magnitude follow the desired vs current count
- Scale-out resolves names through the cache, names slots and spreads AZs
- Scale-in hands the orchestrator's selection to the lifecycle driver
- Failures surface as ScalingError with action and pool context
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from nova_autoscaler.cache import FloatingIPRegistry
from nova_autoscaler.compute_client import ComputeClient
from nova_autoscaler.config import CreateConfig, TargetConfig
from nova_autoscaler.exceptions import ActionTimeoutError, ResolutionError, ScalingError
from nova_autoscaler.image_client import ImageClient
from nova_autoscaler.inventory import PoolInventory
from nova_autoscaler.lifecycle import InstanceLifecycle
from nova_autoscaler.network_client import NetworkClient
from nova_autoscaler.protocols import ClusterUtilsProtocol
from nova_autoscaler.reconciler import Reconciler, compute_direction, new_slots
from nova_autoscaler.types import NodeResourceID, PoolScan, ScaleDirection


CONFIG = {"pool_name": "workers", "image_name": "ubuntu", "flavor_name": "m1.small"}


@pytest.mark.parametrize(
    "current,desired,expected",
    [
        (3, 5, (2, ScaleDirection.OUT)),
        (5, 3, (2, ScaleDirection.IN)),
        (4, 4, (0, ScaleDirection.NONE)),
        (0, 1, (1, ScaleDirection.OUT)),
        (2, 0, (2, ScaleDirection.IN)),
    ],
)
def test_compute_direction(current, desired, expected):
    assert compute_direction(current, desired) == expected


class TestNewSlots:
    def test_prefix_plus_short_uuid(self):
        slots = new_slots(CreateConfig(pool="workers", name_prefix="workers-"), 3)

        assert len({s.random_uuid for s in slots}) == 3
        for slot in slots:
            assert len(slot.random_uuid) == 36
            assert slot.name == f"workers-{slot.random_uuid[:13]}"
            assert slot.availability_zone == ""

    def test_fixed_name(self):
        slots = new_slots(CreateConfig(pool="workers", name="batch"), 2)

        assert [s.name for s in slots] == ["batch", "batch"]


@pytest.fixture
def compute():
    client = MagicMock(spec=ComputeClient)
    client.flavor_id_from_name = AsyncMock(return_value="flv-1")
    return client


@pytest.fixture
def image():
    client = MagicMock(spec=ImageClient)
    client.image_id_from_name = AsyncMock(return_value="img-1")
    return client


@pytest.fixture
def network():
    client = MagicMock(spec=NetworkClient)
    client.network_id_from_name = AsyncMock(side_effect=lambda name: f"net-{name}")
    return client


@pytest.fixture
def inventory():
    inv = MagicMock(spec=PoolInventory)
    inv.scan = AsyncMock(return_value=PoolScan(
        total=3,
        ready=3,
        az_distribution={"az1": 2, "az2": 1},
        member_ids=["w-a", "w-b", "w-c"],
    ))
    return inv


@pytest.fixture
def lifecycle():
    lc = MagicMock(spec=InstanceLifecycle)
    lc.create_instances = AsyncMock(return_value=[])
    lc.delete_instances = AsyncMock(return_value=None)
    return lc


@pytest.fixture
def cluster_utils():
    utils = MagicMock(spec=ClusterUtilsProtocol)
    utils.is_pool_ready = AsyncMock(return_value=True)
    utils.run_pre_scale_in_tasks = AsyncMock(return_value=[
        NodeResourceID(node_id="node-b", remote_resource_id="w-b"),
    ])
    utils.run_post_scale_in_tasks = AsyncMock(return_value=None)
    return utils


@pytest.fixture
def reconciler(compute, image, network, inventory, lifecycle, cluster_utils):
    return Reconciler(
        compute=compute,
        image=image,
        network=network,
        inventory=inventory,
        lifecycle=lifecycle,
        cluster_utils=cluster_utils,
        settings=TargetConfig(),
        default_zones=["az1", "az2"],
    )


class TestScaleOut:
    @pytest.mark.asyncio
    async def test_creates_missing_instances(self, reconciler, lifecycle, inventory):
        direction = await reconciler.reconcile(5, CONFIG)

        assert direction is ScaleDirection.OUT
        inventory.scan.assert_awaited_once_with("workers")
        spec, slots = lifecycle.create_instances.await_args.args
        assert spec.image_id == "img-1"
        assert spec.flavor_id == "flv-1"
        assert spec.network_id == ""
        assert len(slots) == 2
        assert all(s.name.startswith("workers-") for s in slots)
        assert all(s.availability_zone == "" for s in slots)

    @pytest.mark.asyncio
    async def test_evenly_split_uses_discovered_zones(self, reconciler, lifecycle):
        await reconciler.reconcile(6, {**CONFIG, "evenly_split_azs": "true"})

        _, slots = lifecycle.create_instances.await_args.args
        assert sorted(s.availability_zone for s in slots) == ["az1", "az2", "az2"]

    @pytest.mark.asyncio
    async def test_configured_zones_override_discovered(self, reconciler, lifecycle):
        await reconciler.reconcile(
            5, {**CONFIG, "evenly_split_azs": "true", "availability_zones": "az3"}
        )

        _, slots = lifecycle.create_instances.await_args.args
        assert [s.availability_zone for s in slots] == ["az3", "az3"]

    @pytest.mark.asyncio
    async def test_ids_win_over_names(self, reconciler, lifecycle, image, compute):
        await reconciler.reconcile(4, {**CONFIG, "image_id": "img-x", "flavor_id": "flv-x"})

        spec, _ = lifecycle.create_instances.await_args.args
        assert (spec.image_id, spec.flavor_id) == ("img-x", "flv-x")
        image.image_id_from_name.assert_not_awaited()
        compute.flavor_id_from_name.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_names_resolved_once_across_cycles(self, reconciler, image, compute):
        await reconciler.reconcile(4, CONFIG)
        await reconciler.reconcile(4, CONFIG)

        image.image_id_from_name.assert_awaited_once_with("ubuntu")
        compute.flavor_id_from_name.assert_awaited_once_with("m1.small")

    @pytest.mark.asyncio
    async def test_network_and_floating_ip_pool(self, reconciler, lifecycle):
        await reconciler.reconcile(
            4, {**CONFIG, "network_name": "private", "floatingip_pool_name": "public"}
        )

        spec, _ = lifecycle.create_instances.await_args.args
        assert spec.network_id == "net-private"
        assert spec.floating_ip_network_id == "net-public"

    @pytest.mark.asyncio
    async def test_network_name_without_network_service(self, reconciler, lifecycle):
        reconciler.network = None

        with pytest.raises(ScalingError) as exc_info:
            await reconciler.reconcile(4, {**CONFIG, "network_name": "private"})

        cause = exc_info.value.__cause__
        assert isinstance(cause, ResolutionError)
        assert (cause.kind, cause.name) == ("network", "private")
        lifecycle.create_instances.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolution_failure_is_wrapped(self, reconciler, image, lifecycle):
        image.image_id_from_name.side_effect = ResolutionError("image", "ubuntu", "no image found")

        with pytest.raises(ScalingError) as exc_info:
            await reconciler.reconcile(5, CONFIG)

        assert exc_info.value.action == "scale_out"
        assert exc_info.value.pool == "workers"
        assert "failed to find image with name ubuntu" in str(exc_info.value)
        lifecycle.create_instances.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_instance_failure_carries_instance_id(self, reconciler, lifecycle):
        lifecycle.create_instances.side_effect = ActionTimeoutError("srv-9", "wait_active", 90)

        with pytest.raises(ScalingError) as exc_info:
            await reconciler.reconcile(5, CONFIG)

        assert exc_info.value.instance_id == "srv-9"
        assert "instance_id=srv-9" in str(exc_info.value)


class TestScaleIn:
    @pytest.mark.asyncio
    async def test_deletes_selected_nodes(self, reconciler, cluster_utils, lifecycle):
        direction = await reconciler.reconcile(2, CONFIG)

        assert direction is ScaleDirection.IN
        cluster_utils.run_pre_scale_in_tasks.assert_awaited_once_with(
            CONFIG, 1, ["w-a", "w-b", "w-c"]
        )
        lifecycle.delete_instances.assert_awaited_once_with(
            "workers", ["w-b"], stop_first=False, force_delete=False, by_name=True
        )
        cluster_utils.run_post_scale_in_tasks.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_flags_from_target_or_action_config(self, reconciler, lifecycle):
        reconciler.settings = TargetConfig(stop_first=True, id_attribute="meta.server_id")

        await reconciler.reconcile(2, {**CONFIG, "force_delete": "true"})

        lifecycle.delete_instances.assert_awaited_once_with(
            "workers", ["w-b"], stop_first=True, force_delete=True, by_name=False
        )

    @pytest.mark.asyncio
    async def test_delete_failure_skips_post_tasks(self, reconciler, lifecycle, cluster_utils):
        lifecycle.delete_instances.side_effect = RuntimeError("boom")

        with pytest.raises(ScalingError) as exc_info:
            await reconciler.reconcile(2, CONFIG)

        assert exc_info.value.action == "scale_in"
        cluster_utils.run_post_scale_in_tasks.assert_not_awaited()


class TestNoChange:
    @pytest.mark.asyncio
    async def test_equal_count_does_nothing(self, reconciler, lifecycle, cluster_utils):
        assert await reconciler.reconcile(3, CONFIG) is ScaleDirection.NONE

        lifecycle.create_instances.assert_not_awaited()
        lifecycle.delete_instances.assert_not_awaited()
        cluster_utils.run_pre_scale_in_tasks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_scan_failure_is_wrapped(self, reconciler, inventory):
        inventory.scan.side_effect = RuntimeError("nova down")

        with pytest.raises(ScalingError) as exc_info:
            await reconciler.reconcile(3, CONFIG)

        assert exc_info.value.action == "count"


class TestInstanceContext:
    """Failures inside a batch keep the instance they happened on."""

    @pytest.fixture
    def driver(self, compute, network):
        return InstanceLifecycle(
            compute=compute,
            network=network,
            floating_ips=FloatingIPRegistry(),
            action_timeout=0.05,
            poll_interval=0,
        )

    @pytest.mark.asyncio
    async def test_scale_in_provider_error_carries_instance_id(
        self, reconciler, driver, compute, cluster_utils
    ):
        request = httpx.Request("DELETE", "http://nova:8774/v2.1/servers/w-b")
        compute.delete_server = AsyncMock(side_effect=httpx.HTTPStatusError(
            "409 Conflict", request=request, response=httpx.Response(409, request=request)
        ))
        reconciler.lifecycle = driver
        reconciler.settings = TargetConfig(id_attribute="meta.server_id")

        with pytest.raises(ScalingError) as exc_info:
            await reconciler.reconcile(2, CONFIG)

        assert exc_info.value.action == "scale_in"
        assert exc_info.value.instance_id == "w-b"
        assert "instance_id=w-b" in str(exc_info.value)
        assert "409 Conflict" in str(exc_info.value)
        cluster_utils.run_post_scale_in_tasks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_timeout_carries_server_name(self, reconciler, driver, compute):
        async def hang(body):
            await asyncio.sleep(10)

        compute.create_server = AsyncMock(side_effect=hang)
        reconciler.lifecycle = driver

        with pytest.raises(ScalingError) as exc_info:
            await reconciler.reconcile(4, {**CONFIG, "name": "batch-worker"})

        assert exc_info.value.action == "scale_out"
        assert exc_info.value.instance_id == "batch-worker"
        assert "phase create for instance batch-worker" in str(exc_info.value)
