"""
Reconciler: move a pool's size toward the orchestrator's desired count.

Each call re-derives the direction from a fresh inventory scan; nothing is
carried between calls except the resolver cache and floating IP registry
held by the lifecycle driver.

    desired > current  ->  scale out: resolve IDs, spread new slots across
                           AZs, create instances one by one
    desired < current  ->  scale in: let the orchestrator pick and drain
                           nodes, delete their instances, run post tasks
    desired == current ->  nothing to do

Every failure reaches the caller as a ScalingError carrying the action,
pool and (when known) instance.
"""

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field

from nova_autoscaler.cache import ResolverCache
from nova_autoscaler.compute_client import ComputeClient
from nova_autoscaler.config import (
    KEY_FORCE_DELETE,
    KEY_STOP_FIRST,
    CreateConfig,
    TargetConfig,
    is_set,
    require_pool_name,
)
from nova_autoscaler.distributor import distribute_az, final_distribution
from nova_autoscaler.exceptions import ResolutionError, ScalingError
from nova_autoscaler.image_client import ImageClient
from nova_autoscaler.inventory import PoolInventory
from nova_autoscaler.lifecycle import InstanceLifecycle
from nova_autoscaler.network_client import NetworkClient
from nova_autoscaler.protocols import ClusterUtilsProtocol
from nova_autoscaler.types import (
    CreateSpec,
    InstanceSlot,
    PoolScan,
    ResourceKind,
    ScaleDirection,
)

logger = logging.getLogger(__name__)


def compute_direction(current: int, desired: int) -> tuple[int, ScaleDirection]:
    """
    Decide how far and which way to scale.

    Returns:
        (magnitude, direction); magnitude is 0 exactly when direction is NONE.
    """
    if desired < current:
        return current - desired, ScaleDirection.IN
    if desired > current:
        return desired - current, ScaleDirection.OUT
    return 0, ScaleDirection.NONE


def generate_uuid() -> str:
    """Random UUID in canonical dashed hex form."""
    return str(uuid.uuid4())


def new_slots(create_config: CreateConfig, count: int) -> list[InstanceSlot]:
    """
    Generate the per-instance slots of a scale-out batch.

    Names are the configured fixed name, or the prefix followed by the
    first 13 characters of the slot's random UUID.
    """
    slots = []
    for _ in range(count):
        random_uuid = generate_uuid()
        name = create_config.name
        if create_config.name_prefix:
            name = f"{create_config.name_prefix}{random_uuid[:13]}"
        slots.append(InstanceSlot(name=name, random_uuid=random_uuid))
    return slots


@dataclass
class Reconciler:
    """
    Top-level scale executor.

    Attributes:
        compute: Nova client (flavor lookups).
        image: Glance client (image lookups).
        network: Neutron client (network lookups), optional.
        inventory: Pool scanner.
        lifecycle: Instance create/delete driver.
        cluster_utils: Orchestrator node-pool utilities for scale-in.
        settings: Plugin-wide settings.
        cache: Name -> ID resolver cache.
        default_zones: AZs discovered at setup, used for even splitting when
            the config lists none.
    """

    compute: ComputeClient
    image: ImageClient
    network: NetworkClient | None
    inventory: PoolInventory
    lifecycle: InstanceLifecycle
    cluster_utils: ClusterUtilsProtocol
    settings: TargetConfig
    cache: ResolverCache = field(default_factory=ResolverCache)
    default_zones: list[str] = field(default_factory=list)

    async def scan(self, pool: str, action: str = "count") -> PoolScan:
        """Scan the pool, wrapping failures as ScalingError."""
        try:
            return await self.inventory.scan(pool)
        except Exception as e:
            raise ScalingError(action, pool, e) from e

    async def reconcile(self, desired: int, config: Mapping[str, str]) -> ScaleDirection:
        """
        Run one reconciliation toward the desired count.

        Returns:
            The direction that was taken.

        Raises:
            ConfigError: If pool_name is missing.
            ScalingError: On any failure while scanning or scaling.
        """
        pool = require_pool_name(config)
        scan = await self.scan(pool)

        magnitude, direction = compute_direction(scan.total, desired)
        if direction is ScaleDirection.IN:
            await self.scale_in(pool, magnitude, scan, config)
        elif direction is ScaleDirection.OUT:
            await self.scale_out(pool, magnitude, scan, config)
        else:
            logger.info(
                f"scaling not required, pool_name={pool} "
                f"current_count={scan.total} strategy_count={desired}"
            )
        return direction

    # -------------------------------------------------------------------------
    # Scale out
    # -------------------------------------------------------------------------

    async def scale_out(
        self, pool: str, count: int, scan: PoolScan, config: Mapping[str, str]
    ) -> None:
        """Create count instances, spread across the candidate AZs."""
        context = f"action=scale_out pool_name={pool} count={count}"
        try:
            logger.debug(f"getting creation data from configuration, {context}")
            create_config = CreateConfig.from_mapping(config)
            spec = await self.build_create_spec(create_config)

            slots = new_slots(create_config, count)
            if spec.evenly_split_azs:
                zones = spec.availability_zones or self.default_zones
                distribute_az(zones, scan.az_distribution, slots)
                logger.debug(
                    f"planned AZ distribution, {context} "
                    f"result={final_distribution(scan.az_distribution, slots)}"
                )

            await self.lifecycle.create_instances(spec, slots)
        except Exception as e:
            raise ScalingError("scale_out", pool, e) from e

        logger.info(f"successfully performed and verified scaling out, {context}")

    async def build_create_spec(self, create_config: CreateConfig) -> CreateSpec:
        """
        Turn creation config into a CreateSpec, resolving names to IDs.

        IDs given directly win over names; names go through the resolver
        cache so each is looked up once per process.
        """
        image_id = create_config.image_id or await self.cache.resolve(
            ResourceKind.IMAGE, create_config.image_name, self.image.image_id_from_name
        )
        flavor_id = create_config.flavor_id or await self.cache.resolve(
            ResourceKind.FLAVOR, create_config.flavor_name, self.compute.flavor_id_from_name
        )

        network_id = create_config.network_id
        if not network_id and create_config.network_name:
            network_id = await self._resolve_network(create_config.network_name)

        floating_ip_network_id = ""
        if create_config.floating_ip_pool:
            floating_ip_network_id = await self._resolve_network(create_config.floating_ip_pool)

        return CreateSpec(
            pool=create_config.pool,
            image_id=image_id,
            flavor_id=flavor_id,
            name=create_config.name,
            name_prefix=create_config.name_prefix,
            network_id=network_id,
            server_group_id=create_config.server_group_id,
            security_groups=create_config.security_groups,
            availability_zones=create_config.availability_zones,
            evenly_split_azs=create_config.evenly_split_azs,
            floating_ip_network_id=floating_ip_network_id,
            user_data_template=create_config.user_data_template,
            metadata=create_config.metadata,
            tags=create_config.tags,
        )

    async def _resolve_network(self, name: str) -> str:
        if self.network is None:
            raise ResolutionError(
                ResourceKind.NETWORK.value, name, "no network endpoint in the service catalog"
            )
        return await self.cache.resolve(ResourceKind.NETWORK, name, self.network.network_id_from_name)

    # -------------------------------------------------------------------------
    # Scale in
    # -------------------------------------------------------------------------

    async def scale_in(
        self, pool: str, count: int, scan: PoolScan, config: Mapping[str, str]
    ) -> None:
        """Remove count instances chosen by the orchestrator's pre-scale-in tasks."""
        try:
            nodes = await self.cluster_utils.run_pre_scale_in_tasks(
                config, count, scan.member_ids
            )
        except Exception as e:
            raise ScalingError("scale_in", pool, e) from e

        identifiers = [node.remote_resource_id for node in nodes]
        context = f"action=scale_in pool_name={pool} instances={identifiers}"

        stop_first = self.settings.stop_first or is_set(config, KEY_STOP_FIRST)
        force_delete = self.settings.force_delete or is_set(config, KEY_FORCE_DELETE)

        logger.debug(f"deleting Nova instances, {context}")
        try:
            await self.lifecycle.delete_instances(
                pool,
                identifiers,
                stop_first=stop_first,
                force_delete=force_delete,
                by_name=not self.settings.id_mode,
            )
        except Exception as e:
            raise ScalingError("scale_in", pool, e) from e
        logger.info(f"successfully deleted Nova instances, {context}")

        try:
            await self.cluster_utils.run_post_scale_in_tasks(config, nodes)
        except Exception as e:
            raise ScalingError("scale_in", pool, e) from e

        logger.info(f"successfully performed and verified scaling in, {context}")
