"""
Pool inventory: count and classify the current members of a pool.

A pool is not a stored object; its members are the servers carrying the
pool tag. Every reconciliation cycle scans the provider afresh.

Classification by provider state:
- states in the ignore set are skipped entirely
- ACTIVE counts toward total and ready
- BUILD, REBOOT, HARD_REBOOT count toward total only (in-flight transitions)
- any other state counts toward total only and is logged as unexpected

Any pagination or decoding error aborts the scan; no partial result is
returned.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from nova_autoscaler.compute_client import ComputeClient
from nova_autoscaler.types import (
    Instance,
    InstanceState,
    PoolScan,
    TRANSITIONAL_STATES,
    pool_tag,
)

logger = logging.getLogger(__name__)


@dataclass
class PoolInventory:
    """
    Scans a pool and produces counts, AZ distribution and member IDs.

    Attributes:
        compute: Nova client used to list tagged servers.
        identity: Selector returning the identifier the orchestrator's node
            mapping uses (server ID or server name).
        ignored_states: Provider states to skip. Never contains ACTIVE,
            BUILD, REBOOT or HARD_REBOOT (rejected at configuration).
    """

    compute: ComputeClient
    identity: Callable[[Instance], str]
    ignored_states: frozenset[str] = field(default_factory=frozenset)

    async def scan(self, pool: str) -> PoolScan:
        """
        Scan the pool.

        Args:
            pool: Pool name.

        Returns:
            PoolScan with total, ready, per-AZ counts and member identifiers.

        Raises:
            httpx.HTTPStatusError: On provider errors during pagination.
            pydantic.ValidationError: On malformed responses.
        """
        result = PoolScan()
        async for page in self.compute.iter_server_pages(pool_tag(pool)):
            for instance in page:
                self._classify(pool, instance, result)
        return result

    def _classify(self, pool: str, instance: Instance, result: PoolScan) -> None:
        state = instance.state.upper()
        if state in self.ignored_states:
            return

        result.total += 1
        if state == InstanceState.ACTIVE.value:
            result.ready += 1
        elif state not in TRANSITIONAL_STATES:
            logger.warning(
                f"unexpected instance state, pool_name={pool} "
                f"instance_id={instance.id} state={instance.state}"
            )

        zone = instance.availability_zone
        result.az_distribution[zone] = result.az_distribution.get(zone, 0) + 1
        result.member_ids.append(self.identity(instance))
        result.instances.append(instance)
