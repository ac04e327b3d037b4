"""
Nomad implementation of the cluster utilities used around scale-in.

NomadClusterUtils talks to the Nomad HTTP API through an injected
httpx.AsyncClient (base_url set to the Nomad address). It:

- reports the pool as not ready while any member node is initializing or
  draining
- selects the nodes to remove, restricted to nodes backed by instances
  currently in the Nova pool, ordered by the configured strategy
- drains the selected nodes and waits for the drains to finish
- optionally purges the node records after the instances are gone

Pool membership on the Nomad side is given by the node_class, datacenter
and node_pool config keys (all optional, all must match when set).
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from nova_autoscaler.api_types import NomadAllocationStub, NomadNodeStub
from nova_autoscaler.config import is_set, parse_duration
from nova_autoscaler.exceptions import ConfigError, NodeIdentityError, NodeSelectionError
from nova_autoscaler.identity import NodeAttributeLookup
from nova_autoscaler.types import NodeResourceID

logger = logging.getLogger(__name__)

KEY_NODE_CLASS = "node_class"
KEY_DATACENTER = "datacenter"
KEY_NODE_POOL = "node_pool"
KEY_DRAIN_DEADLINE = "node_drain_deadline"
KEY_DRAIN_IGNORE_SYSTEM_JOBS = "node_drain_ignore_system_jobs"
KEY_SELECTOR_STRATEGY = "node_selector_strategy"
KEY_PURGE = "node_purge"

DEFAULT_DRAIN_DEADLINE = 15 * 60.0
DEFAULT_DRAIN_POLL_INTERVAL = 2.0

STRATEGY_LEAST_BUSY = "least_busy"
STRATEGY_NEWEST = "newest_create_index"
STRATEGY_OLDEST = "oldest_create_index"
STRATEGIES = (STRATEGY_LEAST_BUSY, STRATEGY_NEWEST, STRATEGY_OLDEST)

_ACTIVE_ALLOC_STATES = frozenset({"pending", "running"})


def _pool_filter(config: Mapping[str, str]) -> dict[str, str]:
    return {
        "NodeClass": config.get(KEY_NODE_CLASS, ""),
        "Datacenter": config.get(KEY_DATACENTER, ""),
        "NodePool": config.get(KEY_NODE_POOL, ""),
    }


def _in_pool(node: NomadNodeStub, wanted: Mapping[str, str]) -> bool:
    return all(not value or getattr(node, field) == value for field, value in wanted.items())


@dataclass
class NomadClusterUtils:
    """
    Nomad API backed cluster utilities.

    Attributes:
        http: Pre-configured httpx.AsyncClient with base_url set to the
            Nomad address and the X-Nomad-Token header when ACLs are on.
        node_lookup: Reads the instance identifier off a Nomad node.
        poll_interval: Seconds between drain status checks.

    Example:
        async with httpx.AsyncClient(base_url="http://nomad:4646") as http:
            utils = NomadClusterUtils(http=http, node_lookup=lookup)
            if await utils.is_pool_ready(config):
                nodes = await utils.run_pre_scale_in_tasks(config, 2, member_ids)
    """

    http: httpx.AsyncClient
    node_lookup: NodeAttributeLookup
    poll_interval: float = DEFAULT_DRAIN_POLL_INTERVAL

    # -------------------------------------------------------------------------
    # Nomad API
    # -------------------------------------------------------------------------

    async def list_pool_nodes(self, config: Mapping[str, str]) -> list[NomadNodeStub]:
        """List Nomad nodes matching the pool filter. Calls GET /v1/nodes."""
        response = await self.http.get("/v1/nodes")
        response.raise_for_status()

        wanted = _pool_filter(config)
        nodes = [NomadNodeStub.model_validate(n) for n in response.json()]
        return [n for n in nodes if _in_pool(n, wanted)]

    async def get_node(self, node_id: str) -> dict[str, Any]:
        """Get the full node document. Calls GET /v1/node/{id}."""
        response = await self.http.get(f"/v1/node/{node_id}")
        response.raise_for_status()
        return response.json()

    async def count_active_allocations(self, node_id: str) -> int:
        """Count pending and running allocations on a node."""
        response = await self.http.get(f"/v1/node/{node_id}/allocations")
        response.raise_for_status()

        allocs = [NomadAllocationStub.model_validate(a) for a in response.json()]
        return sum(1 for a in allocs if a.ClientStatus in _ACTIVE_ALLOC_STATES)

    async def drain_node(self, node_id: str, deadline: float, ignore_system_jobs: bool) -> None:
        """Start draining a node. Calls POST /v1/node/{id}/drain."""
        response = await self.http.post(
            f"/v1/node/{node_id}/drain",
            json={
                "DrainSpec": {
                    "Deadline": int(deadline * 1e9),
                    "IgnoreSystemJobs": ignore_system_jobs,
                },
                "Meta": {"message": "draining node for scale in"},
            },
        )
        response.raise_for_status()

    async def purge_node(self, node_id: str) -> None:
        """Remove a node record. Calls POST /v1/node/{id}/purge."""
        response = await self.http.post(f"/v1/node/{node_id}/purge")
        response.raise_for_status()

    async def wait_for_drain(self, node_id: str) -> None:
        """Poll until the node no longer carries a drain strategy."""
        while True:
            node = await self.get_node(node_id)
            if node.get("DrainStrategy") is None:
                return
            await asyncio.sleep(self.poll_interval)

    # -------------------------------------------------------------------------
    # ClusterUtilsProtocol
    # -------------------------------------------------------------------------

    async def is_pool_ready(self, config: Mapping[str, str]) -> bool:
        for node in await self.list_pool_nodes(config):
            if node.Status == "initializing" or node.Drain:
                logger.debug(f"node pool not ready, node_id={node.ID} status={node.Status}")
                return False
        return True

    async def run_pre_scale_in_tasks(
        self,
        config: Mapping[str, str],
        count: int,
        remote_ids: Sequence[str],
    ) -> list[NodeResourceID]:
        """
        Select count nodes, drain them and wait for the drains.

        Raises:
            ConfigError: On an unknown selector strategy or bad drain deadline.
            NodeSelectionError: If no node backed by a pool instance is eligible.
        """
        strategy = config.get(KEY_SELECTOR_STRATEGY) or STRATEGY_LEAST_BUSY
        if strategy not in STRATEGIES:
            raise ConfigError(
                KEY_SELECTOR_STRATEGY, f"unknown strategy {strategy!r}, expected one of {STRATEGIES}"
            )
        deadline = DEFAULT_DRAIN_DEADLINE
        if config.get(KEY_DRAIN_DEADLINE):
            try:
                deadline = parse_duration(config[KEY_DRAIN_DEADLINE])
            except ValueError as e:
                raise ConfigError(KEY_DRAIN_DEADLINE, f"failed to parse duration: {e}") from e

        candidates = await self._candidates(config, set(remote_ids))
        if not candidates:
            raise NodeSelectionError(count, "no ready, eligible nodes backed by pool instances")
        if len(candidates) < count:
            logger.warning(
                f"fewer nodes eligible than requested, requested={count} eligible={len(candidates)}"
            )

        selected = (await self._order(candidates, strategy))[:count]

        ignore_system = is_set(config, KEY_DRAIN_IGNORE_SYSTEM_JOBS)
        for node, _ in selected:
            logger.debug(f"draining node, node_id={node.ID}")
            await self.drain_node(node.ID, deadline, ignore_system)
        for node, _ in selected:
            await self.wait_for_drain(node.ID)
            logger.debug(f"node drain complete, node_id={node.ID}")

        return [NodeResourceID(node_id=node.ID, remote_resource_id=rid) for node, rid in selected]

    async def run_post_scale_in_tasks(
        self,
        config: Mapping[str, str],
        nodes: Sequence[NodeResourceID],
    ) -> None:
        if not is_set(config, KEY_PURGE):
            return
        for node in nodes:
            logger.debug(f"purging node, node_id={node.node_id}")
            await self.purge_node(node.node_id)

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    async def _candidates(
        self, config: Mapping[str, str], remote_ids: set[str]
    ) -> list[tuple[NomadNodeStub, str]]:
        candidates = []
        for node in await self.list_pool_nodes(config):
            if node.Status != "ready" or node.Drain or node.SchedulingEligibility != "eligible":
                continue
            try:
                remote_id = self.node_lookup(await self.get_node(node.ID))
            except NodeIdentityError as e:
                logger.warning(f"skipping node without identity, node_id={node.ID}: {e}")
                continue
            if remote_ids and remote_id not in remote_ids:
                continue
            candidates.append((node, remote_id))
        return candidates

    async def _order(
        self, candidates: list[tuple[NomadNodeStub, str]], strategy: str
    ) -> list[tuple[NomadNodeStub, str]]:
        if strategy == STRATEGY_NEWEST:
            return sorted(candidates, key=lambda c: c[0].CreateIndex, reverse=True)
        if strategy == STRATEGY_OLDEST:
            return sorted(candidates, key=lambda c: c[0].CreateIndex)

        load = {node.ID: await self.count_active_allocations(node.ID) for node, _ in candidates}
        return sorted(candidates, key=lambda c: load[c[0].ID])
