"""
Protocol for the orchestrator-side node pool utilities.

The target delegates everything that happens on the orchestrator's side of
a scale-in (choosing which nodes go, draining them, cleaning up afterwards)
to a ClusterUtilsProtocol implementation. NomadClusterUtils is the bundled
one; tests substitute mocks.
"""

from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

from nova_autoscaler.types import NodeResourceID


@runtime_checkable
class ClusterUtilsProtocol(Protocol):
    """
    Protocol for orchestrator node-pool utilities.

    Implementations should:
    - Report whether the node pool is in a state where scaling makes sense
    - Select and drain nodes before their instances are deleted
    - Clean up node records after the instances are gone
    """

    async def is_pool_ready(self, config: Mapping[str, str]) -> bool:
        """
        Check whether the node pool is stable.

        Returns:
            False while nodes are still joining or draining.
        """
        ...

    async def run_pre_scale_in_tasks(
        self,
        config: Mapping[str, str],
        count: int,
        remote_ids: Sequence[str],
    ) -> list[NodeResourceID]:
        """
        Select and prepare nodes for removal.

        Args:
            config: Plugin configuration.
            count: Number of nodes to remove.
            remote_ids: Identifiers of the instances currently in the pool;
                only nodes backed by one of these may be selected.

        Returns:
            The selected nodes with their remote resource identifiers.
        """
        ...

    async def run_post_scale_in_tasks(
        self,
        config: Mapping[str, str],
        nodes: Sequence[NodeResourceID],
    ) -> None:
        """Clean up after the selected nodes' instances were deleted."""
        ...
