"""
Instance lifecycle driver: create and delete pool members.

Creation of one instance:
1. Render user data (if a template is configured)
2. Submit the server            (phase "create")
3. Poll until ACTIVE            (phase "wait_active")
4. Attach a floating IP         (phase "floating_ip", optional)

Deletion of one instance:
1. Stop and poll until SHUTOFF  (phases "stop", "wait_shutoff", optional)
2. Delete or force-delete       (phase "delete")
3. Poll until 404 / DELETED     (phase "wait_deleted")
4. Release the recorded floating IP (phase "floating_ip")

Each phase is bounded by the action timeout. A timeout or error is fatal for
the instance and aborts the remaining batch: batches run sequentially and
fail fast. Phase errors carry the instance ID, or the server name while the
create call has not returned one yet. Nothing is rolled back; a partially
created instance is left for the operator (or the next scale-in) to clean up.
"""

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from nova_autoscaler.cache import FloatingIPRegistry
from nova_autoscaler.compute_client import ComputeClient, server_create_body
from nova_autoscaler.config import DEFAULT_ACTION_TIMEOUT
from nova_autoscaler.exceptions import (
    ActionTimeoutError,
    FloatingIPError,
    InstanceActionError,
    InstanceNotFoundError,
    NovaAutoscalerError,
    UnexpectedStateError,
)
from nova_autoscaler.network_client import NetworkClient
from nova_autoscaler.types import (
    GONE_STATES,
    CreateSpec,
    InstanceId,
    InstanceSlot,
    InstanceState,
    pool_tag,
)
from nova_autoscaler.userdata import render_user_data

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0

T = TypeVar("T")


@dataclass
class InstanceLifecycle:
    """
    Drives single instances through creation and deletion.

    Attributes:
        compute: Nova client.
        network: Neutron client, required only for floating IPs.
        floating_ips: Registry of floating IPs attached by this process.
        action_timeout: Deadline in seconds for each phase.
        poll_interval: Seconds between state checks while waiting.

    Example:
        lifecycle = InstanceLifecycle(compute, network, FloatingIPRegistry())
        server_id = await lifecycle.create(spec, slot)
        await lifecycle.delete(server_id, stop_first=True)
    """

    compute: ComputeClient
    network: NetworkClient | None
    floating_ips: FloatingIPRegistry
    action_timeout: float = DEFAULT_ACTION_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL

    async def _phase(self, awaitable: Awaitable[T], instance_id: str, phase: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.action_timeout)
        except asyncio.TimeoutError as e:
            raise ActionTimeoutError(instance_id, phase, self.action_timeout) from e
        except NovaAutoscalerError:
            raise
        except Exception as e:
            raise InstanceActionError(instance_id, phase, e) from e

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def create_instances(
        self, spec: CreateSpec, slots: Sequence[InstanceSlot]
    ) -> list[InstanceId]:
        """
        Create instances one after another, stopping at the first failure.

        Returns:
            IDs of the created instances, in slot order.
        """
        created: list[InstanceId] = []
        for slot in slots:
            created.append(await self.create(spec, slot))
        return created

    async def create(self, spec: CreateSpec, slot: InstanceSlot) -> InstanceId:
        """
        Create one instance and wait until it is ACTIVE.

        Raises:
            UserDataError: If the user-data template fails to render.
            ActionTimeoutError: If a phase exceeds the action timeout.
            UnexpectedStateError: If the server goes to ERROR or vanishes.
            FloatingIPError: If the instance has no port for the floating IP.
            InstanceActionError: On provider errors, chaining the original.
        """
        user_data = None
        if spec.user_data_template:
            user_data = render_user_data(spec.user_data_template, slot, spec.pool)

        body = server_create_body(spec, slot, user_data)
        logger.debug(f"creating instance, name={slot.name} az={slot.availability_zone or '-'}")
        instance_id = await self._phase(self.compute.create_server(body), slot.name, "create")

        logger.debug(f"waiting for active status, instance_id={instance_id}")
        await self._phase(
            self._wait_for_state(instance_id, InstanceState.ACTIVE.value),
            instance_id,
            "wait_active",
        )

        if spec.floating_ip_network_id:
            await self._phase(
                self._attach_floating_ip(instance_id, spec.floating_ip_network_id),
                instance_id,
                "floating_ip",
            )

        logger.debug(f"instance boot up completed, instance_id={instance_id}")
        return instance_id

    async def _attach_floating_ip(self, instance_id: InstanceId, network_id: str) -> None:
        if self.network is None:
            raise FloatingIPError(instance_id, "no network client configured")

        ports = await self.network.list_ports(device_id=instance_id)
        if not ports:
            raise FloatingIPError(instance_id, "instance has no network port")

        floating_ip = await self.network.create_floating_ip(network_id, ports[0].id)
        await self.floating_ips.record(instance_id, floating_ip.id)
        logger.debug(
            f"attached floating IP, instance_id={instance_id} "
            f"address={floating_ip.floating_ip_address}"
        )

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete_instances(
        self,
        pool: str,
        identifiers: Sequence[str],
        stop_first: bool = False,
        force_delete: bool = False,
        by_name: bool = False,
    ) -> None:
        """
        Delete a batch of instances sequentially, failing fast.

        Args:
            pool: Pool the instances belong to.
            identifiers: Server IDs, or server names when by_name is set.
            stop_first: Stop each instance before deleting it.
            force_delete: Use force-delete instead of a normal delete.
            by_name: Match identifiers against names of pool members.

        Raises:
            InstanceNotFoundError: In name mode, if any identifier had no
                live pool member once the scan finished.
        """
        if not by_name:
            for instance_id in identifiers:
                await self.delete(instance_id, stop_first, force_delete)
            return

        wanted = set(identifiers)
        deleted: set[str] = set()
        async for page in self.compute.iter_server_pages(pool_tag(pool)):
            for instance in page:
                if instance.name not in wanted:
                    continue
                await self.delete(instance.id, stop_first, force_delete)
                deleted.add(instance.name)

        missing = wanted - deleted
        if missing:
            raise InstanceNotFoundError(sorted(missing))

    async def delete(
        self, instance_id: InstanceId, stop_first: bool = False, force_delete: bool = False
    ) -> None:
        """
        Delete one instance and wait until it is gone.

        Raises:
            ActionTimeoutError: If a phase exceeds the action timeout.
            UnexpectedStateError: If the instance errors while stopping.
            InstanceActionError: On provider errors, chaining the original.
        """
        if stop_first:
            logger.debug(f"stopping instance, instance_id={instance_id}")
            await self._phase(self.compute.stop_server(instance_id), instance_id, "stop")
            logger.debug(f"waiting for shutoff status, instance_id={instance_id}")
            await self._phase(
                self._wait_for_state(instance_id, InstanceState.SHUTOFF.value),
                instance_id,
                "wait_shutoff",
            )
            logger.debug(f"instance shutoff completed, instance_id={instance_id}")

        logger.debug(f"deleting instance, instance_id={instance_id} force={force_delete}")
        if force_delete:
            await self._phase(self.compute.force_delete_server(instance_id), instance_id, "delete")
        else:
            await self._phase(self.compute.delete_server(instance_id), instance_id, "delete")

        logger.debug(f"waiting for instance deletion, instance_id={instance_id}")
        await self._phase(self._wait_for_gone(instance_id), instance_id, "wait_deleted")

        floating_ip_id = await self.floating_ips.get(instance_id)
        if floating_ip_id and self.network is not None:
            await self._phase(
                self.network.delete_floating_ip(floating_ip_id), instance_id, "floating_ip"
            )
            await self.floating_ips.discard(instance_id)
            logger.debug(f"released floating IP, instance_id={instance_id} id={floating_ip_id}")

        logger.debug(f"instance deletion completed, instance_id={instance_id}")

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    async def _wait_for_state(self, instance_id: InstanceId, state: str) -> None:
        while True:
            instance = await self.compute.get_server(instance_id)
            if instance is None:
                raise UnexpectedStateError(instance_id, state, "gone")
            if instance.state == state:
                return
            if instance.state == InstanceState.ERROR.value:
                raise UnexpectedStateError(instance_id, state, instance.state)
            await asyncio.sleep(self.poll_interval)

    async def _wait_for_gone(self, instance_id: InstanceId) -> None:
        while True:
            instance = await self.compute.get_server(instance_id)
            if instance is None or instance.state in GONE_STATES:
                return
            await asyncio.sleep(self.poll_interval)
