"""
NovaTarget - OpenStack Nova implementation of an autoscaler target.

NovaTarget is the surface the orchestrator's policy engine drives:

- set_config: parse plugin settings, authenticate, discover AZs and the
  compute microversion, build node identity and cluster utilities
- plugin_info: name and type of the plugin
- scale: reconcile the pool toward a desired count
- status: report readiness and current count of the pool

Discovery failures at setup are logged and tolerated: the target falls back
to the default microversion and to no default AZs. Configuration and
authentication failures are fatal.

Example:
    target = NovaTarget()
    await target.set_config({"pool_name": "workers", "image_name": "ubuntu",
                             "flavor_name": "m1.small"})
    status = await target.status(config)
    await target.scale(ScalingAction(count=status.count + 2), config)
    await target.aclose()
"""

import asyncio
import logging
from collections.abc import Mapping

import httpx
from pydantic import ValidationError

from nova_autoscaler.cache import FloatingIPRegistry, ResolverCache
from nova_autoscaler.config import KEY_POOL_NAME, TargetConfig, require_pool_name
from nova_autoscaler.exceptions import (
    ActionTimeoutError,
    ScalingError,
    TargetNotConfiguredError,
)
from nova_autoscaler.factory import OpenStackClients, create_nomad_http, create_openstack_clients
from nova_autoscaler.identity import build_identity
from nova_autoscaler.inventory import PoolInventory
from nova_autoscaler.lifecycle import DEFAULT_POLL_INTERVAL, InstanceLifecycle
from nova_autoscaler.nomad import NomadClusterUtils
from nova_autoscaler.protocols import ClusterUtilsProtocol
from nova_autoscaler.reconciler import Reconciler
from nova_autoscaler.settings import NomadSettings, OpenStackSettings
from nova_autoscaler.types import PluginInfo, ScalingAction, TargetStatus

logger = logging.getLogger(__name__)

PLUGIN_NAME = "os-nova"
PLUGIN_TYPE = "target"
PLUGIN_INFO = PluginInfo(name=PLUGIN_NAME, plugin_type=PLUGIN_TYPE)


class NovaTarget:
    """
    Autoscaler target scaling a tagged pool of Nova servers.

    Clients and cluster utilities can be injected (tests, or callers that
    manage their own connections); otherwise set_config creates them from
    OS_* / NOMAD_* environment variables and plugin config overrides.

    Attributes:
        config: Last configuration passed to set_config.
        settings: Parsed plugin-wide settings.
        default_zones: AZs discovered at setup.
    """

    def __init__(
        self,
        clients: OpenStackClients | None = None,
        cluster_utils: ClusterUtilsProtocol | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.config: dict[str, str] = {}
        self.settings: TargetConfig | None = None
        self.default_zones: list[str] = []
        self._clients = clients
        self._owns_clients = clients is None
        self._cluster_utils = cluster_utils
        self._nomad_http: httpx.AsyncClient | None = None
        self._poll_interval = poll_interval
        self._cache = ResolverCache()
        self._floating_ips = FloatingIPRegistry()
        self._reconciler: Reconciler | None = None

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    async def set_config(self, config: Mapping[str, str]) -> None:
        """
        Configure the target.

        Raises:
            ConfigError: On invalid durations or ignored states.
            AuthenticationError: If Keystone rejects the credentials.
        """
        self.config = dict(config)
        settings = TargetConfig.from_mapping(config)

        if self._owns_clients:
            if self._clients is not None:
                await self._clients.aclose()
            os_settings = OpenStackSettings().with_overrides(config)
            self._clients = await create_openstack_clients(os_settings)
        clients = self._clients
        assert clients is not None

        await self._discover_zones(clients)
        await self._discover_microversion(clients)

        node_lookup, identity = build_identity(settings.name_attribute, settings.id_attribute)
        if self._cluster_utils is None or self._nomad_http is not None:
            if self._nomad_http is not None:
                await self._nomad_http.aclose()
            self._nomad_http = create_nomad_http(NomadSettings().with_overrides(config))
            self._cluster_utils = NomadClusterUtils(http=self._nomad_http, node_lookup=node_lookup)

        self.settings = settings
        self._reconciler = Reconciler(
            compute=clients.compute,
            image=clients.image,
            network=clients.network,
            inventory=PoolInventory(clients.compute, identity, settings.ignored_states),
            lifecycle=InstanceLifecycle(
                compute=clients.compute,
                network=clients.network,
                floating_ips=self._floating_ips,
                action_timeout=settings.action_timeout,
                poll_interval=self._poll_interval,
            ),
            cluster_utils=self._cluster_utils,
            settings=settings,
            cache=self._cache,
            default_zones=self.default_zones,
        )
        logger.info(
            f"completed set-up of plugin, id_mode={settings.id_mode} "
            f"microversion={clients.compute.microversion}"
        )

    async def _discover_zones(self, clients: OpenStackClients) -> None:
        try:
            zones = await clients.compute.list_availability_zones()
        except (httpx.HTTPError, ValidationError) as e:
            logger.warning(f"failed to list nova availability zones: {e}")
            return
        if not zones:
            logger.warning("no information about availability zones was discovered")
            return
        logger.info(f"discovered availability zones {zones}, saving as default")
        self.default_zones = zones

    async def _discover_microversion(self, clients: OpenStackClients) -> None:
        try:
            current = await clients.compute.current_microversion()
        except (httpx.HTTPError, ValidationError) as e:
            logger.warning(f"failed to list compute api versions: {e}")
            return
        if current:
            clients.compute.microversion = current
            logger.info(f"discovered current compute microversion {current}, making it the used one")

    # -------------------------------------------------------------------------
    # Target surface
    # -------------------------------------------------------------------------

    def plugin_info(self) -> PluginInfo:
        return PLUGIN_INFO

    def _require_reconciler(self) -> tuple[Reconciler, TargetConfig]:
        if self._reconciler is None or self.settings is None:
            raise TargetNotConfiguredError()
        return self._reconciler, self.settings

    async def scale(self, action: ScalingAction, config: Mapping[str, str]) -> None:
        """
        Reconcile the pool toward action.count.

        A dry-run action returns immediately without touching the provider.

        Raises:
            ConfigError: If pool_name is missing.
            ScalingError: If counting or scaling fails or the scale timeout
                expires.
        """
        if action.is_dry_run:
            logger.debug("dry-run scaling action, nothing to do")
            return

        pool = require_pool_name(config)
        reconciler, settings = self._require_reconciler()

        try:
            await asyncio.wait_for(
                reconciler.reconcile(action.count, config), timeout=settings.scale_timeout
            )
        except asyncio.TimeoutError as e:
            raise ScalingError(
                "scale", pool, ActionTimeoutError("", "scale", settings.scale_timeout)
            ) from e

    async def status(self, config: Mapping[str, str]) -> TargetStatus:
        """
        Report the pool status.

        The orchestrator-side node pool check runs first; while it reports
        not ready, the provider is not queried at all.

        Raises:
            ConfigError: If pool_name is missing.
            ScalingError: If the readiness check or the count fails.
        """
        reconciler, settings = self._require_reconciler()

        try:
            ready = await reconciler.cluster_utils.is_pool_ready(config)
        except Exception as e:
            raise ScalingError("status", config.get(KEY_POOL_NAME, ""), e) from e
        if not ready:
            return TargetStatus(ready=False)

        pool = require_pool_name(config)
        try:
            scan = await asyncio.wait_for(
                reconciler.scan(pool), timeout=settings.status_timeout
            )
        except asyncio.TimeoutError as e:
            raise ScalingError(
                "count", pool, ActionTimeoutError("", "status", settings.status_timeout)
            ) from e

        return TargetStatus(ready=scan.total == scan.ready, count=scan.total)

    async def aclose(self) -> None:
        """Close the HTTP clients created by set_config."""
        if self._nomad_http is not None:
            await self._nomad_http.aclose()
            self._nomad_http = None
        if self._owns_clients and self._clients is not None:
            await self._clients.aclose()
            self._clients = None
