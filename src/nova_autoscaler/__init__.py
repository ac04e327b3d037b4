"""
Nova Autoscaler

Autoscaler target for pools of OpenStack Nova servers. A pool is the set of
servers carrying the tag "na_pool:<pool_name>"; the target counts them,
creates new ones spread across availability zones, and deletes the ones the
orchestrator selected after their nodes were drained.

- NovaTarget: set_config / plugin_info / scale / status surface
- Reconciler: scan, decide direction, scale out or in
- ClusterUtilsProtocol: orchestrator-side node pool hooks (Nomad bundled)
- Data Types: Instance, PoolScan, ScalingAction, TargetStatus
"""

__version__ = "0.1.0"

from nova_autoscaler.exceptions import (
    ActionTimeoutError,
    AuthenticationError,
    ConfigError,
    FloatingIPError,
    InstanceActionError,
    InstanceNotFoundError,
    NodeIdentityError,
    NodeSelectionError,
    NovaAutoscalerError,
    ResolutionError,
    ScalingError,
    TargetNotConfiguredError,
    UnexpectedStateError,
    UserDataError,
)
from nova_autoscaler.protocols import ClusterUtilsProtocol
from nova_autoscaler.reconciler import Reconciler, compute_direction
from nova_autoscaler.target import PLUGIN_INFO, NovaTarget
from nova_autoscaler.types import (
    DRY_RUN_COUNT,
    Instance,
    InstanceSlot,
    NodeResourceID,
    PluginInfo,
    PoolScan,
    ScaleDirection,
    ScalingAction,
    TargetStatus,
)

__all__ = [
    "__version__",
    # Target
    "NovaTarget",
    "PLUGIN_INFO",
    "Reconciler",
    "compute_direction",
    "ClusterUtilsProtocol",
    # Data Types
    "DRY_RUN_COUNT",
    "Instance",
    "InstanceSlot",
    "NodeResourceID",
    "PluginInfo",
    "PoolScan",
    "ScaleDirection",
    "ScalingAction",
    "TargetStatus",
    # Errors
    "NovaAutoscalerError",
    "ConfigError",
    "ResolutionError",
    "ActionTimeoutError",
    "InstanceNotFoundError",
    "UnexpectedStateError",
    "InstanceActionError",
    "FloatingIPError",
    "UserDataError",
    "ScalingError",
    "AuthenticationError",
    "NodeIdentityError",
    "NodeSelectionError",
    "TargetNotConfiguredError",
]
