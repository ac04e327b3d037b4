"""
Exception classes for pool reconciliation.

Taxonomy:
- ConfigError: invalid plugin configuration, fatal at setup
- ResolutionError: a flavor/image/network name could not be resolved
- ActionTimeoutError: a per-instance phase exceeded its deadline
- InstanceNotFoundError: requested instances missing during a name-scan delete
- UnexpectedStateError: an instance errored or vanished while being waited on
- InstanceActionError: a provider call failed during a per-instance phase
- FloatingIPError: a floating IP could not be attached to a new instance
- NodeSelectionError: no orchestrator node could be picked for scale in
- TargetNotConfiguredError: scale or status called before set_config
- NodeIdentityError: a node lacks the configured identity attribute
- UserDataError: the user-data template could not be loaded or rendered
- ScalingError: outer wrapper surfaced to the orchestrator
- AuthenticationError: Keystone rejected the credentials or lacks an endpoint

Provider transport and API errors (httpx.HTTPStatusError,
httpx.TransportError, pydantic.ValidationError) are not wrapped by the
clients. The lifecycle driver tags them with the instance and phase
(InstanceActionError) and the reconciler wraps everything in ScalingError.
Nothing here is retried by the engine.

Per project patterns:
- Inherit from a common base exception
- Store context data in attributes for error handling
- Include descriptive message with relevant details
"""


class NovaAutoscalerError(Exception):
    """Base class for all errors raised by the autoscaler."""


class ConfigError(NovaAutoscalerError):
    """
    Raised when plugin configuration is missing or invalid.

    Attributes:
        key: Configuration key at fault
        reason: What is wrong with it
    """

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"invalid configuration for {key}: {reason}")


class ResolutionError(NovaAutoscalerError):
    """
    Raised when a resource name cannot be resolved to a provider ID.

    Attributes:
        kind: Resource kind ("flavor", "image", "network")
        name: The name that was looked up
        reason: Why resolution failed
    """

    def __init__(self, kind: str, name: str, reason: str) -> None:
        self.kind = kind
        self.name = name
        self.reason = reason
        super().__init__(f"failed to find {kind} with name {name}: {reason}")


class ActionTimeoutError(NovaAutoscalerError):
    """
    Raised when a lifecycle phase does not complete within its deadline.

    Attributes:
        instance_id: Server the phase was running for ("" before creation)
        phase: Phase name (e.g. "wait_active", "wait_deleted")
        timeout: The deadline in seconds
    """

    def __init__(self, instance_id: str, phase: str, timeout: float) -> None:
        self.instance_id = instance_id
        self.phase = phase
        self.timeout = timeout
        super().__init__(
            f"timed out after {timeout:g}s in phase {phase} "
            f"for instance {instance_id or '<unassigned>'}"
        )


class InstanceNotFoundError(NovaAutoscalerError):
    """
    Raised when requested instances have no live counterpart in the pool.

    Attributes:
        identifiers: The identifiers that were not matched
    """

    def __init__(self, identifiers: list[str]) -> None:
        self.identifiers = identifiers
        names = ", ".join(identifiers)
        super().__init__(f"instance with name {names} not found")


class UserDataError(NovaAutoscalerError):
    """
    Raised when the user-data template cannot be loaded or rendered.

    Attributes:
        path: Template file path
        reason: Underlying failure
    """

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"error with user data template {path}: {reason}")


class ScalingError(NovaAutoscalerError):
    """
    Raised to the orchestrator when a scaling action fails.

    Wraps the underlying cause with the action, pool and (when known)
    instance context. Instances already created or deleted before the
    failure are left in their new state.

    Attributes:
        action: "scale", "scale_out", "scale_in", "count" or "status"
        pool: Pool name
        instance_id: Instance involved, if the cause carried one
    """

    def __init__(
        self,
        action: str,
        pool: str,
        cause: BaseException,
        instance_id: str | None = None,
    ) -> None:
        self.action = action
        self.pool = pool
        self.instance_id = instance_id or getattr(cause, "instance_id", None) or None
        context = f"action={action} pool_name={pool}"
        if self.instance_id:
            context += f" instance_id={self.instance_id}"
        super().__init__(f"failed to perform scaling action ({context}): {cause}")


class AuthenticationError(NovaAutoscalerError):
    """
    Raised when Keystone authentication or endpoint discovery fails.

    Attributes:
        reason: What went wrong
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"failed to authenticate with OpenStack: {reason}")


class UnexpectedStateError(NovaAutoscalerError):
    """
    Raised when an instance reaches a state it cannot recover from while
    waiting (ERROR, or gone while waiting for ACTIVE/SHUTOFF).

    Attributes:
        instance_id: The instance being waited on
        expected: State that was being waited for
        actual: State that was observed instead
    """

    def __init__(self, instance_id: str, expected: str, actual: str) -> None:
        self.instance_id = instance_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"instance {instance_id} reached {actual} while waiting for {expected}"
        )


class InstanceActionError(NovaAutoscalerError):
    """
    Raised when a provider call fails during a per-instance phase.

    The original error is chained as __cause__.

    Attributes:
        instance_id: Server ID, or the server name before the ID is known
        phase: Phase name (e.g. "create", "delete", "wait_deleted")
        cause: The underlying error
    """

    def __init__(self, instance_id: str, phase: str, cause: BaseException) -> None:
        self.instance_id = instance_id
        self.phase = phase
        self.cause = cause
        super().__init__(f"failed in phase {phase} for instance {instance_id}: {cause}")


class FloatingIPError(NovaAutoscalerError):
    """Raised when a floating IP cannot be attached to a new instance."""

    def __init__(self, instance_id: str, reason: str) -> None:
        self.instance_id = instance_id
        self.reason = reason
        super().__init__(f"failed to attach floating IP to instance {instance_id}: {reason}")


class NodeSelectionError(NovaAutoscalerError):
    """Raised when no Nomad node can be selected for removal."""

    def __init__(self, count: int, reason: str) -> None:
        self.count = count
        self.reason = reason
        super().__init__(f"failed to select {count} nodes for scale in: {reason}")


class TargetNotConfiguredError(NovaAutoscalerError):
    """Raised when scale or status is called before set_config."""

    def __init__(self) -> None:
        super().__init__("target is not configured, call set_config first")


class NodeIdentityError(NovaAutoscalerError):
    """Raised when a node does not carry the configured identity attribute."""

    def __init__(self, attribute: str, node_id: str = "") -> None:
        self.attribute = attribute
        self.node_id = node_id
        suffix = f" on node {node_id}" if node_id else ""
        super().__init__(f"attribute {attribute!r} not found{suffix}")
