"""
Mapping between orchestrator nodes and Nova instances.

Two selectors are chosen once, at configuration time, and then invoked
uniformly:

- NodeAttributeLookup reads the remote resource identifier off a Nomad
  node, either from its Attributes or, with a "meta." prefix, from its Meta.
- InstanceIdentity picks the matching identifier off a Nova instance:
  the server ID in ID mode, the server name in name mode.

ID mode is selected by configuring id_attribute; otherwise name mode is
used with name_attribute (default "unique.hostname").
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from nova_autoscaler.exceptions import NodeIdentityError
from nova_autoscaler.types import Instance

META_PREFIX = "meta."
DEFAULT_NAME_ATTRIBUTE = "unique.hostname"


class IdentityMode(str, Enum):
    ID = "id"
    NAME = "name"


@dataclass(frozen=True)
class NodeAttributeLookup:
    """
    Reads an instance identifier from a Nomad node document.

    Attributes:
        attribute: Attribute (or meta key) name, without the "meta." prefix.
        is_meta: Read from the node's Meta map instead of Attributes.
    """

    attribute: str
    is_meta: bool = False

    @classmethod
    def from_property(cls, prop: str) -> "NodeAttributeLookup":
        if prop.startswith(META_PREFIX):
            return cls(attribute=prop[len(META_PREFIX):], is_meta=True)
        return cls(attribute=prop)

    def __call__(self, node: dict[str, Any]) -> str:
        source = node.get("Meta" if self.is_meta else "Attributes") or {}
        value = source.get(self.attribute, "")
        if not value:
            name = f"{META_PREFIX}{self.attribute}" if self.is_meta else self.attribute
            raise NodeIdentityError(name, node.get("ID", ""))
        return value


@dataclass(frozen=True)
class InstanceIdentity:
    """Returns the instance identifier matching the node lookup mode."""

    mode: IdentityMode

    def __call__(self, instance: Instance) -> str:
        if self.mode is IdentityMode.ID:
            return instance.id
        return instance.name


def build_identity(
    name_attribute: str = "", id_attribute: str = ""
) -> tuple[NodeAttributeLookup, InstanceIdentity]:
    """
    Build the node and instance selectors for a configuration.

    Args:
        name_attribute: Node attribute holding the server name.
        id_attribute: Node attribute holding the server ID. Takes priority.

    Returns:
        Tuple of (node lookup, instance identity).
    """
    if id_attribute:
        return NodeAttributeLookup.from_property(id_attribute), InstanceIdentity(IdentityMode.ID)
    prop = name_attribute or DEFAULT_NAME_ATTRIBUTE
    return NodeAttributeLookup.from_property(prop), InstanceIdentity(IdentityMode.NAME)
