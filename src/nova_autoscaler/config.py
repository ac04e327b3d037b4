"""
Plugin configuration parsing.

The orchestrator hands the target a flat mapping of string keys to string
values (the plugin's HCL block). This module turns that mapping into typed
dataclasses and rejects invalid combinations up front:

- TargetConfig: plugin-wide settings parsed once in set_config
  (timeouts, ignored states, stop/force flags, identity selectors)
- CreateConfig: per-scale-out creation settings, parsed on every
  scale-out from the config passed with the action

Example:
    ```python
    config = {"pool_name": "workers", "flavor_name": "m1.small",
              "image_id": "5c1e...", "action_timeout": "2m"}
    target_config = TargetConfig.from_mapping(config)
    create_config = CreateConfig.from_mapping(config)
    ```
"""

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from nova_autoscaler.exceptions import ConfigError
from nova_autoscaler.types import NON_IGNORABLE_STATES

logger = logging.getLogger(__name__)

# Authentication / connection
KEY_AUTH_URL = "auth_url"
KEY_PROJECT_NAME = "project_name"
KEY_PROJECT_ID = "project_id"
KEY_USERNAME = "username"
KEY_PASSWORD = "password"
KEY_REGION_NAME = "region_name"
KEY_DOMAIN_NAME = "domain_name"
KEY_CACERT_FILE = "cacert_file"
KEY_INSECURE = "insecure_skip_verify"

# Node identity
KEY_NODE_ID_ATTR = "id_attribute"
KEY_NODE_NAME_ATTR = "name_attribute"

# Instance creation
KEY_NAME = "name"
KEY_NAME_PREFIX = "name_prefix"
KEY_POOL_NAME = "pool_name"
KEY_IMAGE_ID = "image_id"
KEY_IMAGE_NAME = "image_name"
KEY_FLAVOR_ID = "flavor_id"
KEY_FLAVOR_NAME = "flavor_name"
KEY_AV_ZONES = "availability_zones"
KEY_AV_ZONES_LEGACY = "availavility_zones"
KEY_EVENLY_SPLIT_AZS = "evenly_split_azs"
KEY_NETWORK_ID = "network_id"
KEY_NETWORK_NAME = "network_name"
KEY_SERVER_GROUP_ID = "server_group_id"
KEY_FLOATING_IP_POOL = "floatingip_pool_name"
KEY_SECURITY_GROUPS = "security_groups"
KEY_USER_DATA_TEMPLATE = "user_data_template"
KEY_METADATA = "metadata"
KEY_TAGS = "tags"

# Behaviour
KEY_VALUE_SEPARATOR = "value_separator"
KEY_ACTION_TIMEOUT = "action_timeout"
KEY_SCALE_TIMEOUT = "scale_timeout"
KEY_STATUS_TIMEOUT = "status_timeout"
KEY_IGNORED_STATES = "ignored_states"
KEY_STOP_FIRST = "stop_first"
KEY_FORCE_DELETE = "force_delete"

DEFAULT_VALUE_SEPARATOR = ","
KV_SEPARATOR = "="

DEFAULT_ACTION_TIMEOUT = 90.0
DEFAULT_SCALE_TIMEOUT = 15 * 60.0
DEFAULT_STATUS_TIMEOUT = 60.0

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_BARE_NUMBER = re.compile(r"\d+(?:\.\d+)?")


def parse_duration(value: str) -> float:
    """
    Parse a Go-style duration string into seconds.

    Accepts "90s", "1m30s", "250ms", "1.5h" and bare numbers (seconds).

    Raises:
        ValueError: If the string is not a valid duration.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    if _BARE_NUMBER.fullmatch(text):
        return float(text)

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ValueError(f"invalid duration {value!r}")
    return total


def is_set(config: Mapping[str, str], key: str) -> bool:
    """Flags are on when present with a non-empty value."""
    return config.get(key, "") != ""


def split_values(value: str, separator: str = DEFAULT_VALUE_SEPARATOR) -> list[str]:
    """Split a separated list value, trimming whitespace around entries."""
    value = value.strip()
    if not value:
        return []
    return [item.strip() for item in value.split(separator)]


def parse_metadata(value: str, separator: str = DEFAULT_VALUE_SEPARATOR) -> dict[str, str]:
    """
    Parse "k1=v1,k2=v2" into a dict.

    Malformed entries are logged and skipped.
    """
    metadata: dict[str, str] = {}
    for entry in split_values(value, separator):
        kv = entry.split(KV_SEPARATOR)
        if len(kv) != 2:
            logger.warning(f"metadata value is not correctly provided, element={entry!r}")
            continue
        metadata[kv[0].strip()] = kv[1].strip()
    return metadata


def parse_ignored_states(value: str) -> frozenset[str]:
    """
    Parse the ignored_states list.

    Raises:
        ConfigError: If a non-ignorable state (ACTIVE, BUILD, REBOOT,
            HARD_REBOOT) is listed, in any letter case.
    """
    states = set()
    for name in split_values(value, ","):
        state = name.upper()
        if not state:
            continue
        if state in NON_IGNORABLE_STATES:
            raise ConfigError(KEY_IGNORED_STATES, f"state '{state}' can't be ignored")
        states.add(state)
    return frozenset(states)


def require_pool_name(config: Mapping[str, str]) -> str:
    """Return the pool name or raise ConfigError."""
    pool = config.get(KEY_POOL_NAME, "")
    if not pool:
        raise ConfigError(KEY_POOL_NAME, "required config param not found")
    return pool


def _duration(config: Mapping[str, str], key: str, default: float) -> float:
    if key not in config:
        return default
    try:
        return parse_duration(config[key])
    except ValueError as e:
        raise ConfigError(key, f"failed to parse duration: {e}") from e


@dataclass
class TargetConfig:
    """
    Plugin-wide settings, parsed once in set_config.

    Attributes:
        action_timeout: Deadline in seconds for each lifecycle phase.
        scale_timeout: Deadline in seconds for a whole scale call.
        status_timeout: Deadline in seconds for a status call.
        ignored_states: Provider states skipped by the inventory scan.
        stop_first: Stop instances before deleting them.
        force_delete: Use force-delete instead of a normal delete.
        id_attribute: Node attribute holding the server ID (ID mode).
        name_attribute: Node attribute holding the server name (name mode).
    """

    action_timeout: float = DEFAULT_ACTION_TIMEOUT
    scale_timeout: float = DEFAULT_SCALE_TIMEOUT
    status_timeout: float = DEFAULT_STATUS_TIMEOUT
    ignored_states: frozenset[str] = frozenset()
    stop_first: bool = False
    force_delete: bool = False
    id_attribute: str = ""
    name_attribute: str = ""

    @classmethod
    def from_mapping(cls, config: Mapping[str, str]) -> "TargetConfig":
        """
        Parse plugin-wide settings.

        Raises:
            ConfigError: On unparsable durations or non-ignorable states.
        """
        return cls(
            action_timeout=_duration(config, KEY_ACTION_TIMEOUT, DEFAULT_ACTION_TIMEOUT),
            scale_timeout=_duration(config, KEY_SCALE_TIMEOUT, DEFAULT_SCALE_TIMEOUT),
            status_timeout=_duration(config, KEY_STATUS_TIMEOUT, DEFAULT_STATUS_TIMEOUT),
            ignored_states=parse_ignored_states(config.get(KEY_IGNORED_STATES, "")),
            stop_first=is_set(config, KEY_STOP_FIRST),
            force_delete=is_set(config, KEY_FORCE_DELETE),
            id_attribute=config.get(KEY_NODE_ID_ATTR, ""),
            name_attribute=config.get(KEY_NODE_NAME_ATTR, ""),
        )

    @property
    def id_mode(self) -> bool:
        """True when nodes map to instances by server ID rather than name."""
        return self.id_attribute != ""


@dataclass
class CreateConfig:
    """
    Creation settings for one scale-out, before name resolution.

    Exactly one of each id/name pair is used; the ID wins when both are
    present. Network and floating IP pool are optional.
    """

    pool: str
    name: str = ""
    name_prefix: str = ""
    image_id: str = ""
    image_name: str = ""
    flavor_id: str = ""
    flavor_name: str = ""
    network_id: str = ""
    network_name: str = ""
    server_group_id: str = ""
    floating_ip_pool: str = ""
    security_groups: list[str] = field(default_factory=list)
    availability_zones: list[str] = field(default_factory=list)
    evenly_split_azs: bool = False
    user_data_template: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, config: Mapping[str, str]) -> "CreateConfig":
        """
        Parse creation settings.

        Raises:
            ConfigError: If pool_name is missing, name and name_prefix are
                both set, image or flavor is unspecified, or the user-data
                template file does not exist.
        """
        pool = require_pool_name(config)
        sep = config.get(KEY_VALUE_SEPARATOR) or DEFAULT_VALUE_SEPARATOR

        name = config.get(KEY_NAME, "")
        name_prefix = config.get(KEY_NAME_PREFIX, "")
        if name and name_prefix:
            raise ConfigError(
                KEY_NAME, f"only one of {KEY_NAME} or {KEY_NAME_PREFIX} can have value"
            )
        if not name and not name_prefix:
            name_prefix = f"{pool}-"

        if not config.get(KEY_IMAGE_ID) and not config.get(KEY_IMAGE_NAME):
            raise ConfigError(
                KEY_IMAGE_ID, f"required config param {KEY_IMAGE_ID} or {KEY_IMAGE_NAME}"
            )
        if not config.get(KEY_FLAVOR_ID) and not config.get(KEY_FLAVOR_NAME):
            raise ConfigError(
                KEY_FLAVOR_ID, f"required config param {KEY_FLAVOR_ID} or {KEY_FLAVOR_NAME}"
            )

        template = config.get(KEY_USER_DATA_TEMPLATE, "")
        if template and not os.path.isfile(template):
            raise ConfigError(
                KEY_USER_DATA_TEMPLATE, f"template file {template} does not exist"
            )

        zones = config.get(KEY_AV_ZONES) or config.get(KEY_AV_ZONES_LEGACY, "")

        return cls(
            pool=pool,
            name=name,
            name_prefix=name_prefix,
            image_id=config.get(KEY_IMAGE_ID, ""),
            image_name=config.get(KEY_IMAGE_NAME, ""),
            flavor_id=config.get(KEY_FLAVOR_ID, ""),
            flavor_name=config.get(KEY_FLAVOR_NAME, ""),
            network_id=config.get(KEY_NETWORK_ID, ""),
            network_name=config.get(KEY_NETWORK_NAME, ""),
            server_group_id=config.get(KEY_SERVER_GROUP_ID, ""),
            floating_ip_pool=config.get(KEY_FLOATING_IP_POOL, ""),
            security_groups=split_values(config.get(KEY_SECURITY_GROUPS, ""), sep),
            availability_zones=split_values(zones, sep),
            evenly_split_azs=is_set(config, KEY_EVENLY_SPLIT_AZS),
            user_data_template=template,
            metadata=parse_metadata(config.get(KEY_METADATA, ""), sep),
            tags=split_values(config.get(KEY_TAGS, ""), sep),
        )
