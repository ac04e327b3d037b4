"""
User-data template rendering for new instances.

Templates use "{{ .Variable }}" placeholders, the same syntax operators
already use in their cloud-init templates. Available variables:

- Name: final server name
- AZ: assigned availability zone ("" when the provider picks)
- RandomUUID: the instance's random UUID
- ShortRandomUUID: first 13 characters of RandomUUID
- PoolName: pool the instance belongs to

Only plain variable substitution is supported. Control actions such as
"{{ if .AZ }}...{{ end }}", "range", "with" or trim markers ("{{-") are a
render failure rather than being copied into the user data. Any other
"{{ ... }}" text is left untouched. Referencing an unknown variable is a
render failure.
"""

import re
import string
from pathlib import Path

from nova_autoscaler.exceptions import UserDataError
from nova_autoscaler.types import InstanceSlot


# Actions that need a full template engine.
UNSUPPORTED_ACTION = re.compile(
    r"\{\{-|-\}\}|\{\{\s*(?:if|else|end|range|with|define|template|block)\b"
)


class UserDataTemplate(string.Template):
    """string.Template matching only "{{ .Name }}" placeholders."""

    pattern = r"""
    \{\{\s*\.(?:
      (?P<named>[_a-z][_a-z0-9]*)\s*\}\}
      | (?P<braced>(?!))
      | (?P<escaped>(?!))
      | (?P<invalid>(?!))
    )
    """


def template_variables(slot: InstanceSlot, pool: str) -> dict[str, str]:
    return {
        "Name": slot.name,
        "AZ": slot.availability_zone,
        "RandomUUID": slot.random_uuid,
        "ShortRandomUUID": slot.short_uuid,
        "PoolName": pool,
    }


def render_user_data(path: str, slot: InstanceSlot, pool: str) -> bytes:
    """
    Render the template at path for one instance.

    Raises:
        UserDataError: If the file cannot be read, uses a control action
            or references an unknown variable.
    """
    try:
        source = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise UserDataError(path, f"error parsing template file: {e}") from e

    unsupported = UNSUPPORTED_ACTION.search(source)
    if unsupported:
        raise UserDataError(path, f"unsupported template action {unsupported.group(0)!r}")

    try:
        rendered = UserDataTemplate(source).substitute(template_variables(slot, pool))
    except KeyError as e:
        raise UserDataError(path, f"unknown template variable {e.args[0]}") from e
    return rendered.encode("utf-8")
