"""``{channel:x}``, ``{role:x}`` and ``{config:x}`` placeholder resolution.

Values come from the orchestrator's resource cache, filled by earlier steps.
Unresolved placeholders are left verbatim.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

_TEMPLATE_RE = re.compile(r"\{(channel|role|config):([^{}]+)\}")


@dataclass
class ResourceCache:
    channels: dict[str, str] = field(default_factory=dict)
    roles: dict[str, str] = field(default_factory=dict)
    config_values: dict[str, Any] = field(default_factory=dict)

    def scope(self, name: str) -> dict[str, Any]:
        if name == "channel" or name == "channels":
            return self.channels
        if name == "role" or name == "roles":
            return self.roles
        if name == "config" or name == "config_values":
            return self.config_values
        raise KeyError(f"Unknown resource scope: {name}")

    def lookup(self, scope: str, key: str) -> Any | None:
        return self.scope(scope).get(key)


def resolve_template_values(value: Any, cache: ResourceCache) -> Any:
    if isinstance(value, str):
        whole = _TEMPLATE_RE.fullmatch(value)
        if whole:
            # A lone placeholder keeps the cached value's type
            resolved = cache.lookup(whole.group(1), whole.group(2))
            return value if resolved is None else resolved

        def substitute(match: re.Match[str]) -> str:
            resolved = cache.lookup(match.group(1), match.group(2))
            return match.group(0) if resolved is None else str(resolved)

        return _TEMPLATE_RE.sub(substitute, value)
    if isinstance(value, list):
        return [resolve_template_values(item, cache) for item in value]
    if isinstance(value, dict):
        return {key: resolve_template_values(item, cache) for key, item in value.items()}
    return value
