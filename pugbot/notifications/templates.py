"""Message templates with ``{key}`` substitution.

Rendering never raises: placeholders with no value in the context are left
verbatim, so a template typo shows up in the message rather than failing the
send.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from pugbot.constants import MATCH_QUEUE, PRE_GAME, ROLE_RETENTION

DEFAULT_TEMPLATES: dict[str, str] = {
    MATCH_QUEUE: "**Queue Keep-Alive** for {match_name} - Reply with `!ready` to stay in queue!",
    PRE_GAME: "**Match Ready!** Your match {match_name} is about to start. Reply with `!ready` to confirm.",
    ROLE_RETENTION: "**Role Retention** - Reply with `!active` to keep your {role_name} role.",
}

_PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")


def template_for(type: str, overrides: Mapping[str, str] | None = None) -> str:
    if overrides and type in overrides:
        return overrides[type]
    return DEFAULT_TEMPLATES.get(type, f"Notification: {type}")


def render(template: str, context: Mapping[str, Any]) -> str:
    def substitute(match: re.Match[str]) -> str:
        value = context.get(match.group(1))
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER_RE.sub(substitute, template)


def format_notification(type: str, context: Mapping[str, Any], overrides: Mapping[str, str] | None = None) -> str:
    return render(template_for(type, overrides), context)
