"""Typed hook contract.

Each hook point has one request and one result type. A hook is an async
callable taking the request and returning the result. A missing hook means
the engine's default behavior.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

from pugbot.logging_config import get_logger
from pugbot.notifications.models import Tier

if TYPE_CHECKING:
    from pugbot.notifications.store import NotificationStore

logger = get_logger(__name__)


class HookName(str, Enum):
    PREPROCESS_NOTIFICATION = "preprocess_notification"
    CHECK_EXPIRATIONS = "check_expirations"
    QUEUE_KEEP_ALIVE_PROCESSING = "queue_keep_alive_processing"


@dataclass(frozen=True)
class PreprocessRequest:
    recipient_id: str
    type: str
    context: dict[str, Any]
    tier: Tier


@dataclass(frozen=True)
class PreprocessResult:
    """``skip`` short-circuits the send with ``result`` (default True)."""

    skip: bool = False
    result: bool | None = None
    context: dict[str, Any] | None = None


@dataclass(frozen=True)
class ExpirationRequest:
    store: "NotificationStore"
    now: datetime


@dataclass(frozen=True)
class ExpirationResult:
    """``handled_keys`` are (recipient_id, type) pairs the default sweep must skip."""

    handled: bool = False
    handled_keys: frozenset[tuple[str, str]] = field(default_factory=frozenset)


@dataclass(frozen=True)
class KeepAliveRequest:
    recipient_id: str
    context: dict[str, Any]
    store: "NotificationStore"
    now: datetime


@dataclass(frozen=True)
class KeepAliveResult:
    processed: bool = False
    success: bool | None = None


PreprocessHook = Callable[[PreprocessRequest], Awaitable[PreprocessResult]]
ExpirationHook = Callable[[ExpirationRequest], Awaitable[ExpirationResult]]
KeepAliveHook = Callable[[KeepAliveRequest], Awaitable[KeepAliveResult]]
Hook = Union[PreprocessHook, ExpirationHook, KeepAliveHook]


class HookTable:
    """Enum-keyed dispatch table for installed hooks."""

    def __init__(self) -> None:
        self._hooks: dict[HookName, Hook] = {}

    def install(self, name: HookName, hook: Hook) -> Hook | None:
        """Install ``hook`` and return whatever it replaced."""
        previous = self._hooks.get(name)
        self._hooks[name] = hook
        logger.info("hook installed", hook=name.value, replaced=previous is not None)
        return previous

    def remove(self, name: HookName) -> Hook | None:
        previous = self._hooks.pop(name, None)
        if previous is not None:
            logger.info("hook removed", hook=name.value)
        return previous

    def restore(self, name: HookName, hook: Hook | None) -> None:
        """Put back a previously captured entry (``None`` clears it)."""
        if hook is None:
            self._hooks.pop(name, None)
        else:
            self._hooks[name] = hook

    def get(self, name: HookName) -> Hook | None:
        return self._hooks.get(name)

    def has(self, name: HookName) -> bool:
        return name in self._hooks

    def names(self) -> list[HookName]:
        return list(self._hooks.keys())
