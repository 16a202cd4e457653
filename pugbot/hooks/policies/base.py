"""Collaborators shared by the default hook policies."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from pugbot.core.bindings import HandlerRegistry
from pugbot.core.event_bus import EventBus
from pugbot.core.protocols import (
    ActivityTracker,
    MessagingTransport,
    PreferenceLookup,
    QueueHistory,
    QueueMembership,
)
from pugbot.logging_config import get_logger
from pugbot.utils import Clock, utc_now

logger = get_logger(__name__)

ONLINE = "online"
IDLE = "idle"
DND = "dnd"
OFFLINE = "offline"


@dataclass
class HookContext:
    """Everything a policy may consult. Absent collaborators are skipped."""

    bus: EventBus
    transport: MessagingTransport | None = None
    queues: QueueMembership | None = None
    activity: ActivityTracker | None = None
    preferences: PreferenceLookup | None = None
    history: QueueHistory | None = None
    handlers: HandlerRegistry = field(default_factory=HandlerRegistry)
    clock: Clock = utc_now

    def now(self) -> datetime:
        return self.clock()

    async def presence(self, recipient_id: str, default: str) -> str:
        if self.transport is None:
            return default
        try:
            return await self.transport.get_presence(recipient_id) or default
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("presence lookup failed", recipient_id=recipient_id, error=str(exc))
            return default

    async def last_active(self, recipient_id: str) -> datetime | None:
        if self.activity is None:
            return None
        try:
            return await self.activity.get_last_active_time(recipient_id)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("activity lookup failed", recipient_id=recipient_id, error=str(exc))
            return None

    def custom_handler(self, name: str | None) -> Callable[..., Awaitable[Any]] | None:
        if not name:
            return None
        handler = self.handlers.get(name)
        if handler is None:
            logger.warning("custom hook handler not registered", handler=name)
        return handler  # type: ignore[return-value]
