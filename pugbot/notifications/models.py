"""Notification data model."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from pugbot.constants import MATCH_QUEUE, PRE_GAME, ROLE_RETENTION


class Tier(IntEnum):
    """Delivery priority. Lower is more urgent."""

    CRITICAL = 0
    IMPORTANT = 1
    INFORMATIONAL = 2


class DeliveryChannel(str, Enum):
    DIRECT = "direct"
    FALLBACK = "fallback"


DEFAULT_TIERS: dict[str, Tier] = {
    MATCH_QUEUE: Tier.CRITICAL,
    PRE_GAME: Tier.CRITICAL,
    ROLE_RETENTION: Tier.IMPORTANT,
    "match_result": Tier.IMPORTANT,
}


@dataclass
class Notification:
    """One outstanding prompt for a (recipient, type) pair."""

    recipient_id: str
    type: str
    tier: Tier
    context: dict[str, Any]
    created_at: datetime
    # None means the notification never expires
    expires_at: datetime | None = None
    delivered_via: DeliveryChannel = DeliveryChannel.DIRECT
    delivery_handle: str | None = None
    awaiting_reply: bool = False
    extensions: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return (self.recipient_id, self.type)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def copy(self) -> "Notification":
        return replace(self, context=dict(self.context))

    def to_event(self) -> dict[str, Any]:
        return {"recipient_id": self.recipient_id, "type": self.type, "context": dict(self.context)}
