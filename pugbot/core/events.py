"""Event names emitted by the notification engine, hook policies and upgrades."""

from typing import Dict, Literal

EventType = Literal[
    "notification:sent",
    "notification:expired",
    "notification:responded",
    "notification:cleared",
    "queue:keep_alive_confirmed",
    "queue:keep_alive_canceled",
    "queue:keep_alive_auto_confirmed",
    "queue:dnd_alert",
    "match:ready_confirmed",
    "match:ready_canceled",
    "role:retention_confirmed",
    "role:retention_canceled",
    "role:retention_auto_confirmed",
    "upgrade:start",
    "upgrade:complete",
    "upgrade:error",
    "step:start",
    "step:complete",
    "rollback:start",
    "rollback:complete",
]

EventContext = Dict[str, object]


class NotificationEvents:
    """Notification lifecycle events."""

    SENT: Literal["notification:sent"] = "notification:sent"
    EXPIRED: Literal["notification:expired"] = "notification:expired"
    RESPONDED: Literal["notification:responded"] = "notification:responded"
    CLEARED: Literal["notification:cleared"] = "notification:cleared"


class ParticipationEvents:
    """Outcomes of a recipient reply, consumed by queue, match and role services."""

    QUEUE_KEEP_ALIVE_CONFIRMED: Literal["queue:keep_alive_confirmed"] = "queue:keep_alive_confirmed"
    QUEUE_KEEP_ALIVE_CANCELED: Literal["queue:keep_alive_canceled"] = "queue:keep_alive_canceled"
    QUEUE_KEEP_ALIVE_AUTO_CONFIRMED: Literal["queue:keep_alive_auto_confirmed"] = "queue:keep_alive_auto_confirmed"
    QUEUE_DND_ALERT: Literal["queue:dnd_alert"] = "queue:dnd_alert"
    MATCH_READY_CONFIRMED: Literal["match:ready_confirmed"] = "match:ready_confirmed"
    MATCH_READY_CANCELED: Literal["match:ready_canceled"] = "match:ready_canceled"
    ROLE_RETENTION_CONFIRMED: Literal["role:retention_confirmed"] = "role:retention_confirmed"
    ROLE_RETENTION_CANCELED: Literal["role:retention_canceled"] = "role:retention_canceled"
    ROLE_RETENTION_AUTO_CONFIRMED: Literal["role:retention_auto_confirmed"] = "role:retention_auto_confirmed"


class UpgradeEvents:
    """Upgrade orchestrator progress events."""

    START: Literal["upgrade:start"] = "upgrade:start"
    COMPLETE: Literal["upgrade:complete"] = "upgrade:complete"
    ERROR: Literal["upgrade:error"] = "upgrade:error"
    STEP_START: Literal["step:start"] = "step:start"
    STEP_COMPLETE: Literal["step:complete"] = "step:complete"
    ROLLBACK_START: Literal["rollback:start"] = "rollback:start"
    ROLLBACK_COMPLETE: Literal["rollback:complete"] = "rollback:complete"
