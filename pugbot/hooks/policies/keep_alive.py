"""Default ``queue_keep_alive_processing`` policy."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from pugbot.constants import MATCH_QUEUE
from pugbot.core.events import ParticipationEvents
from pugbot.hooks.contract import KeepAliveRequest, KeepAliveResult
from pugbot.hooks.policies.base import DND, OFFLINE, ONLINE, HookContext
from pugbot.logging_config import get_logger

logger = get_logger(__name__)


class KeepAlivePolicy:
    """Decide whether a keep-alive prompt is needed at all.

    Reliable frequent players are auto-confirmed, recently active players get
    their existing prompt extended, and do-not-disturb players are alerted
    out of band when their queue is nearly full.
    """

    def __init__(
        self,
        ctx: HookContext,
        *,
        handler: str | None = None,
        history_days: int = 7,
        frequent_threshold: int = 10,
        max_abandon_rate: float = 0.1,
        recent_activity_minutes: float = 60,
        extension_factor: float = 1.5,
        dnd_alert_percentage: float = 80,
    ) -> None:
        self.ctx = ctx
        self.handler = handler
        self.history_days = history_days
        self.frequent_threshold = frequent_threshold
        self.max_abandon_rate = max_abandon_rate
        self.recent_activity_window = timedelta(minutes=recent_activity_minutes)
        self.extension_factor = extension_factor
        self.dnd_alert_percentage = dnd_alert_percentage

    async def __call__(self, request: KeepAliveRequest) -> KeepAliveResult:
        handler = self.ctx.custom_handler(self.handler)
        if handler is not None:
            outcome = await handler(request)
            if isinstance(outcome, KeepAliveResult) and outcome.processed:
                return KeepAliveResult(processed=True, success=True if outcome.success is None else outcome.success)

        recipient_id = request.recipient_id
        queue_id = request.context.get("queue_id")
        status = await self.ctx.presence(recipient_id, default=ONLINE)
        queued, abandoned = await self._history(recipient_id)
        abandon_rate = abandoned / queued if queued else 0.0
        frequent = queued >= self.frequent_threshold
        last_active = await self.ctx.last_active(recipient_id)
        recently_active = last_active is not None and request.now - last_active < self.recent_activity_window

        profile: dict[str, Any] = {
            "status": status,
            "frequent_user": frequent,
            "recently_active": recently_active,
            "queue_abandon_rate": abandon_rate,
        }

        if status == ONLINE and frequent and abandon_rate < self.max_abandon_rate:
            logger.info("auto-confirming keep-alive for reliable player", recipient_id=recipient_id)
            await self.ctx.bus.emit(
                ParticipationEvents.QUEUE_KEEP_ALIVE_AUTO_CONFIRMED,
                {
                    "recipient_id": recipient_id,
                    "queue_id": queue_id,
                    "match_name": request.context.get("match_name"),
                    "reason": "reliable_frequent_user",
                    "user_profile": profile,
                },
            )
            return KeepAliveResult(processed=True, success=True)

        if recently_active and status != OFFLINE:
            existing = await request.store.get(recipient_id, MATCH_QUEUE)
            if existing is not None and existing.expires_at is not None:
                remaining = max((existing.expires_at - request.now).total_seconds(), 0.0)
                extended = await request.store.extend(
                    recipient_id, MATCH_QUEUE, remaining * (self.extension_factor - 1)
                )
                logger.info("extended keep-alive for active player", recipient_id=recipient_id, extended=extended)
                return KeepAliveResult(processed=True, success=extended)

        if status == DND and queue_id is not None and self.ctx.queues is not None:
            try:
                queue_status = await self.ctx.queues.get_queue_status(queue_id)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.error("queue status lookup failed", queue_id=queue_id, error=str(exc))
                queue_status = None
            if queue_status and float(queue_status.get("percentage", 0)) >= self.dnd_alert_percentage:
                await self.ctx.bus.emit(
                    ParticipationEvents.QUEUE_DND_ALERT,
                    {
                        "recipient_id": recipient_id,
                        "queue_id": queue_id,
                        "match_name": request.context.get("match_name"),
                        "queue_status": queue_status,
                    },
                )
                return KeepAliveResult(processed=True, success=True)

        return KeepAliveResult(processed=False)

    async def _history(self, recipient_id: str) -> tuple[int, int]:
        if self.ctx.history is None:
            return (0, 0)
        try:
            history = await self.ctx.history.get_user_queue_history(recipient_id, self.history_days)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("queue history lookup failed", recipient_id=recipient_id, error=str(exc))
            return (0, 0)
        history = history or {}
        return (int(history.get("queued", 0)), int(history.get("abandoned", 0)))
