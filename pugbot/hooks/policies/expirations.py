"""Default ``check_expirations`` policy.

Looks only at notifications that are expired or about to expire and claims
the ones it acts on; everything it leaves alone falls through to the engine's
default sweep.
"""

from __future__ import annotations

from datetime import timedelta

from pugbot.constants import MATCH_QUEUE, PRE_GAME, ROLE_RETENTION
from pugbot.core.events import ParticipationEvents
from pugbot.hooks.contract import ExpirationRequest, ExpirationResult
from pugbot.hooks.policies.base import IDLE, ONLINE, HookContext
from pugbot.logging_config import get_logger
from pugbot.notifications.models import Notification, Tier

logger = get_logger(__name__)


class ExpirationPolicy:
    def __init__(
        self,
        ctx: HookContext,
        *,
        handler: str | None = None,
        grace_seconds: float = 30,
        warning_window_seconds: float = 30,
        retention_activity_hours: float = 48,
        max_extensions: int = 1,
    ) -> None:
        self.ctx = ctx
        self.handler = handler
        self.grace_seconds = grace_seconds
        self.warning_window_seconds = warning_window_seconds
        self.retention_activity_window = timedelta(hours=retention_activity_hours)
        self.max_extensions = max_extensions

    async def __call__(self, request: ExpirationRequest) -> ExpirationResult:
        handler = self.ctx.custom_handler(self.handler)
        if handler is not None:
            outcome = await handler(request)
            if isinstance(outcome, ExpirationResult) and outcome.handled:
                return outcome

        handled: set[tuple[str, str]] = set()
        for notification in await request.store.all_notifications():
            if notification.expires_at is None:
                continue
            remaining = (notification.expires_at - request.now).total_seconds()
            expired = remaining <= 0
            about_to_expire = not expired and remaining <= self.warning_window_seconds
            if not (expired or about_to_expire):
                continue

            if notification.tier == Tier.CRITICAL and notification.type in (MATCH_QUEUE, PRE_GAME):
                if about_to_expire and await self._grant_grace(request, notification):
                    handled.add(notification.key)
                    continue
                if notification.type == MATCH_QUEUE and not await self._still_queued(notification):
                    logger.info("dropping match_queue; recipient left the queue", recipient_id=notification.recipient_id)
                    await request.store.remove(*notification.key)
                    handled.add(notification.key)
            elif notification.tier == Tier.IMPORTANT and notification.type == ROLE_RETENTION:
                if await self._recently_active(request, notification):
                    logger.info("auto-confirming role retention", recipient_id=notification.recipient_id)
                    await self.ctx.bus.emit(
                        ParticipationEvents.ROLE_RETENTION_AUTO_CONFIRMED,
                        {
                            "recipient_id": notification.recipient_id,
                            "role_name": notification.context.get("role_name"),
                            "reason": "recent_activity",
                        },
                    )
                    await request.store.remove(*notification.key)
                    handled.add(notification.key)

        return ExpirationResult(handled=bool(handled), handled_keys=frozenset(handled))

    async def _grant_grace(self, request: ExpirationRequest, notification: Notification) -> bool:
        if notification.extensions >= self.max_extensions:
            return False
        status = await self.ctx.presence(notification.recipient_id, default="unknown")
        if status not in (ONLINE, IDLE):
            return False
        if not await request.store.extend(notification.recipient_id, notification.type, self.grace_seconds):
            return False
        logger.info(
            "extended expiry for reachable recipient",
            recipient_id=notification.recipient_id,
            type=notification.type,
            seconds=self.grace_seconds,
        )
        if notification.type == PRE_GAME:
            await self._send_reminder(notification.recipient_id)
        return True

    async def _send_reminder(self, recipient_id: str) -> None:
        if self.ctx.transport is None:
            return
        try:
            user = await self.ctx.transport.get_user(recipient_id)
            if user is not None:
                await user.send(
                    f"⚠️ **REMINDER:** Your match is starting! Please respond within {int(self.grace_seconds)} seconds!"
                )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("reminder delivery failed", recipient_id=recipient_id, error=str(exc))

    async def _still_queued(self, notification: Notification) -> bool:
        if self.ctx.queues is None:
            return True
        try:
            return await self.ctx.queues.is_user_in_queue(
                notification.recipient_id, notification.context.get("queue_id")
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("queue membership lookup failed", recipient_id=notification.recipient_id, error=str(exc))
            return True

    async def _recently_active(self, request: ExpirationRequest, notification: Notification) -> bool:
        last_active = await self.ctx.last_active(notification.recipient_id)
        return last_active is not None and request.now - last_active < self.retention_activity_window
