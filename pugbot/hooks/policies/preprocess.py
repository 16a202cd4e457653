"""Default ``preprocess_notification`` policy: tier, presence and preference rules."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from pugbot.constants import MATCH_QUEUE, PRE_GAME, ROLE_RETENTION
from pugbot.core.events import ParticipationEvents
from pugbot.hooks.contract import PreprocessRequest, PreprocessResult
from pugbot.hooks.policies.base import DND, IDLE, OFFLINE, ONLINE, HookContext
from pugbot.logging_config import get_logger
from pugbot.notifications.models import Tier

logger = get_logger(__name__)

MIN_OFFLINE_QUEUE_TIMEOUT_S = 600
DEFAULT_QUEUE_TIMEOUT_S = 300
DND_RETENTION_EXTENSION_DAYS = 3


class PreprocessPolicy:
    def __init__(
        self,
        ctx: HookContext,
        *,
        handler: str | None = None,
        retention_activity_hours: float = 72,
    ) -> None:
        self.ctx = ctx
        self.handler = handler
        self.retention_activity_window = timedelta(hours=retention_activity_hours)

    async def __call__(self, request: PreprocessRequest) -> PreprocessResult:
        recipient_id = request.recipient_id
        context: dict[str, Any] = dict(request.context)
        status = await self.ctx.presence(recipient_id, default=ONLINE)
        skip = False
        result_value = True

        if request.type == MATCH_QUEUE:
            if await self._in_active_match(recipient_id):
                logger.info("skipping match_queue; recipient already in a match", recipient_id=recipient_id)
                skip = True
            if status in (OFFLINE, IDLE):
                context["urgent"] = True
                context["timeout"] = max(int(context.get("timeout") or DEFAULT_QUEUE_TIMEOUT_S), MIN_OFFLINE_QUEUE_TIMEOUT_S)

        elif request.type == PRE_GAME:
            if status == OFFLINE:
                context["urgent"] = True
                context["require_confirmation"] = True

        elif request.type == ROLE_RETENTION:
            if status == DND:
                context["user_status"] = DND
                context["extension_days"] = DND_RETENTION_EXTENSION_DAYS
            last_active = await self.ctx.last_active(recipient_id)
            if last_active is not None and self.ctx.now() - last_active < self.retention_activity_window:
                logger.info("auto-confirming role retention for active recipient", recipient_id=recipient_id)
                await self.ctx.bus.emit(
                    ParticipationEvents.ROLE_RETENTION_AUTO_CONFIRMED,
                    {"recipient_id": recipient_id, "role_name": context.get("role_name"), "reason": "recent_activity"},
                )
                skip = True

        elif await self._suppressed_by_tier(recipient_id, request.tier, status):
            skip = True

        handler = self.ctx.custom_handler(self.handler)
        if handler is not None:
            outcome = await handler(PreprocessRequest(recipient_id, request.type, context, request.tier))
            if isinstance(outcome, PreprocessResult):
                if outcome.skip:
                    skip = True
                    if outcome.result is not None:
                        result_value = outcome.result
                if outcome.context is not None:
                    context = dict(outcome.context)

        context["_meta"] = {
            "tier": int(request.tier),
            "user_status": status,
            "processed_at": self.ctx.now().isoformat(),
        }

        if skip:
            return PreprocessResult(skip=True, result=result_value)
        return PreprocessResult(context=context)

    async def _in_active_match(self, recipient_id: str) -> bool:
        if self.ctx.queues is None:
            return False
        try:
            return bool(await self.ctx.queues.get_user_active_matches(recipient_id))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("active match lookup failed", recipient_id=recipient_id, error=str(exc))
            return False

    async def _suppressed_by_tier(self, recipient_id: str, tier: Tier, status: str) -> bool:
        if status == DND and tier > Tier.CRITICAL:
            logger.info("suppressing notification for dnd recipient", recipient_id=recipient_id, tier=int(tier))
            return True
        if tier == Tier.INFORMATIONAL and status != ONLINE:
            logger.info("suppressing informational notification", recipient_id=recipient_id, status=status)
            return True

        if self.ctx.preferences is None:
            return False
        try:
            prefs = await self.ctx.preferences.get_notification_preferences(recipient_id)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("preference lookup failed", recipient_id=recipient_id, error=str(exc))
            return False
        max_tier = (prefs or {}).get("max_tier")
        if isinstance(max_tier, int) and tier > max_tier:
            logger.info("suppressing notification above preferred tier", recipient_id=recipient_id, tier=int(tier))
            return True
        return False
