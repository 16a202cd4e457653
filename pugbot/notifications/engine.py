"""Notification engine: send, route replies, expire and clear per-recipient prompts."""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from pydantic import ValidationError

from pugbot.config.schema import NotificationConfig
from pugbot.constants import (
    ACTIVITY_RETENTION_S,
    MATCH_QUEUE,
    NOTIFICATION_CONFIG_NAME,
    PRE_GAME,
    REPLY_REQUIRED_TYPES,
    ROLE_RETENTION,
)
from pugbot.core.event_bus import EventBus
from pugbot.core.events import NotificationEvents, ParticipationEvents
from pugbot.core.protocols import AuditSink, ConfigSource, MessagingTransport
from pugbot.errors import ConfigurationError
from pugbot.hooks.contract import (
    ExpirationRequest,
    HookName,
    HookTable,
    KeepAliveRequest,
    PreprocessRequest,
)
from pugbot.logging_config import get_logger
from pugbot.notifications.delivery import Deliverer
from pugbot.notifications.models import DEFAULT_TIERS, Notification, Tier
from pugbot.notifications.responses import ResponseKind, classify_response, normalize
from pugbot.notifications.store import NotificationStore
from pugbot.notifications.templates import format_notification
from pugbot.upgrade.results import UpgradeResult
from pugbot.utils import Clock, utc_now

if TYPE_CHECKING:
    from pugbot.upgrade.orchestrator import UpgradeOrchestrator

logger = get_logger(__name__)

ResponseHandler = Callable[[str, str, str, dict[str, Any]], Awaitable[bool]]

# type -> (event, context keys carried into the event)
_CONFIRMATIONS: dict[str, tuple[str, tuple[str, ...]]] = {
    MATCH_QUEUE: (ParticipationEvents.QUEUE_KEEP_ALIVE_CONFIRMED, ("queue_id", "match_name")),
    PRE_GAME: (ParticipationEvents.MATCH_READY_CONFIRMED, ("match_id", "match_name")),
    ROLE_RETENTION: (ParticipationEvents.ROLE_RETENTION_CONFIRMED, ("role_name", "days_remaining")),
}
_CANCELLATIONS: dict[str, tuple[str, tuple[str, ...]]] = {
    MATCH_QUEUE: (ParticipationEvents.QUEUE_KEEP_ALIVE_CANCELED, ("queue_id", "match_name")),
    PRE_GAME: (ParticipationEvents.MATCH_READY_CANCELED, ("match_id", "match_name")),
    ROLE_RETENTION: (ParticipationEvents.ROLE_RETENTION_CANCELED, ("role_name",)),
}
_AFFIRM_TYPES = (MATCH_QUEUE, PRE_GAME)
_RETAIN_TYPES = (ROLE_RETENTION,)


class NotificationEngine:
    """Owns the notification state store and every transition on it.

    Hooks, rendering and transport failures never escape ``send_notification``
    or ``check_expirations``; they are logged and the default behavior applies.
    """

    def __init__(
        self,
        *,
        transport: MessagingTransport,
        store: NotificationStore | None = None,
        bus: EventBus | None = None,
        hooks: HookTable | None = None,
        audit: AuditSink | None = None,
        config_source: ConfigSource | None = None,
        config: NotificationConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.transport = transport
        self.store = store or NotificationStore()
        self.bus = bus or EventBus()
        self.hooks = hooks or HookTable()
        self.audit = audit
        self.config_source = config_source
        self.config = config or NotificationConfig()
        self.clock = clock
        self.deliverer = Deliverer(transport)
        self.orchestrator: "UpgradeOrchestrator | None" = None
        self._response_handlers: dict[tuple[str, str], ResponseHandler] = {}
        self._last_activity: dict[str, datetime] = {}

    # Configuration

    async def load_config(self) -> NotificationConfig:
        """Reload settings from the config source.

        Raises:
            ConfigurationError: If the stored document is invalid. The
                previous settings stay in effect.
        """
        if self.config_source is None:
            return self.config
        raw = await self.config_source.get_config(NOTIFICATION_CONFIG_NAME) or {}
        try:
            self.config = NotificationConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid notification configuration: {e}") from e
        logger.info("notification configuration loaded", enabled=self.config.enabled)
        return self.config

    async def refresh_configuration(self) -> bool:
        try:
            await self.load_config()
        except ConfigurationError as exc:
            logger.error("configuration refresh failed", error=str(exc))
            return False
        return True

    def get_tier(self, type: str) -> Tier:
        trigger = self.config.triggers.get(type)
        if trigger is not None and trigger.tier is not None:
            return Tier(trigger.tier)
        return DEFAULT_TIERS.get(type, Tier.INFORMATIONAL)

    def is_type_enabled(self, type: str) -> bool:
        trigger = self.config.triggers.get(type)
        if trigger is not None and trigger.enabled is not None:
            return trigger.enabled
        return type in REPLY_REQUIRED_TYPES

    # Sending

    async def send_notification(self, recipient_id: str, type: str, context: dict[str, Any] | None = None) -> bool:
        """Deliver a ``type`` prompt to ``recipient_id`` and track it.

        Returns:
            True when delivered (or when a preprocess hook skipped the send
            and reported success), False otherwise.
        """
        config = self.config
        if not config.enabled or not self.is_type_enabled(type):
            logger.debug("notification type disabled", type=type)
            return False

        tier = self.get_tier(type)
        working: dict[str, Any] = dict(context or {})

        preprocess = self.hooks.get(HookName.PREPROCESS_NOTIFICATION)
        if preprocess is not None:
            try:
                outcome = await preprocess(PreprocessRequest(recipient_id, type, dict(working), tier))  # type: ignore[arg-type]
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.opt(exception=exc).error("preprocess hook failed", recipient_id=recipient_id, type=type)
                outcome = None
            if outcome is not None and outcome.skip:
                logger.info("notification skipped by preprocess hook", recipient_id=recipient_id, type=type)
                return True if outcome.result is None else bool(outcome.result)
            if outcome is not None and outcome.context is not None:
                working = dict(outcome.context)

        if not await self.store.reserve(recipient_id, type, config.max_pending_per_recipient):
            logger.info("max pending notifications reached", recipient_id=recipient_id, type=type)
            return False

        try:
            message = self._render(type, working)
            delivery = await self.deliverer.deliver(recipient_id, message, config.fallback_channel_for_tier(tier))
        except BaseException:
            await self.store.release(recipient_id, type)
            raise

        if not delivery.delivered:
            await self.store.release(recipient_id, type)
            logger.warning("notification not delivered", recipient_id=recipient_id, type=type, error=delivery.error)
            return False

        now = self.clock()
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            tier=tier,
            context=working,
            created_at=now,
            expires_at=self._expiry(type, working, now),
            delivered_via=delivery.channel,  # type: ignore[arg-type]
            delivery_handle=delivery.handle,
            awaiting_reply=type in REPLY_REQUIRED_TYPES,
        )
        await self.store.commit(notification)
        logger.info(
            "notification sent",
            recipient_id=recipient_id,
            type=type,
            tier=int(tier),
            delivered_via=notification.delivered_via.value,
        )

        await self.bus.emit(
            NotificationEvents.SENT,
            {
                "recipient_id": recipient_id,
                "type": type,
                "context": dict(working),
                "expires_at": notification.expires_at.isoformat() if notification.expires_at else None,
                "fallback": notification.delivered_via.value == "fallback",
            },
        )
        await self._audit(notification)
        return True

    async def send_queue_keep_alive(self, recipient_id: str, match_name: str, queue_id: str) -> bool:
        context: dict[str, Any] = {"match_name": match_name, "queue_id": queue_id}
        hook = self.hooks.get(HookName.QUEUE_KEEP_ALIVE_PROCESSING)
        if hook is not None:
            try:
                outcome = await hook(KeepAliveRequest(recipient_id, dict(context), self.store, self.clock()))  # type: ignore[arg-type]
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.opt(exception=exc).error("keep-alive hook failed", recipient_id=recipient_id)
                outcome = None
            if outcome is not None and outcome.processed:
                logger.info("keep-alive handled by hook", recipient_id=recipient_id, success=outcome.success)
                return True if outcome.success is None else bool(outcome.success)
        return await self.send_notification(recipient_id, MATCH_QUEUE, context)

    async def send_pre_game(self, recipient_id: str, match_name: str, match_id: str) -> bool:
        return await self.send_notification(recipient_id, PRE_GAME, {"match_name": match_name, "match_id": match_id})

    async def send_role_retention(self, recipient_id: str, role_name: str, days_remaining: int) -> bool:
        return await self.send_notification(
            recipient_id, ROLE_RETENTION, {"role_name": role_name, "days_remaining": days_remaining}
        )

    async def send_custom_notification(self, recipient_id: str, type: str, context: dict[str, Any] | None = None) -> bool:
        """Send a configured non-core type. Custom types need an enabled trigger."""
        return await self.send_notification(recipient_id, type, context)

    def _render(self, type: str, context: dict[str, Any]) -> str:
        try:
            return format_notification(type, context, self.config.dm_templates)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("template rendering failed", type=type, error=str(exc))
            return f"Notification: {type}"

    def _expiry(self, type: str, context: dict[str, Any], now: datetime) -> datetime | None:
        timeout = self.config.timeout_seconds.get(type, 0)
        if timeout <= 0:
            return None
        # Preprocess hooks may widen, never shorten, an expiring prompt
        requested = context.get("timeout")
        if isinstance(requested, int) and not isinstance(requested, bool) and requested > timeout:
            timeout = requested
        return now + timedelta(seconds=timeout)

    async def _audit(self, notification: Notification) -> None:
        details = {
            "context": notification.context,
            "tier": int(notification.tier),
            "delivered_via": notification.delivered_via.value,
        }
        if self.audit is not None:
            try:
                await self.audit.log_event("notification", notification.type, notification.recipient_id, details)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.error("audit sink write failed", recipient_id=notification.recipient_id, error=str(exc))

        if not (self.config.audit_log and self.config.log_channel_id):
            return
        try:
            username = await self.transport.get_username(notification.recipient_id)
            user_text = f"{username} ({notification.recipient_id})" if username else notification.recipient_id
            context_json = json.dumps(notification.context, indent=2, default=str)
            await self.deliverer.send_to_channel(
                self.config.log_channel_id,
                "**Notification Log**\n"
                f"> **Type:** {notification.type}\n"
                f"> **User:** {user_text}\n"
                f"> **Time:** {notification.created_at.strftime('%Y-%m-%d %H:%M:%S')}\n"
                f"> **Context:**\n```json\n{context_json}\n```",
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("audit channel post failed", error=str(exc))

    # Replies

    def register_response_handler(self, recipient_id: str, type: str, handler: ResponseHandler) -> None:
        """Handle free-text replies to one outstanding notification.

        ``handler(recipient_id, type, text, context)`` returns True to claim
        the reply, which clears the notification.
        """
        self._response_handlers[(recipient_id, type)] = handler

    async def handle_response(self, recipient_id: str, raw_text: str) -> bool:
        """Route a free-text reply to the recipient's reply-eligible notifications.

        A notification is reply-eligible when its type awaits a reply or a
        custom response handler is registered for it.
        """
        if not self.store.has_recipient(recipient_id):
            return False
        eligible = [
            type
            for type, notification in (await self.store.snapshot(recipient_id)).items()
            if notification.awaiting_reply or (recipient_id, type) in self._response_handlers
        ]
        if not eligible:
            return False

        kind = classify_response(raw_text)
        if kind == ResponseKind.AFFIRM:
            handled = await self._resolve(recipient_id, tuple(t for t in _AFFIRM_TYPES if t in eligible), kind)
        elif kind == ResponseKind.RETAIN:
            handled = await self._resolve(recipient_id, tuple(t for t in _RETAIN_TYPES if t in eligible), kind)
        elif kind == ResponseKind.CANCEL:
            handled = await self._resolve(recipient_id, tuple(eligible), kind)
        else:
            handled = await self._custom_response(recipient_id, normalize(raw_text))

        if handled:
            self._last_activity[recipient_id] = self.clock()
            logger.info("handled notification reply", recipient_id=recipient_id, response=kind.value)
        return handled

    async def _resolve(self, recipient_id: str, types: tuple[str, ...], kind: ResponseKind) -> bool:
        outcomes = _CANCELLATIONS if kind == ResponseKind.CANCEL else _CONFIRMATIONS
        for type in types:
            notification = await self.store.remove(recipient_id, type)
            if notification is None:
                continue
            self._response_handlers.pop(notification.key, None)
            context = notification.context
            await self.bus.emit(
                NotificationEvents.RESPONDED,
                {"recipient_id": recipient_id, "type": type, "response": kind.value, "context": dict(context)},
            )
            await self._emit_cleared(notification)
            if type in outcomes:
                event, keys = outcomes[type]
                payload: dict[str, Any] = {"recipient_id": recipient_id}
                payload.update({key: context.get(key) for key in keys})
                await self.bus.emit(event, payload)
            return True
        return False

    async def _custom_response(self, recipient_id: str, text: str) -> bool:
        for type, notification in (await self.store.snapshot(recipient_id)).items():
            handler = self._response_handlers.get((recipient_id, type))
            if handler is None:
                continue
            try:
                claimed = await handler(recipient_id, type, text, dict(notification.context))
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.error("custom response handler failed", recipient_id=recipient_id, type=type, error=str(exc))
                continue
            if claimed:
                await self.clear_notification(recipient_id, type)
                return True
        return False

    # Expiry and clearing

    async def check_expirations(self) -> list[tuple[str, str]]:
        """Run the expiration hook, then sweep whatever it did not claim."""
        now = self.clock()
        handled_keys: frozenset[tuple[str, str]] = frozenset()
        hook = self.hooks.get(HookName.CHECK_EXPIRATIONS)
        if hook is not None:
            try:
                outcome = await hook(ExpirationRequest(self.store, now))  # type: ignore[arg-type]
                if outcome is not None:
                    handled_keys = frozenset(outcome.handled_keys)  # type: ignore[union-attr]
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.opt(exception=exc).error("expiration hook failed")
            # The hook may drop or auto-confirm notifications straight on the store
            await self._prune_response_handlers()

        expired = await self.store.pop_expired(now, exclude=handled_keys)
        for notification in expired:
            self._response_handlers.pop(notification.key, None)
            logger.info("notification expired", recipient_id=notification.recipient_id, type=notification.type)
            await self.bus.emit(NotificationEvents.EXPIRED, notification.to_event())
        self._prune_activity(now)
        return [notification.key for notification in expired]

    async def _prune_response_handlers(self) -> None:
        for key in list(self._response_handlers):
            if await self.store.get(*key) is None:
                del self._response_handlers[key]

    def _prune_activity(self, now: datetime) -> None:
        cutoff = now - timedelta(seconds=ACTIVITY_RETENTION_S)
        stale = [recipient_id for recipient_id, seen in self._last_activity.items() if seen < cutoff]
        for recipient_id in stale:
            del self._last_activity[recipient_id]

    async def clear_notification(self, recipient_id: str, type: str) -> bool:
        notification = await self.store.remove(recipient_id, type)
        if notification is None:
            return False
        self._response_handlers.pop(notification.key, None)
        await self._emit_cleared(notification)
        logger.info("notification cleared", recipient_id=recipient_id, type=type)
        return True

    async def clear_notifications(self, recipient_id: str, type: str | None = None) -> int:
        if type is not None:
            return int(await self.clear_notification(recipient_id, type))
        removed = await self.store.remove_all(recipient_id)
        for notification in removed:
            self._response_handlers.pop(notification.key, None)
            await self._emit_cleared(notification)
        if removed:
            logger.info("notifications cleared", recipient_id=recipient_id, count=len(removed))
        return len(removed)

    async def _emit_cleared(self, notification: Notification) -> None:
        await self.bus.emit(NotificationEvents.CLEARED, notification.to_event())

    # Reads

    async def get_notifications(self, recipient_id: str) -> dict[str, Notification]:
        return await self.store.snapshot(recipient_id)

    async def pending_count(self, recipient_id: str) -> int:
        return await self.store.count(recipient_id)

    async def get_last_active_time(self, recipient_id: str) -> datetime | None:
        """Last handled reply, as an ActivityTracker. Forgotten after a week."""
        return self._last_activity.get(recipient_id)

    # Upgrades

    def attach_orchestrator(self, orchestrator: "UpgradeOrchestrator") -> None:
        self.orchestrator = orchestrator

    async def execute_upgrade(self, config_ref: str, *, dry_run: bool | None = None) -> UpgradeResult:
        """Run an upgrade document and reload settings when it succeeds."""
        if self.orchestrator is None:
            return UpgradeResult(success=False, error="Upgrade orchestrator not configured")
        result = await self.orchestrator.execute_upgrade(config_ref, dry_run=dry_run)
        if result.success and not result.dry_run:
            await self.refresh_configuration()
        return result
