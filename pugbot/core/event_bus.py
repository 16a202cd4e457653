"""In-process async event bus."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Literal, TypedDict

from pugbot.core.events import EventContext
from pugbot.logging_config import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[str, EventContext], Awaitable[object]]


class DispatchEnvelope(TypedDict, total=False):
    status: Literal["success", "error"]
    data: object | None
    error: str
    code: str


class EventBus:
    """Async fan-out of named events to subscribed listeners.

    Listener failures are logged and reported in the envelope; they never
    propagate to the emitter.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event."""
        self._handlers.setdefault(event, []).append(handler)
        logger.trace("Subscribed handler for event: {} (total: {})", event, len(self._handlers[event]))

    def unsubscribe(self, event: str, handler: EventHandler) -> bool:
        """Remove a handler. Returns False when it was not subscribed."""
        handlers = self._handlers.get(event)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._handlers[event]
        return True

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def clear(self) -> None:
        """Clear all registered handlers (primarily for tests)."""
        self._handlers.clear()

    async def emit(self, event: str, context: EventContext) -> DispatchEnvelope:
        """Emit an event to all handlers."""
        handlers = list(self._handlers.get(event, ()))
        if not handlers:
            logger.trace("No listeners for event: {}", event)
            return DispatchEnvelope(status="success", data=None, code="NO_HANDLER")

        results = await asyncio.gather(*(handler(event, dict(context)) for handler in handlers), return_exceptions=True)

        success_results: list[object] = []
        errors: list[BaseException] = []
        for i, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.opt(exception=result).error("Handler {} failed for event {}", i, event)
                errors.append(result)
            else:
                success_results.append(result)

        if errors and not success_results:
            return DispatchEnvelope(status="error", error=str(errors[0]), code="HANDLER_FAILED")

        logger.debug(
            "Dispatch completed for event: {} ({} success, {} failed)", event, len(success_results), len(errors)
        )
        return DispatchEnvelope(status="success", data=success_results[0] if success_results else None)
