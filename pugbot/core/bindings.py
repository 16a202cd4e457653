"""Named handler registry and the event/API binder driven by upgrade documents.

Upgrade documents refer to handlers by name; code registers the callables
under those names at startup.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from pugbot.core.event_bus import EventBus, EventHandler
from pugbot.logging_config import get_logger

logger = get_logger(__name__)

ExposedMethod = Callable[..., Awaitable[object]]


class HandlerRegistry:
    """Registry for named event handlers and exposed methods."""

    def __init__(self) -> None:
        self._handlers: dict[str, EventHandler | ExposedMethod] = {}

    def register(self, key: str, handler: EventHandler | ExposedMethod) -> None:
        """Register a named handler."""
        self._handlers[key] = handler
        logger.debug("Registered handler: {}", key)

    def get(self, key: str) -> EventHandler | ExposedMethod | None:
        """Get a handler by key."""
        return self._handlers.get(key)

    def keys(self) -> list[str]:
        """List all registered handler keys."""
        return list(self._handlers.keys())


class EventBinder:
    """Subscribes named handlers to bus events and exposes named methods."""

    def __init__(self, bus: EventBus, handlers: HandlerRegistry) -> None:
        self.bus = bus
        self.handlers = handlers
        self._subscriptions: dict[tuple[str, str, str], EventHandler] = {}
        self._exposed: dict[str, ExposedMethod] = {}

    def _resolve(self, handler_name: str) -> EventHandler | ExposedMethod:
        handler = self.handlers.get(handler_name)
        if handler is None:
            raise KeyError(f"Unknown handler: {handler_name}")
        return handler

    def subscribe_to_event(self, source: str, event: str, handler_name: str) -> None:
        key = (source, event, handler_name)
        if key in self._subscriptions:
            return
        handler = self._resolve(handler_name)
        self.bus.subscribe(event, handler)  # type: ignore[arg-type]
        self._subscriptions[key] = handler  # type: ignore[assignment]
        logger.info("bound event handler", source=source, event=event, handler=handler_name)

    def unsubscribe_from_event(self, source: str, event: str, handler_name: str) -> bool:
        handler = self._subscriptions.pop((source, event, handler_name), None)
        if handler is None:
            return False
        self.bus.unsubscribe(event, handler)
        logger.info("unbound event handler", source=source, event=event, handler=handler_name)
        return True

    def expose_method(self, name: str, handler_name: str) -> None:
        self._exposed[name] = self._resolve(handler_name)
        logger.info("exposed method", method=name, handler=handler_name)

    def unexpose_method(self, name: str) -> bool:
        return self._exposed.pop(name, None) is not None

    def get_method(self, name: str) -> ExposedMethod | None:
        return self._exposed.get(name)

    def subscriptions(self) -> list[tuple[str, str, str]]:
        return list(self._subscriptions.keys())
