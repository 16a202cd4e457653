"""In-process chat command registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from pugbot.logging_config import get_logger

logger = get_logger(__name__)

CommandCallback = Callable[..., Awaitable[object]]


@dataclass
class CommandDefinition:
    name: str
    description: str = ""
    options: list[dict[str, Any]] = field(default_factory=list)
    callback: CommandCallback | None = None


class CommandRegistry:
    """Holds command definitions for the chat front-end to publish."""

    def __init__(self) -> None:
        self._commands: dict[str, CommandDefinition] = {}

    def register_command(self, command: dict[str, Any] | CommandDefinition) -> None:
        if isinstance(command, dict):
            name = command.get("name")
            if not isinstance(name, str) or not name:
                raise ValueError(f"Command definition needs a name: {command!r}")
            command = CommandDefinition(
                name=name,
                description=str(command.get("description", "")),
                options=list(command.get("options", [])),
                callback=command.get("callback"),
            )
        self._commands[command.name] = command
        logger.debug("Registered command: {}", command.name)

    def unregister_command(self, name: str) -> bool:
        removed = self._commands.pop(name, None) is not None
        if removed:
            logger.debug("Unregistered command: {}", name)
        return removed

    def get(self, name: str) -> CommandDefinition | None:
        return self._commands.get(name)

    def names(self) -> list[str]:
        return list(self._commands.keys())
