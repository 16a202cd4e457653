"""The ``notifications`` chat command: status, clear and help."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pugbot.core.command_registry import CommandDefinition, CommandRegistry

if TYPE_CHECKING:
    from pugbot.notifications.engine import NotificationEngine

COMMAND_NAME = "notifications"

HELP_TEXT = (
    "**Notification System Help**\n\n"
    "Commands:\n"
    "- `/notifications status` - Show your active notifications\n"
    "- `/notifications clear` - Clear all your notifications\n\n"
    "Response Keywords:\n"
    "- `!ready` or `ready` - Confirm match queue or pre-game notifications\n"
    "- `!active` or `active` - Confirm role retention notifications\n"
    "- `!cancel` or `cancel` - Cancel any notification\n"
)


class NotificationCommands:
    def __init__(self, engine: "NotificationEngine") -> None:
        self.engine = engine

    def definition(self) -> CommandDefinition:
        return CommandDefinition(
            name=COMMAND_NAME,
            description="Check or manage your notification status",
            options=[
                {"name": "status", "description": "Show your notification status", "type": "boolean"},
                {"name": "clear", "description": "Clear your notifications", "type": "boolean"},
            ],
            callback=self.handle,
        )

    def register(self, registry: CommandRegistry) -> None:
        registry.register_command(self.definition())

    async def handle(self, recipient_id: str, options: dict[str, Any] | None = None) -> str:
        """Return the reply text for one invocation."""
        options = options or {}
        if options.get("status"):
            return await self.status(recipient_id)
        if options.get("clear"):
            return await self.clear(recipient_id)
        return HELP_TEXT

    async def status(self, recipient_id: str) -> str:
        notifications = await self.engine.get_notifications(recipient_id)
        if not notifications:
            return "You don't have any active notifications."

        lines = ["**Your Active Notifications:**", ""]
        for type, notification in notifications.items():
            expires = notification.expires_at.strftime("%H:%M:%S") if notification.expires_at else "Never"
            lines.append(f"> **{type}**")
            lines.append(f"> Expires: {expires}")
            visible = {k: v for k, v in notification.context.items() if not k.startswith("_")}
            if visible:
                lines.append("> Context: " + ", ".join(f"{k}: {v}" for k, v in visible.items()))
            lines.append("")
        lines.append("*Use `/notifications clear` to clear all notifications.*")
        return "\n".join(lines)

    async def clear(self, recipient_id: str) -> str:
        count = await self.engine.clear_notifications(recipient_id)
        if not count:
            return "You don't have any active notifications to clear."
        return f"Cleared {count} notifications."
