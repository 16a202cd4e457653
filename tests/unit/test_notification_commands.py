"""Unit tests for the notifications chat command."""

import pytest

from pugbot.core.command_registry import CommandRegistry
from pugbot.hooks.contract import HookName, PreprocessResult
from pugbot.notifications.commands import COMMAND_NAME, HELP_TEXT, NotificationCommands


@pytest.mark.unit
async def test_register_publishes_definition(engine):
    registry = CommandRegistry()

    NotificationCommands(engine).register(registry)

    definition = registry.get(COMMAND_NAME)
    assert [option["name"] for option in definition.options] == ["status", "clear"]
    assert await definition.callback("u1") == HELP_TEXT


@pytest.mark.unit
async def test_status_lists_visible_context(engine, hooks):
    commands = NotificationCommands(engine)
    assert await commands.handle("u1", {"status": True}) == "You don't have any active notifications."

    async def tag(request):
        return PreprocessResult(context={**request.context, "_meta": {"tier": 0}})

    hooks.install(HookName.PREPROCESS_NOTIFICATION, tag)
    await engine.send_pre_game("u1", "Finals", "m9")

    reply = await commands.handle("u1", {"status": True})

    assert reply.startswith("**Your Active Notifications:**")
    assert "> **pre_game**" in reply
    assert "> Expires: 12:01:00" in reply
    assert "> Context: match_name: Finals, match_id: m9" in reply
    assert "_meta" not in reply


@pytest.mark.unit
async def test_clear_reports_count(engine):
    commands = NotificationCommands(engine)
    await engine.send_pre_game("u1", "Finals", "m9")
    await engine.send_queue_keep_alive("u1", "Ranked", "q1")

    assert await commands.handle("u1", {"clear": True}) == "Cleared 2 notifications."
    assert await commands.handle("u1", {"clear": True}) == "You don't have any active notifications to clear."
