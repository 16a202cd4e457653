from __future__ import annotations

from pugbot.core.command_registry import CommandRegistry
from pugbot.upgrade.handlers.base import BaseStepHandler, StepRequest, StepResult, UnknownActionError, require
from pugbot.upgrade.rollback import RestoreCommands, UnregisterCommands


class CommandRegistryHandler(BaseStepHandler):
    """``command_registry``: register or unregister chat commands."""

    dependency_name = "command_registry"
    dependency: CommandRegistry

    async def run(self, request: StepRequest) -> StepResult:
        commands = require(request.params, "commands")

        if request.action == "register":
            registered: list[str] = []
            for command in commands:
                self.dependency.register_command(command)
                registered.append(command["name"])
            return StepResult.ok(rollback=UnregisterCommands(self.dependency, tuple(registered)), commands=registered)

        if request.action == "unregister":
            removed = []
            for name in commands:
                definition = self.dependency.get(name)
                if definition is not None and self.dependency.unregister_command(name):
                    removed.append(definition)
            return StepResult.ok(
                rollback=RestoreCommands(self.dependency, tuple(removed)), commands=[d.name for d in removed]
            )

        raise UnknownActionError(request.action)
