"""Typed undo actions and the per-run rollback stack.

Each action holds the immutable data it needs to reverse one successful
sub-step.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pugbot.logging_config import get_logger

if TYPE_CHECKING:
    from pugbot.core.command_registry import CommandDefinition
    from pugbot.core.protocols import (
        CommandRegistryProtocol,
        ConfigSource,
        DataStore,
        EventBinderProtocol,
        ResourceProvisioner,
        SchemaStore,
        StorageSchema,
    )
    from pugbot.hooks.contract import Hook, HookName, HookTable
    from pugbot.upgrade.templating import ResourceCache

logger = get_logger(__name__)


class RollbackAction:
    """Reverses one sub-step."""

    @property
    def description(self) -> str:
        raise NotImplementedError

    async def execute(self) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class RevertSchema(RollbackAction):
    store: "SchemaStore"
    target: str
    from_version: str
    to_version: str

    @property
    def description(self) -> str:
        return f"Revert schema of {self.target} from {self.to_version} to {self.from_version}"

    async def execute(self) -> None:
        await self.store.revert_schema(self.target, self.to_version, self.from_version)


@dataclass(frozen=True)
class RemoveField(RollbackAction):
    data: "DataStore"
    table: str
    field_name: str

    @property
    def description(self) -> str:
        return f"Remove field {self.field_name} from {self.table}"

    async def execute(self) -> None:
        await self.data.remove_field(self.table, self.field_name)


@dataclass(frozen=True)
class RevertTransform(RollbackAction):
    data: "DataStore"
    table: str
    revert_function: str

    @property
    def description(self) -> str:
        return f"Apply {self.revert_function} to {self.table}"

    async def execute(self) -> None:
        await self.data.transform_data(self.table, self.revert_function)


@dataclass(frozen=True)
class DeleteResources(RollbackAction):
    """Delete provisioned channels or roles that the sub-step created."""

    provisioner: "ResourceProvisioner"
    kind: str
    resource_ids: tuple[str, ...]

    @property
    def description(self) -> str:
        return f"Remove created {self.kind}"

    async def execute(self) -> None:
        delete = self.provisioner.delete_channel if self.kind == "channels" else self.provisioner.delete_role
        for resource_id in self.resource_ids:
            await delete(resource_id)


@dataclass(frozen=True)
class RestoreCacheEntries(RollbackAction):
    """Put resource-cache entries back to their values before the sub-step."""

    cache: "ResourceCache"
    scope: str
    previous: tuple[tuple[str, Any], ...]

    @property
    def description(self) -> str:
        return f"Restore cached {self.scope} entries"

    async def execute(self) -> None:
        entries = self.cache.scope(self.scope)
        for key, value in self.previous:
            if value is None:
                entries.pop(key, None)
            else:
                entries[key] = value


@dataclass(frozen=True)
class RestoreConfig(RollbackAction):
    source: "ConfigSource"
    target: str
    previous: dict[str, Any] | None

    @property
    def description(self) -> str:
        return f"Revert config changes to {self.target}"

    async def execute(self) -> None:
        await self.source.set_config(self.target, dict(self.previous or {}))


@dataclass(frozen=True)
class UnregisterCommands(RollbackAction):
    registry: "CommandRegistryProtocol"
    names: tuple[str, ...]

    @property
    def description(self) -> str:
        return "Unregister commands " + ", ".join(self.names)

    async def execute(self) -> None:
        for name in self.names:
            self.registry.unregister_command(name)


@dataclass(frozen=True)
class RestoreCommands(RollbackAction):
    registry: "CommandRegistryProtocol"
    definitions: tuple["CommandDefinition", ...]

    @property
    def description(self) -> str:
        return "Re-register commands " + ", ".join(d.name for d in self.definitions)

    async def execute(self) -> None:
        for definition in self.definitions:
            self.registry.register_command(definition)  # type: ignore[arg-type]


@dataclass(frozen=True)
class UnbindEvents(RollbackAction):
    binder: "EventBinderProtocol"
    bindings: tuple[tuple[str, str, str], ...]

    @property
    def description(self) -> str:
        return "Revert event bindings"

    async def execute(self) -> None:
        for source, event, handler in self.bindings:
            self.binder.unsubscribe_from_event(source, event, handler)


@dataclass(frozen=True)
class UnexposeMethods(RollbackAction):
    binder: "EventBinderProtocol"
    names: tuple[str, ...]

    @property
    def description(self) -> str:
        return "Revert exposed methods"

    async def execute(self) -> None:
        for name in self.names:
            self.binder.unexpose_method(name)


@dataclass(frozen=True)
class DropTable(RollbackAction):
    storage: "StorageSchema"
    table: str

    @property
    def description(self) -> str:
        return f"Drop table {self.table}"

    async def execute(self) -> None:
        await self.storage.drop_table(self.table)


@dataclass(frozen=True)
class DropColumns(RollbackAction):
    storage: "StorageSchema"
    table: str
    columns: tuple[str, ...]

    @property
    def description(self) -> str:
        return f"Drop columns {', '.join(self.columns)} from {self.table}"

    async def execute(self) -> None:
        await self.storage.drop_columns(self.table, list(self.columns))


@dataclass(frozen=True)
class RestoreHook(RollbackAction):
    table: "HookTable"
    name: "HookName"
    previous: "Hook | None"

    @property
    def description(self) -> str:
        return f"Restore {self.name.value} hook"

    async def execute(self) -> None:
        self.table.restore(self.name, self.previous)


@dataclass(frozen=True)
class CompositeRollback(RollbackAction):
    """Run several actions, last first."""

    actions: tuple[RollbackAction, ...]

    @property
    def description(self) -> str:
        return "; ".join(action.description for action in reversed(self.actions))

    async def execute(self) -> None:
        for action in reversed(self.actions):
            await action.execute()


class RollbackStack:
    """Most-recent-first undo actions for one upgrade run."""

    def __init__(self) -> None:
        self._actions: list[RollbackAction] = []

    def push(self, action: RollbackAction) -> None:
        self._actions.append(action)
        logger.debug("rollback registered: {}", action.description)

    def drain(self) -> list[RollbackAction]:
        """Remove and return every action, most recent first."""
        actions = list(reversed(self._actions))
        self._actions.clear()
        return actions

    def clear(self) -> None:
        self._actions.clear()

    def __len__(self) -> int:
        return len(self._actions)
