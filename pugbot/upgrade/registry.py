"""Step handler registry and the built-in handler set."""

from __future__ import annotations

from dataclasses import dataclass, field

from pugbot.core.bindings import EventBinder
from pugbot.core.command_registry import CommandRegistry
from pugbot.core.protocols import ConfigSource, DataStore, ResourceProvisioner, SchemaStore, StorageSchema
from pugbot.hooks.contract import HookName, HookTable
from pugbot.hooks.policies import HookContext
from pugbot.logging_config import get_logger
from pugbot.upgrade.handlers.base import StepHandler
from pugbot.upgrade.handlers.bindings import AgentBindingHandler
from pugbot.upgrade.handlers.commands import CommandRegistryHandler
from pugbot.upgrade.handlers.config import ConfigUpdateHandler
from pugbot.upgrade.handlers.data import DataMigrationHandler
from pugbot.upgrade.handlers.hooks import HookStepHandler
from pugbot.upgrade.handlers.resources import DiscordResourcesHandler
from pugbot.upgrade.handlers.schema import SchemaUpdateHandler
from pugbot.upgrade.handlers.storage import DatabaseSchemaHandler
from pugbot.upgrade.templating import ResourceCache

logger = get_logger(__name__)


class StepHandlerRegistry:
    """Maps sub-step ``type`` names to handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, StepHandler] = {}

    def register(self, type: str, handler: StepHandler) -> None:
        self._handlers[type] = handler
        logger.debug("Registered step handler: {}", type)

    def get(self, type: str) -> StepHandler | None:
        return self._handlers.get(type)

    def has(self, type: str) -> bool:
        return type in self._handlers

    def types(self) -> list[str]:
        return list(self._handlers.keys())


@dataclass
class UpgradeDependencies:
    """Collaborators the built-in handlers drive. Missing ones fail their steps."""

    hooks: HookTable
    hook_context: HookContext
    cache: ResourceCache = field(default_factory=ResourceCache)
    config_source: ConfigSource | None = None
    schema_store: SchemaStore | None = None
    data_store: DataStore | None = None
    storage: StorageSchema | None = None
    provisioner: ResourceProvisioner | None = None
    commands: CommandRegistry | None = None
    binder: EventBinder | None = None


def build_default_registry(deps: UpgradeDependencies) -> StepHandlerRegistry:
    registry = StepHandlerRegistry()
    registry.register("schema_update", SchemaUpdateHandler(deps.schema_store))
    registry.register("data_migration", DataMigrationHandler(deps.data_store))
    registry.register("discord_resources", DiscordResourcesHandler(deps.provisioner, deps.cache))
    registry.register("config_update", ConfigUpdateHandler(deps.config_source, deps.cache))
    registry.register("command_registry", CommandRegistryHandler(deps.commands))
    registry.register("agent_binding", AgentBindingHandler(deps.binder))
    registry.register("database_schema", DatabaseSchemaHandler(deps.storage))
    for name in HookName:
        registry.register(name.value, HookStepHandler(name, deps.hooks, deps.hook_context))
    return registry
