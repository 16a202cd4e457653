from __future__ import annotations

from typing import Any

from pugbot.core.protocols import ConfigSource
from pugbot.upgrade.handlers.base import BaseStepHandler, StepRequest, StepResult, UnknownActionError, require, require_target
from pugbot.upgrade.rollback import CompositeRollback, RestoreCacheEntries, RestoreConfig
from pugbot.upgrade.templating import ResourceCache


class ConfigUpdateHandler(BaseStepHandler):
    """``config_update``: add, update or remove fields of a named config.

    ``add_fields`` may cache values with ``store_as`` for ``{config:...}``
    placeholders. Field values arrive with placeholders already resolved.
    """

    dependency_name = "config_manager"
    dependency: ConfigSource

    def __init__(self, dependency: ConfigSource | None, cache: ResourceCache) -> None:
        super().__init__(dependency)
        self.cache = cache

    async def run(self, request: StepRequest) -> StepResult:
        target = require_target(request)
        params = request.params
        old_config = await self.dependency.get_config(target)
        rollback_actions: list[Any] = [RestoreConfig(self.dependency, target, old_config)]

        if request.action in ("add_fields", "update_fields"):
            fields: dict[str, Any] = dict(require(params, "fields"))
            if request.action == "add_fields":
                previous: list[tuple[str, Any]] = []
                for key, alias in (params.get("store_as") or {}).items():
                    if key in fields:
                        previous.append((alias, self.cache.config_values.get(alias)))
                        self.cache.config_values[alias] = fields[key]
                rollback_actions.append(RestoreCacheEntries(self.cache, "config", tuple(previous)))
            await self.dependency.update_config(target, fields)
            changed = sorted(fields.keys())
        elif request.action == "remove_fields":
            changed = list(require(params, "fields"))
            await self.dependency.remove_fields(target, changed)
        else:
            raise UnknownActionError(request.action)

        return StepResult.ok(rollback=CompositeRollback(tuple(rollback_actions)), target=target, fields=changed)
