from __future__ import annotations

from pugbot.core.protocols import DataStore
from pugbot.upgrade.handlers.base import BaseStepHandler, StepRequest, StepResult, UnknownActionError, require, require_target
from pugbot.upgrade.rollback import RemoveField, RevertTransform


class DataMigrationHandler(BaseStepHandler):
    """``data_migration``: add a field or run a named row transform."""

    dependency_name = "database"
    dependency: DataStore

    async def run(self, request: StepRequest) -> StepResult:
        table = require_target(request)
        params = request.params

        if request.action == "add_field":
            field_name = require(params, "field_name")
            await self.dependency.add_field(table, field_name, params.get("default_value"))
            return StepResult.ok(rollback=RemoveField(self.dependency, table, field_name), field=field_name)

        if request.action == "transform_data":
            changed = await self.dependency.transform_data(table, require(params, "transform_function"))
            revert = params.get("revert_function")
            rollback = RevertTransform(self.dependency, table, revert) if revert else None
            return StepResult.ok(rollback=rollback, rows_changed=changed)

        raise UnknownActionError(request.action)
