from __future__ import annotations

from pugbot.core.protocols import StorageSchema
from pugbot.upgrade.handlers.base import BaseStepHandler, StepRequest, StepResult, UnknownActionError, require
from pugbot.upgrade.rollback import DropColumns, DropTable


class DatabaseSchemaHandler(BaseStepHandler):
    """``database_schema``: ensure, alter or drop storage tables."""

    dependency_name = "database"
    dependency: StorageSchema

    async def run(self, request: StepRequest) -> StepResult:
        params = request.params
        table = require(params, "table_name")

        if request.action == "ensure_table":
            if await self.dependency.table_exists(table):
                return StepResult.ok(table=table, created=False)
            await self.dependency.create_table(table, require(params, "schema"))
            return StepResult.ok(rollback=DropTable(self.dependency, table), table=table, created=True)

        if request.action == "add_columns":
            columns = require(params, "columns")
            await self.dependency.add_columns(table, columns)
            names = tuple(column["name"] for column in columns)
            return StepResult.ok(rollback=DropColumns(self.dependency, table, names), table=table, columns=list(names))

        if request.action == "drop_table":
            await self.dependency.drop_table(table)
            return StepResult.ok(table=table)

        raise UnknownActionError(request.action)
