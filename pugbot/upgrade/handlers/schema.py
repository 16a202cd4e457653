from __future__ import annotations

from pugbot.core.protocols import SchemaStore
from pugbot.upgrade import version_cmp
from pugbot.upgrade.handlers.base import BaseStepHandler, StepRequest, StepResult, UnknownActionError, require, require_target
from pugbot.upgrade.rollback import RevertSchema


class SchemaUpdateHandler(BaseStepHandler):
    """``schema_update``: versioned transform of a stored configuration schema.

    Versions are semantic and the transform must move forward.
    """

    dependency_name = "schema store"
    dependency: SchemaStore

    async def run(self, request: StepRequest) -> StepResult:
        if request.action != "transform":
            raise UnknownActionError(request.action)
        target = require_target(request)
        from_version = str(require(request.params, "from_version"))
        to_version = str(require(request.params, "to_version"))
        if version_cmp(to_version, from_version) <= 0:
            raise ValueError(f"Schema version must increase: {from_version} -> {to_version}")
        await self.dependency.transform_schema(target, from_version, to_version, request.params.get("transforms") or [])
        return StepResult.ok(
            rollback=RevertSchema(self.dependency, target, from_version, to_version),
            target=target,
            to_version=to_version,
        )
