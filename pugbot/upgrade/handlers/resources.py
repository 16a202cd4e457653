from __future__ import annotations

from typing import Any

from pugbot.core.protocols import ResourceProvisioner
from pugbot.logging_config import get_logger
from pugbot.upgrade.handlers.base import BaseStepHandler, StepRequest, StepResult, UnknownActionError, require
from pugbot.upgrade.rollback import CompositeRollback, DeleteResources, RestoreCacheEntries
from pugbot.upgrade.templating import ResourceCache

logger = get_logger(__name__)


class DiscordResourcesHandler(BaseStepHandler):
    """``discord_resources``: ensure guild channels or roles exist.

    ``store_id_as`` caches a resource id for ``{channel:...}`` / ``{role:...}``
    placeholders in later steps. Rollback deletes only resources this step
    created and restores the cache entries it overwrote.
    """

    dependency_name = "discord"
    dependency: ResourceProvisioner

    def __init__(self, dependency: ResourceProvisioner | None, cache: ResourceCache) -> None:
        super().__init__(dependency)
        self.cache = cache

    async def run(self, request: StepRequest) -> StepResult:
        kind = request.target
        if kind not in ("channels", "roles"):
            raise ValueError(f"Unknown target: {kind}")
        if request.action != "ensure_exists":
            raise UnknownActionError(request.action, kind)

        ensure = self.dependency.ensure_channel if kind == "channels" else self.dependency.ensure_role
        cached = self.cache.scope(kind)
        previous: list[tuple[str, Any]] = []
        created: list[str] = []
        resources: list[dict[str, Any]] = []

        try:
            for spec in require(request.params, kind):
                resource = await ensure(spec)
                if getattr(resource, "created", False):
                    created.append(resource.id)
                store_as = spec.get("store_id_as")
                if store_as:
                    previous.append((store_as, cached.get(store_as)))
                    cached[store_as] = resource.id
                resources.append({"name": resource.name, "id": resource.id, "store_id_as": store_as})
        except Exception:
            # Undo this sub-step's partial work before reporting failure
            try:
                await CompositeRollback(self._undo(kind, created, previous)).execute()
            except Exception as undo_exc:  # pylint: disable=broad-exception-caught
                logger.error("partial resource cleanup failed", kind=kind, error=str(undo_exc))
            raise

        return StepResult.ok(rollback=CompositeRollback(self._undo(kind, created, previous)), resources=resources)

    def _undo(self, kind: str, created: list[str], previous: list[tuple[str, Any]]) -> tuple:
        return (
            DeleteResources(self.dependency, kind, tuple(created)),
            RestoreCacheEntries(self.cache, kind, tuple(previous)),
        )
