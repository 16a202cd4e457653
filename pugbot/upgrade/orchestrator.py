"""Upgrade orchestrator: validate, order, execute and roll back upgrade documents."""

from __future__ import annotations

import asyncio
import traceback
from pathlib import Path
from typing import Any

from pugbot.core.event_bus import EventBus
from pugbot.core.events import UpgradeEvents
from pugbot.errors import StepExecutionError, UpgradeConfigError
from pugbot.logging_config import get_logger
from pugbot.upgrade.document import UpgradeDocument, UpgradeStep, load_upgrade_document
from pugbot.upgrade.handlers.base import StepRequest, StepResult
from pugbot.upgrade.registry import StepHandlerRegistry
from pugbot.upgrade.results import StepOutcome, UpgradeResult
from pugbot.upgrade.rollback import RollbackStack
from pugbot.upgrade.templating import ResourceCache, resolve_template_values

logger = get_logger(__name__)

_DOCUMENT_SUFFIXES = (".yml", ".yaml")


class UpgradeOrchestrator:
    """Runs upgrade documents against a step handler registry.

    Documents are read fresh on every call. Runs are serialized. The resource
    cache outlives a single run so later documents can reference resources
    provisioned by earlier ones.
    """

    def __init__(
        self,
        *,
        registry: StepHandlerRegistry,
        config_dir: Path,
        bus: EventBus | None = None,
        cache: ResourceCache | None = None,
        dry_run: bool = False,
    ) -> None:
        self.registry = registry
        self.config_dir = Path(config_dir)
        self.bus = bus or EventBus()
        self.cache = cache or ResourceCache()
        self.dry_run = dry_run
        self.rollback_stack = RollbackStack()
        self._lock = asyncio.Lock()

    def resolve_path(self, config_ref: str | Path) -> Path:
        path = Path(config_ref)
        if path.is_absolute() or path.exists():
            return path
        candidate = self.config_dir / path
        if candidate.suffix in _DOCUMENT_SUFFIXES:
            return candidate
        for suffix in _DOCUMENT_SUFFIXES:
            with_suffix = candidate.with_name(candidate.name + suffix)
            if with_suffix.exists():
                return with_suffix
        return candidate

    def load_document(self, config_ref: str | Path) -> UpgradeDocument:
        """Load and fully validate a document without running anything.

        Raises:
            UpgradeConfigError: If the document is malformed or names an
                unknown step type.
        """
        document = load_upgrade_document(self.resolve_path(config_ref))
        unknown = sorted(
            {sub.type for step in document.upgrade_sequence for sub in step.steps if not self.registry.has(sub.type)}
        )
        if unknown:
            raise UpgradeConfigError(f"Unknown step type(s): {', '.join(unknown)}")
        return document

    async def execute_upgrade(self, config_ref: str | Path, *, dry_run: bool | None = None) -> UpgradeResult:
        dry = self.dry_run if dry_run is None else dry_run
        async with self._lock:
            self.rollback_stack.clear()
            try:
                document = self.load_document(config_ref)
            except UpgradeConfigError as exc:
                logger.error("upgrade document rejected", config_ref=str(config_ref), error=str(exc))
                await self.bus.emit(UpgradeEvents.ERROR, {"config_ref": str(config_ref), "error": str(exc)})
                return UpgradeResult(success=False, error=str(exc), dry_run=dry)

            try:
                return await self._run(document, str(config_ref), dry)
            finally:
                self.rollback_stack.clear()

    async def _run(self, document: UpgradeDocument, config_ref: str, dry: bool) -> UpgradeResult:
        logger.info(
            "upgrade started",
            config_ref=config_ref,
            version=document.version,
            description=document.description,
            dry_run=dry,
        )
        await self.bus.emit(
            UpgradeEvents.START,
            {"config_ref": config_ref, "version": document.version, "description": document.description, "dry_run": dry},
        )

        results: list[StepOutcome] = []
        requires_restart = False
        for step in document.ordered_steps():
            await self.bus.emit(UpgradeEvents.STEP_START, {"step_id": step.id, "name": step.name, "dry_run": dry})

            outcome = self._plan_step(step) if dry else await self._execute_step(step)
            results.append(outcome)

            if not outcome.success:
                error = StepExecutionError(step.id, outcome.error or "unknown error")
                rolled_back = False
                if step.rollback_supported:
                    await self._run_rollback(step.id)
                    rolled_back = True
                logger.error("upgrade failed", step_id=step.id, error=str(error), rolled_back=rolled_back)
                await self.bus.emit(
                    UpgradeEvents.ERROR, {"config_ref": config_ref, "step_id": step.id, "error": str(error)}
                )
                return UpgradeResult(
                    success=False,
                    results=results,
                    requires_restart=requires_restart,
                    error=str(error),
                    failed_step=step.id,
                    rolled_back=rolled_back,
                    dry_run=dry,
                    version=document.version,
                )

            requires_restart = requires_restart or step.requires_restart
            await self.bus.emit(UpgradeEvents.STEP_COMPLETE, {"step_id": step.id, "name": step.name, "dry_run": dry})

        logger.info("upgrade completed", config_ref=config_ref, steps=len(results), requires_restart=requires_restart)
        await self.bus.emit(
            UpgradeEvents.COMPLETE,
            {"config_ref": config_ref, "version": document.version, "results": len(results), "dry_run": dry},
        )
        return UpgradeResult(
            success=True,
            results=results,
            requires_restart=requires_restart,
            dry_run=dry,
            version=document.version,
        )

    def _plan_step(self, step: UpgradeStep) -> StepOutcome:
        details = []
        for sub in step.steps:
            logger.info("dry run: would execute", step_id=step.id, type=sub.type, action=sub.action, target=sub.target)
            details.append({"type": sub.type, "action": sub.action, "target": sub.target})
        return StepOutcome(
            step_id=step.id,
            name=step.name,
            success=True,
            requires_restart=step.requires_restart,
            details=details,
            dry_run=True,
        )

    async def _execute_step(self, step: UpgradeStep) -> StepOutcome:
        details: list[dict[str, Any]] = []
        for sub in step.steps:
            handler = self.registry.get(sub.type)
            request = StepRequest(
                target=sub.target,
                action=sub.action,
                params=resolve_template_values(dict(sub.params), self.cache),
                step_id=step.id,
            )
            try:
                result = await handler(request)  # type: ignore[misc]
            except Exception:  # pylint: disable=broad-exception-caught
                result = StepResult.fail(traceback.format_exc().strip().splitlines()[-1])
            if not isinstance(result, StepResult):
                result = StepResult.fail(f"{sub.type} handler returned {type(result).__name__}, not a StepResult")

            if result.success and step.rollback_supported and result.rollback is not None:
                self.rollback_stack.push(result.rollback)

            if not result.success:
                return StepOutcome(
                    step_id=step.id,
                    name=step.name,
                    success=False,
                    requires_restart=step.requires_restart,
                    details=details,
                    error=f"{sub.type}/{sub.action}: {result.error}",
                )
            details.append({"type": sub.type, "action": sub.action, **result.details})

        return StepOutcome(
            step_id=step.id,
            name=step.name,
            success=True,
            requires_restart=step.requires_restart,
            details=details,
        )

    async def _run_rollback(self, step_id: str) -> None:
        actions = self.rollback_stack.drain()
        logger.warning("rolling back upgrade", step_id=step_id, actions=len(actions))
        await self.bus.emit(UpgradeEvents.ROLLBACK_START, {"step_id": step_id, "actions": len(actions)})

        failed = 0
        for action in actions:
            try:
                await action.execute()
                logger.info("rollback applied: {}", action.description)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                failed += 1
                logger.opt(exception=exc).error("rollback action failed: {}", action.description)

        await self.bus.emit(
            UpgradeEvents.ROLLBACK_COMPLETE, {"step_id": step_id, "executed": len(actions) - failed, "failed": failed}
        )
