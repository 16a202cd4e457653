"""Step handler contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from pugbot.logging_config import get_logger
from pugbot.upgrade.rollback import RollbackAction

logger = get_logger(__name__)


@dataclass(frozen=True)
class StepRequest:
    target: Optional[str]
    action: Optional[str]
    params: dict[str, Any]
    step_id: str = ""


@dataclass
class StepResult:
    success: bool
    details: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    rollback: Optional[RollbackAction] = None

    @classmethod
    def ok(cls, rollback: Optional[RollbackAction] = None, **details: Any) -> "StepResult":
        return cls(success=True, details=details, rollback=rollback)

    @classmethod
    def fail(cls, error: str) -> "StepResult":
        return cls(success=False, error=error)


class StepHandler(Protocol):
    async def __call__(self, request: StepRequest) -> StepResult: ...


class UnknownActionError(ValueError):
    def __init__(self, action: Optional[str], target: Optional[str] = None) -> None:
        suffix = f" for target: {target}" if target else ""
        super().__init__(f"Unknown action: {action}{suffix}")


class BaseStepHandler:
    """Checks the collaborator is present and turns exceptions into failed results.

    Subclasses implement ``run``.
    """

    dependency_name = "dependency"

    def __init__(self, dependency: Any) -> None:
        self.dependency = dependency

    async def __call__(self, request: StepRequest) -> StepResult:
        if self.dependency is None:
            return StepResult.fail(f"Missing {self.dependency_name} dependency")
        try:
            return await self.run(request)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning(
                "step handler failed",
                handler=type(self).__name__,
                step_id=request.step_id,
                action=request.action,
                error=str(exc),
            )
            return StepResult.fail(str(exc) or type(exc).__name__)

    async def run(self, request: StepRequest) -> StepResult:
        raise NotImplementedError


def require(params: dict[str, Any], key: str) -> Any:
    if key not in params or params[key] is None:
        raise ValueError(f"Missing required param: {key}")
    return params[key]


def require_target(request: StepRequest) -> str:
    if not request.target:
        raise ValueError("Missing target")
    return request.target
