"""Result types returned by the upgrade orchestrator."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class StepOutcome:
    step_id: str
    name: str
    success: bool
    requires_restart: bool = False
    details: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    dry_run: bool = False


@dataclass
class UpgradeResult:
    success: bool
    results: list[StepOutcome] = field(default_factory=list)
    requires_restart: bool = False
    error: str | None = None
    failed_step: str | None = None
    rolled_back: bool = False
    dry_run: bool = False
    version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
