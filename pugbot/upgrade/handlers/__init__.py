"""Built-in step handlers."""

from pugbot.upgrade.handlers.base import BaseStepHandler, StepHandler, StepRequest, StepResult

__all__ = ["BaseStepHandler", "StepHandler", "StepRequest", "StepResult"]
