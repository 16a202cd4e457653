"""Exception hierarchy for PugBot notifications and upgrades."""

from __future__ import annotations


class PugbotError(Exception):
    """Base class for all PugBot errors."""


class ConfigurationError(PugbotError):
    """A configuration value or document is missing or invalid."""


class UpgradeConfigError(ConfigurationError):
    """An upgrade document failed to load or validate."""


class TransportError(PugbotError):
    """A message could not be delivered by the messaging transport."""


class StepExecutionError(PugbotError):
    """A sub-step of an upgrade step failed."""

    def __init__(self, step_id: str, message: str) -> None:
        super().__init__(f"Step {step_id!r} failed: {message}")
        self.step_id = step_id
        self.message = message
