from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from pugbot.config.loader import warn_unknown_keys, expand_env_vars, read_yaml
from pugbot.errors import ConfigurationError, UpgradeConfigError
from pugbot.upgrade import parse_version


class SubStep(BaseModel):
    model_config = ConfigDict(extra="allow")
    type: str
    action: Optional[str] = None
    target: Optional[str] = None
    params: Dict[str, Any] = {}

    @field_validator("params", mode="before")
    @classmethod
    def default_params(cls, v: object) -> object:
        return {} if v is None else v


class UpgradeStep(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: str
    name: str = ""
    execute_order: int = 0
    requires_restart: bool = False
    rollback_supported: bool = False
    steps: List[SubStep] = Field(min_length=1)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> object:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class UpgradeDocument(BaseModel):
    """A versioned, ordered list of upgrade steps."""

    model_config = ConfigDict(extra="allow")
    version: str
    description: str = ""
    target: Optional[str] = None
    upgrade_sequence: List[UpgradeStep] = Field(min_length=1)

    @field_validator("version", mode="before")
    @classmethod
    def validate_version(cls, v: object) -> object:
        if isinstance(v, str):
            parse_version(v)
        return v

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "UpgradeDocument":
        seen: set[str] = set()
        for step in self.upgrade_sequence:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)
        return self

    def ordered_steps(self) -> List[UpgradeStep]:
        # sorted() is stable, so equal execute_order keeps document order
        return sorted(self.upgrade_sequence, key=lambda step: step.execute_order)


def load_upgrade_document(path: Path) -> UpgradeDocument:
    """Read and validate an upgrade document.

    Raises:
        UpgradeConfigError: If the file cannot be read or does not validate.
    """
    try:
        raw = read_yaml(path)
    except ConfigurationError as e:
        raise UpgradeConfigError(str(e)) from e
    try:
        document = UpgradeDocument.model_validate(expand_env_vars(raw))
    except ValidationError as e:
        raise UpgradeConfigError(f"Invalid upgrade document {path}: {e}") from e
    warn_unknown_keys(document, "root", path)
    return document
