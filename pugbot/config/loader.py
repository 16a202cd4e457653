import os
import re
from pathlib import Path
from typing import Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from pugbot.config.schema import NotificationConfig
from pugbot.errors import ConfigurationError
from pugbot.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def expand_env_vars(config: object) -> object:
    """Recursively replace ``${VAR}`` patterns with environment values.

    Unknown variables are left as-is.
    """
    if isinstance(config, dict):
        return {k: expand_env_vars(v) for k, v in config.items()}
    if isinstance(config, list):
        return [expand_env_vars(item) for item in config]
    if isinstance(config, str):
        return _ENV_VAR_RE.sub(lambda match: os.getenv(match.group(1), match.group(0)), config)
    return config


def warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    """Recursively warn about unknown keys in a model and its nested models."""
    if model.model_extra:
        logger.warning("Unknown keys in {} at {}: {}", path, config_path, list(model.model_extra.keys()))

    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)
        elif isinstance(field_value, list):
            for index, item in enumerate(field_value):
                if isinstance(item, BaseModel):
                    warn_unknown_keys(item, f"{path}.{field_name}[{index}]", config_path)
        elif isinstance(field_value, dict):
            for key, value in field_value.items():
                if isinstance(value, BaseModel):
                    warn_unknown_keys(value, f"{path}.{field_name}.{key}", config_path)


def read_yaml(path: Path) -> dict:
    """Read a YAML mapping from ``path``.

    Raises:
        ConfigurationError: If the file is missing, unparsable, or not a mapping.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {path}") from e
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping, got {type(raw).__name__}")
    return raw


def load_config(path: Path, model_class: Type[T]) -> T:
    """Load and validate configuration from a YAML file.

    A missing file yields the model defaults.

    Args:
        path: Path to the YAML file.
        model_class: The Pydantic model class to use for validation.

    Returns:
        The validated configuration model.
    """
    if not path.exists():
        return model_class()

    expanded = expand_env_vars(read_yaml(path))
    try:
        model = model_class.model_validate(expanded)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e
    warn_unknown_keys(model, "root", path)
    return model


def load_notification_config(path: Path) -> NotificationConfig:
    """Load notification engine configuration."""
    return load_config(path, NotificationConfig)
