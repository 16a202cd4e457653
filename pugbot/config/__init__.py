"""Configuration models, loaders and stores."""

from pugbot.config.loader import load_config, load_notification_config
from pugbot.config.schema import NotificationConfig, TriggerConfig
from pugbot.config.store import YamlConfigStore

__all__ = [
    "NotificationConfig",
    "TriggerConfig",
    "YamlConfigStore",
    "load_config",
    "load_notification_config",
]
