"""Shared constants."""

from __future__ import annotations

DEFAULT_MAX_PENDING_PER_RECIPIENT = 5
DEFAULT_SWEEP_INTERVAL_S = 5.0

NOTIFICATION_CONFIG_NAME = "notification"
DEFAULT_CONFIG_DIR = "config"
CONFIG_DIR_ENV = "PUGBOT_CONFIG_DIR"
DB_PATH_ENV = "PUGBOT_DB_PATH"
DEFAULT_DB_PATH = "data/pugbot.db"
DISCORD_TOKEN_ENV = "DISCORD_BOT_TOKEN"

# Notification kinds with built-in handling
MATCH_QUEUE = "match_queue"
PRE_GAME = "pre_game"
ROLE_RETENTION = "role_retention"

REPLY_REQUIRED_TYPES = frozenset({MATCH_QUEUE, PRE_GAME, ROLE_RETENTION})

# Reply timestamps older than this are forgotten
ACTIVITY_RETENTION_S = 7 * 24 * 3600

MAIN_MODULE = "__main__"
EXIT_RESTART_REQUIRED = 3
