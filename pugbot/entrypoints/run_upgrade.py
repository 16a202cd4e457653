"""Run an upgrade document from the command line.

Exit codes: 0 on success, 1 on failure, 2 on bad invocation, 3 when a non-dry-run
upgrade succeeded but a restart is required.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
from pathlib import Path

from dotenv import load_dotenv

from pugbot.config.store import YamlConfigStore
from pugbot.constants import (
    CONFIG_DIR_ENV,
    DB_PATH_ENV,
    DEFAULT_CONFIG_DIR,
    DEFAULT_DB_PATH,
    DISCORD_TOKEN_ENV,
    EXIT_RESTART_REQUIRED,
    MAIN_MODULE,
)
from pugbot.core.bindings import EventBinder, HandlerRegistry
from pugbot.core.command_registry import CommandRegistry
from pugbot.core.db import Db
from pugbot.core.event_bus import EventBus
from pugbot.hooks.contract import HookTable
from pugbot.hooks.policies import HookContext
from pugbot.logging_config import get_logger, setup_logging
from pugbot.transport.discord_rest import DiscordRestTransport
from pugbot.upgrade.orchestrator import UpgradeOrchestrator
from pugbot.upgrade.registry import UpgradeDependencies, build_default_registry
from pugbot.upgrade.results import UpgradeResult

logger = get_logger(__name__)


async def run(args: argparse.Namespace) -> UpgradeResult:
    config_dir = Path(args.config_dir)
    db = Db(args.db_path)
    await db.initialize()

    token = os.getenv(args.token_env)
    transport = DiscordRestTransport(token, guild_id=args.guild_id) if token else None
    if transport is None:
        logger.warning("no Discord token; discord_resources steps will fail", env=args.token_env)

    bus = EventBus()
    hooks = HookTable()
    handlers = HandlerRegistry()
    config_store = YamlConfigStore(config_dir)
    registry = build_default_registry(
        UpgradeDependencies(
            hooks=hooks,
            hook_context=HookContext(bus=bus, transport=transport, handlers=handlers),
            config_source=config_store,
            schema_store=config_store,
            data_store=db,
            storage=db,
            provisioner=transport if args.guild_id else None,
            commands=CommandRegistry(),
            binder=EventBinder(bus, handlers),
        )
    )
    orchestrator = UpgradeOrchestrator(registry=registry, config_dir=config_dir, bus=bus)
    try:
        return await orchestrator.execute_upgrade(args.document, dry_run=args.dry_run)
    finally:
        if transport is not None:
            await transport.close()
        await db.close()


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Execute a PugBot upgrade document.")
    parser.add_argument("document", help="Document path, or a name resolved inside --config-dir.")
    parser.add_argument(
        "--config-dir",
        default=os.getenv(CONFIG_DIR_ENV, DEFAULT_CONFIG_DIR),
        help="Directory holding upgrade documents and named configs.",
    )
    parser.add_argument("--db-path", default=os.getenv(DB_PATH_ENV, DEFAULT_DB_PATH), help="SQLite database path.")
    parser.add_argument("--guild-id", default=None, help="Guild for discord_resources steps.")
    parser.add_argument("--token-env", default=DISCORD_TOKEN_ENV, help="Env var containing the bot token.")
    parser.add_argument("--dry-run", action="store_true", help="Validate and log steps without executing.")
    parser.add_argument("--log-level", default=None, help="Override PUGBOT_LOG_LEVEL.")

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if not Path(args.config_dir).is_dir():
        logger.error("config dir not found", config_dir=args.config_dir)
        return 2

    result = asyncio.run(run(args))
    print(json.dumps(result.to_dict(), indent=2, default=str))

    if not result.success:
        return 1
    return EXIT_RESTART_REQUIRED if result.requires_restart and not result.dry_run else 0


if __name__ == MAIN_MODULE:
    raise SystemExit(main())
