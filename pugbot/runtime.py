"""Wires the notification engine, upgrade orchestrator and their collaborators."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path

from pugbot.config.store import YamlConfigStore
from pugbot.constants import CONFIG_DIR_ENV, DB_PATH_ENV, DEFAULT_CONFIG_DIR, DEFAULT_DB_PATH, DEFAULT_SWEEP_INTERVAL_S
from pugbot.core.bindings import EventBinder, HandlerRegistry
from pugbot.core.command_registry import CommandRegistry
from pugbot.core.db import Db
from pugbot.core.event_bus import EventBus
from pugbot.core.protocols import (
    MessagingTransport,
    PreferenceLookup,
    QueueHistory,
    QueueMembership,
    ResourceProvisioner,
)
from pugbot.hooks.contract import HookTable
from pugbot.hooks.policies import HookContext
from pugbot.logging_config import get_logger
from pugbot.notifications.commands import NotificationCommands
from pugbot.notifications.engine import NotificationEngine
from pugbot.notifications.expiry import ExpirationWorker
from pugbot.notifications.store import NotificationStore
from pugbot.upgrade.orchestrator import UpgradeOrchestrator
from pugbot.upgrade.registry import UpgradeDependencies, build_default_registry
from pugbot.upgrade.templating import ResourceCache
from pugbot.utils import Clock, utc_now

logger = get_logger(__name__)


@dataclass
class Runtime:
    bus: EventBus
    engine: NotificationEngine
    orchestrator: UpgradeOrchestrator
    db: Db
    config_store: YamlConfigStore
    commands: CommandRegistry
    handlers: HandlerRegistry
    binder: EventBinder
    hooks: HookTable
    worker: ExpirationWorker
    shutdown_event: asyncio.Event
    _tasks: list[asyncio.Task] = field(default_factory=list)

    async def start(self) -> None:
        """Open storage, load configuration and start the expiry sweep."""
        await self.db.initialize()
        await self.engine.load_config()
        self._tasks.append(asyncio.create_task(self.worker.run(), name="pugbot-expiration-worker"))
        logger.info("runtime started", commands=self.commands.names())

    async def shutdown(self) -> None:
        self.shutdown_event.set()
        for task in self._tasks:
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                task.cancel()
                logger.warning("task did not stop in time", task=task.get_name())
        self._tasks.clear()
        await self.db.close()
        logger.info("runtime stopped")


def build_runtime(
    transport: MessagingTransport,
    *,
    config_dir: Path | str | None = None,
    db_path: str | None = None,
    provisioner: ResourceProvisioner | None = None,
    queues: QueueMembership | None = None,
    preferences: PreferenceLookup | None = None,
    history: QueueHistory | None = None,
    sweep_interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
    dry_run: bool = False,
    clock: Clock = utc_now,
) -> Runtime:
    """Assemble a runtime. Nothing touches disk or network until ``start``."""
    root = Path(config_dir or os.getenv(CONFIG_DIR_ENV, DEFAULT_CONFIG_DIR))
    bus = EventBus()
    hooks = HookTable()
    config_store = YamlConfigStore(root)
    db = Db(db_path or os.getenv(DB_PATH_ENV, DEFAULT_DB_PATH))

    engine = NotificationEngine(
        transport=transport,
        store=NotificationStore(),
        bus=bus,
        hooks=hooks,
        audit=db,
        config_source=config_store,
        clock=clock,
    )

    commands = CommandRegistry()
    NotificationCommands(engine).register(commands)

    handlers = HandlerRegistry()
    binder = EventBinder(bus, handlers)
    hook_context = HookContext(
        bus=bus,
        transport=transport,
        queues=queues,
        activity=engine,
        preferences=preferences,
        history=history,
        handlers=handlers,
        clock=clock,
    )

    registry = build_default_registry(
        UpgradeDependencies(
            hooks=hooks,
            hook_context=hook_context,
            cache=ResourceCache(),
            config_source=config_store,
            schema_store=config_store,
            data_store=db,
            storage=db,
            provisioner=provisioner,
            commands=commands,
            binder=binder,
        )
    )
    orchestrator = UpgradeOrchestrator(registry=registry, config_dir=root, bus=bus, dry_run=dry_run)
    engine.attach_orchestrator(orchestrator)

    shutdown_event = asyncio.Event()
    worker = ExpirationWorker(engine=engine, shutdown_event=shutdown_event, interval_s=sweep_interval_s)
    return Runtime(
        bus=bus,
        engine=engine,
        orchestrator=orchestrator,
        db=db,
        config_store=config_store,
        commands=commands,
        handlers=handlers,
        binder=binder,
        hooks=hooks,
        worker=worker,
        shutdown_event=shutdown_event,
    )
