"""Shared fakes for unit tests."""

from datetime import datetime, timedelta, timezone

import pytest

from pugbot.config.schema import NotificationConfig
from pugbot.core.event_bus import EventBus
from pugbot.errors import TransportError
from pugbot.hooks.contract import HookTable
from pugbot.notifications.engine import NotificationEngine
from pugbot.notifications.store import NotificationStore


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeTarget:
    def __init__(self, name: str, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.sent: list[str] = []

    async def send(self, content: str) -> str:
        if self.fail:
            raise TransportError(f"cannot send to {self.name}")
        self.sent.append(content)
        return f"{self.name}:{len(self.sent)}"


class FakeTransport:
    """In-memory MessagingTransport."""

    def __init__(self) -> None:
        self.users: dict[str, FakeTarget] = {}
        self.channels: dict[str, FakeTarget] = {}
        self.usernames: dict[str, str] = {}
        self.presence: dict[str, str] = {}

    def add_user(self, user_id: str, *, username: str | None = None, dm_fails: bool = False, presence: str = "online"):
        self.users[user_id] = FakeTarget(f"dm-{user_id}", fail=dm_fails)
        if username:
            self.usernames[user_id] = username
        self.presence[user_id] = presence
        return self.users[user_id]

    def add_channel(self, channel_id: str, *, fail: bool = False) -> FakeTarget:
        self.channels[channel_id] = FakeTarget(f"channel-{channel_id}", fail=fail)
        return self.channels[channel_id]

    async def get_user(self, user_id: str):
        return self.users.get(user_id)

    async def get_channel(self, channel_id: str):
        return self.channels.get(channel_id)

    async def get_username(self, user_id: str):
        return self.usernames.get(user_id)

    async def get_presence(self, user_id: str) -> str:
        return self.presence.get(user_id, "offline")


class EventRecorder:
    def __init__(self, bus: EventBus) -> None:
        self.bus = bus
        self.events: list[tuple[str, dict]] = []

    def listen(self, *events: str) -> "EventRecorder":
        for event in events:
            self.bus.subscribe(event, self._record)
        return self

    async def _record(self, event: str, context: dict) -> None:
        self.events.append((event, context))

    def named(self, event: str) -> list[dict]:
        return [context for name, context in self.events if name == event]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    fake = FakeTransport()
    fake.add_user("u1", username="alice")
    fake.add_user("u2", username="bob")
    return fake


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def hooks() -> HookTable:
    return HookTable()


@pytest.fixture
def config() -> NotificationConfig:
    return NotificationConfig(
        timeout_seconds={"match_queue": 2, "pre_game": 60, "role_retention": 3600},
        fallback_channel_id="fallback",
    )


@pytest.fixture
def engine(transport, bus, hooks, config, clock) -> NotificationEngine:
    return NotificationEngine(
        transport=transport,
        store=NotificationStore(),
        bus=bus,
        hooks=hooks,
        config=config,
        clock=clock,
    )


@pytest.fixture
def recorder_factory():
    """Record every upgrade event on an arbitrary bus."""
    from pugbot.core.events import UpgradeEvents

    def make(target_bus: EventBus) -> EventRecorder:
        return EventRecorder(target_bus).listen(
            UpgradeEvents.START,
            UpgradeEvents.COMPLETE,
            UpgradeEvents.ERROR,
            UpgradeEvents.STEP_START,
            UpgradeEvents.STEP_COMPLETE,
            UpgradeEvents.ROLLBACK_START,
            UpgradeEvents.ROLLBACK_COMPLETE,
        )

    return make
