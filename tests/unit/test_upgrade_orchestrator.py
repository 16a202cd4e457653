"""Unit tests for UpgradeOrchestrator."""

from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import yaml

from pugbot.core.event_bus import EventBus
from pugbot.core.events import UpgradeEvents
from pugbot.upgrade.handlers.base import StepResult
from pugbot.upgrade.handlers.resources import DiscordResourcesHandler
from pugbot.upgrade.orchestrator import UpgradeOrchestrator
from pugbot.upgrade.registry import StepHandlerRegistry
from pugbot.upgrade.rollback import RollbackAction
from pugbot.upgrade.templating import ResourceCache


@dataclass(frozen=True)
class Undo(RollbackAction):
    log: list
    step_id: str

    @property
    def description(self) -> str:
        return f"undo {self.step_id}"

    async def execute(self) -> None:
        self.log.append(self.step_id)


class ScriptedHandler:
    """Succeeds, fails or raises depending on the sub-step action."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict]] = []
        self.undone: list[str] = []

    async def __call__(self, request):
        self.calls.append((request.step_id, request.action, request.params))
        if request.action == "fail":
            return StepResult.fail("boom")
        if request.action == "raise":
            raise RuntimeError("kaboom")
        return StepResult.ok(rollback=Undo(self.undone, request.step_id), echoed=request.params)


def _write(config_dir: Path, name: str, document: dict) -> Path:
    path = config_dir / f"{name}.yml"
    path.write_text(yaml.safe_dump(document), encoding="utf-8")
    return path


def _step(id, action="apply", order=0, *, restart=False, rollback=True, params=None):
    return {
        "id": id,
        "name": f"step {id}",
        "execute_order": order,
        "requires_restart": restart,
        "rollback_supported": rollback,
        "steps": [{"type": "fake", "action": action, "params": params or {}}],
    }


@pytest.fixture
def handler() -> ScriptedHandler:
    return ScriptedHandler()


@pytest.fixture
def orchestrator(tmp_path, handler) -> UpgradeOrchestrator:
    registry = StepHandlerRegistry()
    registry.register("fake", handler)
    return UpgradeOrchestrator(registry=registry, config_dir=tmp_path, bus=EventBus())


@pytest.mark.unit
async def test_steps_run_in_execute_order(tmp_path, orchestrator, handler):
    _write(
        tmp_path,
        "v2",
        {
            "version": "2.0.0",
            "description": "tiers",
            "upgrade_sequence": [_step("b", order=2), _step("a", order=1), _step("c", order=2)],
        },
    )

    result = await orchestrator.execute_upgrade("v2")

    assert result.success is True
    assert [call[0] for call in handler.calls] == ["a", "b", "c"]
    assert [outcome.step_id for outcome in result.results] == ["a", "b", "c"]
    assert result.version == "2.0.0"
    assert handler.undone == []
    assert len(orchestrator.rollback_stack) == 0


@pytest.mark.unit
async def test_requires_restart_is_any_completed_step(tmp_path, orchestrator):
    _write(tmp_path, "v2", {"version": "2.0.0", "upgrade_sequence": [_step("1"), _step("2", restart=True)]})

    result = await orchestrator.execute_upgrade("v2")

    assert result.requires_restart is True


@pytest.mark.unit
async def test_failure_rolls_back_completed_steps_once(tmp_path, orchestrator, handler, recorder_factory):
    recorder = recorder_factory(orchestrator.bus)
    _write(
        tmp_path,
        "v2",
        {"version": "2.0.0", "upgrade_sequence": [_step(1, order=1), _step(2, "fail", order=2), _step(3, order=3)]},
    )

    result = await orchestrator.execute_upgrade("v2")

    assert result.success is False
    assert result.failed_step == "2"
    assert result.rolled_back is True
    assert result.error == "Step '2' failed: fake/fail: boom"
    assert handler.undone == ["1"]
    assert [call[0] for call in handler.calls] == ["1", "2"]
    assert [event for event, _ in recorder.events] == [
        UpgradeEvents.START,
        UpgradeEvents.STEP_START,
        UpgradeEvents.STEP_COMPLETE,
        UpgradeEvents.STEP_START,
        UpgradeEvents.ROLLBACK_START,
        UpgradeEvents.ROLLBACK_COMPLETE,
        UpgradeEvents.ERROR,
    ]


@pytest.mark.unit
async def test_failure_without_rollback_support_keeps_changes(tmp_path, orchestrator, handler):
    _write(tmp_path, "v2", {"version": "2.0.0", "upgrade_sequence": [_step("1"), _step("2", "fail", rollback=False)]})

    result = await orchestrator.execute_upgrade("v2")

    assert result.success is False
    assert result.rolled_back is False
    assert handler.undone == []


@pytest.mark.unit
async def test_raising_handler_becomes_failed_step(tmp_path, orchestrator, handler):
    _write(tmp_path, "v2", {"version": "2.0.0", "upgrade_sequence": [_step("1"), _step("2", "raise")]})

    result = await orchestrator.execute_upgrade("v2")

    assert result.success is False
    assert "kaboom" in result.error
    assert handler.undone == ["1"]


@pytest.mark.unit
async def test_failing_rollback_action_does_not_stop_others(tmp_path, orchestrator, handler, recorder_factory):
    class Broken(RollbackAction):
        description = "broken"

        async def execute(self) -> None:
            raise RuntimeError("cannot undo")

    async def broken_handler(request):
        return StepResult.ok(rollback=Broken())

    orchestrator.registry.register("broken", broken_handler)
    recorder = recorder_factory(orchestrator.bus)
    document = {"version": "2.0.0", "upgrade_sequence": [_step("1"), _step("2"), _step("3", "fail")]}
    document["upgrade_sequence"][1]["steps"][0]["type"] = "broken"
    _write(tmp_path, "v2", document)

    result = await orchestrator.execute_upgrade("v2")

    assert result.rolled_back is True
    assert handler.undone == ["1"]
    assert recorder.named(UpgradeEvents.ROLLBACK_COMPLETE) == [{"step_id": "3", "executed": 1, "failed": 1}]


@pytest.mark.unit
async def test_dry_run_executes_nothing(tmp_path, orchestrator, handler):
    _write(tmp_path, "v2", {"version": "2.0.0", "upgrade_sequence": [_step("1"), _step("2", "fail")]})

    result = await orchestrator.execute_upgrade("v2", dry_run=True)

    assert result.success is True
    assert result.dry_run is True
    assert handler.calls == []
    assert result.results[1].details == [{"type": "fake", "action": "fail", "target": None}]


@pytest.mark.unit
async def test_malformed_document_is_rejected_before_running(tmp_path, orchestrator, handler, recorder_factory):
    recorder = recorder_factory(orchestrator.bus)
    _write(tmp_path, "bad", {"version": "2.0.0", "upgrade_sequence": [{"id": "1", "steps": []}]})

    result = await orchestrator.execute_upgrade("bad")

    assert result.success is False
    assert "Invalid upgrade document" in result.error
    assert handler.calls == []
    assert [event for event, _ in recorder.events] == [UpgradeEvents.ERROR]


@pytest.mark.unit
async def test_unknown_step_type_is_rejected_before_running(tmp_path, orchestrator, handler):
    document = {"version": "2.0.0", "upgrade_sequence": [_step("1"), _step("2")]}
    document["upgrade_sequence"][1]["steps"][0]["type"] = "teleport"
    _write(tmp_path, "v2", document)

    result = await orchestrator.execute_upgrade("v2")

    assert result.success is False
    assert result.error == "Unknown step type(s): teleport"
    assert handler.calls == []


@pytest.mark.unit
async def test_missing_document(orchestrator):
    result = await orchestrator.execute_upgrade("nope")

    assert result.success is False
    assert "not found" in result.error.lower()


@pytest.mark.unit
async def test_duplicate_step_ids_rejected(tmp_path, orchestrator):
    _write(tmp_path, "v2", {"version": "2.0.0", "upgrade_sequence": [_step("1"), _step("1")]})

    result = await orchestrator.execute_upgrade("v2")

    assert result.success is False
    assert "Duplicate step id" in result.error


@pytest.mark.unit
async def test_bad_version_rejected(tmp_path, orchestrator):
    _write(tmp_path, "v2", {"version": "two", "upgrade_sequence": [_step("1")]})

    result = await orchestrator.execute_upgrade("v2")

    assert result.success is False


@pytest.mark.unit
async def test_placeholders_resolve_from_earlier_steps(tmp_path, handler):
    provisioner = AsyncMock()
    provisioner.ensure_channel.return_value = SimpleNamespace(id="555", name="pug-alerts", created=True)
    cache = ResourceCache()
    registry = StepHandlerRegistry()
    registry.register("fake", handler)
    registry.register("discord_resources", DiscordResourcesHandler(provisioner, cache))
    orchestrator = UpgradeOrchestrator(registry=registry, config_dir=tmp_path, cache=cache)
    _write(
        tmp_path,
        "v2",
        {
            "version": "2.0.0",
            "upgrade_sequence": [
                {
                    "id": "channels",
                    "execute_order": 1,
                    "steps": [
                        {
                            "type": "discord_resources",
                            "action": "ensure_exists",
                            "target": "channels",
                            "params": {"channels": [{"name": "pug-alerts", "store_id_as": "alerts"}]},
                        }
                    ],
                },
                _step("config", order=2, params={"channel": "{channel:alerts}", "text": "see {channel:alerts}"}),
            ],
        },
    )

    result = await orchestrator.execute_upgrade("v2")

    assert result.success is True
    assert handler.calls[0][2] == {"channel": "555", "text": "see 555"}


@pytest.mark.unit
async def test_document_path_may_be_absolute(tmp_path, orchestrator, handler):
    path = _write(tmp_path, "v3", {"version": "3.0.0", "upgrade_sequence": [_step("1")]})

    result = await orchestrator.execute_upgrade(str(path))

    assert result.success is True


@pytest.mark.unit
async def test_engine_refreshes_config_after_upgrade(engine, tmp_path, orchestrator):
    _write(tmp_path, "v2", {"version": "2.0.0", "upgrade_sequence": [_step("1")]})
    engine.attach_orchestrator(orchestrator)
    engine.config_source = AsyncMock()
    engine.config_source.get_config.return_value = {"timeout_seconds": {"pre_game": 5}}

    result = await engine.execute_upgrade("v2")

    assert result.success is True
    assert engine.config.timeout_seconds == {"pre_game": 5}
