"""Unit tests for the hook table and the default hook policies."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from pugbot.core.bindings import HandlerRegistry
from pugbot.core.events import ParticipationEvents
from pugbot.hooks.contract import (
    ExpirationRequest,
    HookName,
    HookTable,
    KeepAliveRequest,
    PreprocessRequest,
    PreprocessResult,
)
from pugbot.hooks.policies import ExpirationPolicy, HookContext, KeepAlivePolicy, PreprocessPolicy
from pugbot.notifications.models import Tier


@pytest.fixture
def ctx(bus, transport, clock) -> HookContext:
    return HookContext(bus=bus, transport=transport, clock=clock)


@pytest.mark.unit
def test_hook_table_install_and_restore():
    table = HookTable()
    first, second = AsyncMock(), AsyncMock()

    assert table.install(HookName.CHECK_EXPIRATIONS, first) is None
    assert table.install(HookName.CHECK_EXPIRATIONS, second) is first
    table.restore(HookName.CHECK_EXPIRATIONS, first)
    assert table.get(HookName.CHECK_EXPIRATIONS) is first

    table.restore(HookName.CHECK_EXPIRATIONS, None)
    assert table.has(HookName.CHECK_EXPIRATIONS) is False
    assert table.remove(HookName.CHECK_EXPIRATIONS) is None


# Preprocess


@pytest.mark.unit
async def test_preprocess_skips_queue_prompt_during_active_match(ctx):
    ctx.queues = AsyncMock()
    ctx.queues.get_user_active_matches.return_value = ["m1"]
    policy = PreprocessPolicy(ctx)

    result = await policy(PreprocessRequest("u1", "match_queue", {"queue_id": "q1"}, Tier.CRITICAL))

    assert result.skip is True
    assert result.result is True


@pytest.mark.unit
async def test_preprocess_marks_offline_queue_prompt_urgent(ctx, transport):
    transport.presence["u1"] = "offline"
    policy = PreprocessPolicy(ctx)

    result = await policy(PreprocessRequest("u1", "match_queue", {"queue_id": "q1"}, Tier.CRITICAL))

    assert result.skip is False
    assert result.context["urgent"] is True
    assert result.context["timeout"] == 600
    assert result.context["_meta"]["user_status"] == "offline"
    assert result.context["_meta"]["tier"] == 0


@pytest.mark.unit
async def test_preprocess_requires_confirmation_for_offline_pre_game(ctx, transport):
    transport.presence["u1"] = "offline"

    result = await PreprocessPolicy(ctx)(PreprocessRequest("u1", "pre_game", {}, Tier.CRITICAL))

    assert result.context["urgent"] is True
    assert result.context["require_confirmation"] is True


@pytest.mark.unit
async def test_preprocess_auto_confirms_recent_role_activity(ctx, recorder, clock):
    recorder.listen(ParticipationEvents.ROLE_RETENTION_AUTO_CONFIRMED)
    ctx.activity = AsyncMock()
    ctx.activity.get_last_active_time.return_value = clock() - timedelta(hours=1)

    result = await PreprocessPolicy(ctx)(
        PreprocessRequest("u1", "role_retention", {"role_name": "Veteran"}, Tier.IMPORTANT)
    )

    assert result.skip is True
    assert recorder.named(ParticipationEvents.ROLE_RETENTION_AUTO_CONFIRMED)[0]["role_name"] == "Veteran"


@pytest.mark.unit
async def test_preprocess_dnd_role_retention_gets_extension(ctx, transport):
    transport.presence["u1"] = "dnd"

    result = await PreprocessPolicy(ctx)(
        PreprocessRequest("u1", "role_retention", {"role_name": "Veteran"}, Tier.IMPORTANT)
    )

    assert result.skip is False
    assert result.context["extension_days"] == 3


@pytest.mark.unit
@pytest.mark.parametrize(
    "status,tier,skipped",
    [
        ("dnd", Tier.IMPORTANT, True),
        ("dnd", Tier.CRITICAL, False),
        ("idle", Tier.INFORMATIONAL, True),
        ("online", Tier.INFORMATIONAL, False),
    ],
)
async def test_preprocess_tier_rules(ctx, transport, status, tier, skipped):
    transport.presence["u1"] = status

    result = await PreprocessPolicy(ctx)(PreprocessRequest("u1", "match_result", {}, tier))

    assert result.skip is skipped


@pytest.mark.unit
async def test_preprocess_respects_preferred_max_tier(ctx):
    ctx.preferences = AsyncMock()
    ctx.preferences.get_notification_preferences.return_value = {"max_tier": 0}

    result = await PreprocessPolicy(ctx)(PreprocessRequest("u1", "match_result", {}, Tier.IMPORTANT))

    assert result.skip is True


@pytest.mark.unit
async def test_preprocess_runs_named_custom_handler(ctx):
    handlers = HandlerRegistry()

    async def veto(request):
        return PreprocessResult(skip=True, result=False)

    handlers.register("veto", veto)
    ctx.handlers = handlers

    result = await PreprocessPolicy(ctx, handler="veto")(PreprocessRequest("u1", "pre_game", {}, Tier.CRITICAL))

    assert result.skip is True
    assert result.result is False


@pytest.mark.unit
async def test_preprocess_presence_failure_assumes_online(ctx):
    ctx.transport = AsyncMock()
    ctx.transport.get_presence.side_effect = RuntimeError("gateway down")

    result = await PreprocessPolicy(ctx)(PreprocessRequest("u1", "pre_game", {}, Tier.CRITICAL))

    assert result.context["_meta"]["user_status"] == "online"


# Expirations


async def _send(engine, type, **context):
    sender = {
        "match_queue": lambda: engine.send_queue_keep_alive("u1", "Ranked", "q1"),
        "pre_game": lambda: engine.send_pre_game("u1", "Finals", "m9"),
        "role_retention": lambda: engine.send_role_retention("u1", "Veteran", 2),
    }[type]
    assert await sender()


@pytest.mark.unit
async def test_expiration_grants_grace_once_with_reminder(engine, ctx, transport, clock):
    await _send(engine, "pre_game")
    policy = ExpirationPolicy(ctx, grace_seconds=30)
    clock.advance(45)

    result = await policy(ExpirationRequest(engine.store, clock()))

    assert result.handled_keys == frozenset({("u1", "pre_game")})
    assert transport.users["u1"].sent[-1].startswith("⚠️ **REMINDER:**")
    extended = await engine.store.get("u1", "pre_game")
    assert extended.extensions == 1

    clock.advance(30)
    second = await policy(ExpirationRequest(engine.store, clock()))
    assert second.handled_keys == frozenset()


@pytest.mark.unit
async def test_expiration_no_grace_for_offline(engine, ctx, transport, clock):
    await _send(engine, "pre_game")
    transport.presence["u1"] = "offline"
    clock.advance(45)

    result = await ExpirationPolicy(ctx)(ExpirationRequest(engine.store, clock()))

    assert result.handled is False


@pytest.mark.unit
async def test_expiration_drops_queue_prompt_after_leaving_queue(engine, ctx, transport, clock):
    await _send(engine, "match_queue")
    transport.presence["u1"] = "offline"
    ctx.queues = AsyncMock()
    ctx.queues.is_user_in_queue.return_value = False
    clock.advance(5)

    result = await ExpirationPolicy(ctx)(ExpirationRequest(engine.store, clock()))

    assert result.handled_keys == frozenset({("u1", "match_queue")})
    assert await engine.pending_count("u1") == 0
    ctx.queues.is_user_in_queue.assert_awaited_once_with("u1", "q1")


@pytest.mark.unit
async def test_expiration_auto_confirms_recent_role_activity(engine, ctx, recorder, clock):
    recorder.listen(ParticipationEvents.ROLE_RETENTION_AUTO_CONFIRMED)
    await _send(engine, "role_retention")
    ctx.activity = AsyncMock()
    ctx.activity.get_last_active_time.return_value = clock()
    clock.advance(3600)

    result = await ExpirationPolicy(ctx)(ExpirationRequest(engine.store, clock()))

    assert ("u1", "role_retention") in result.handled_keys
    assert len(recorder.named(ParticipationEvents.ROLE_RETENTION_AUTO_CONFIRMED)) == 1


@pytest.mark.unit
async def test_expiration_policy_feeds_engine_sweep(engine, ctx, hooks, clock):
    await _send(engine, "pre_game")
    hooks.install(HookName.CHECK_EXPIRATIONS, ExpirationPolicy(ctx, grace_seconds=30))
    clock.advance(45)

    assert await engine.check_expirations() == []
    clock.advance(60)
    assert await engine.check_expirations() == [("u1", "pre_game")]


# Keep-alive


@pytest.mark.unit
async def test_keep_alive_auto_confirms_reliable_player(engine, ctx, recorder, clock):
    recorder.listen(ParticipationEvents.QUEUE_KEEP_ALIVE_AUTO_CONFIRMED)
    ctx.history = AsyncMock()
    ctx.history.get_user_queue_history.return_value = {"queued": 20, "abandoned": 1}

    result = await KeepAlivePolicy(ctx)(
        KeepAliveRequest("u1", {"queue_id": "q1", "match_name": "Ranked"}, engine.store, clock())
    )

    assert result.processed is True
    assert result.success is True
    event = recorder.named(ParticipationEvents.QUEUE_KEEP_ALIVE_AUTO_CONFIRMED)[0]
    assert event["reason"] == "reliable_frequent_user"
    ctx.history.get_user_queue_history.assert_awaited_once_with("u1", 7)


@pytest.mark.unit
async def test_keep_alive_extends_existing_prompt_for_active_player(engine, ctx, clock):
    engine.config = engine.config.model_copy(update={"timeout_seconds": {"match_queue": 100}})
    await _send(engine, "match_queue")
    ctx.activity = AsyncMock()
    ctx.activity.get_last_active_time.return_value = clock()

    result = await KeepAlivePolicy(ctx)(KeepAliveRequest("u1", {"queue_id": "q1"}, engine.store, clock()))

    assert result.processed is True and result.success is True
    extended = await engine.store.get("u1", "match_queue")
    assert (extended.expires_at - clock()).total_seconds() == 150


@pytest.mark.unit
async def test_keep_alive_alerts_dnd_player_when_queue_nearly_full(engine, ctx, transport, recorder, clock):
    recorder.listen(ParticipationEvents.QUEUE_DND_ALERT)
    transport.presence["u1"] = "dnd"
    ctx.queues = AsyncMock()
    ctx.queues.get_queue_status.return_value = {"percentage": 90}

    result = await KeepAlivePolicy(ctx)(KeepAliveRequest("u1", {"queue_id": "q1"}, engine.store, clock()))

    assert result.processed is True
    assert recorder.named(ParticipationEvents.QUEUE_DND_ALERT)[0]["queue_status"] == {"percentage": 90}


@pytest.mark.unit
async def test_keep_alive_falls_through_to_default_send(engine, ctx, hooks, transport):
    hooks.install(HookName.QUEUE_KEEP_ALIVE_PROCESSING, KeepAlivePolicy(ctx))

    assert await engine.send_queue_keep_alive("u1", "Ranked", "q1") is True
    assert len(transport.users["u1"].sent) == 1
