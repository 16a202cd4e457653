"""Unit tests for expiry sweeps and the background worker."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from pugbot.core.events import NotificationEvents
from pugbot.hooks.contract import ExpirationResult, HookName
from pugbot.notifications.expiry import ExpirationWorker


@pytest.mark.unit
async def test_unanswered_keep_alive_expires(engine, recorder, clock):
    recorder.listen(NotificationEvents.EXPIRED, NotificationEvents.CLEARED)
    await engine.send_queue_keep_alive("u1", "Ranked", "q1")

    clock.advance(3)
    expired = await engine.check_expirations()

    assert expired == [("u1", "match_queue")]
    assert recorder.named(NotificationEvents.EXPIRED) == [
        {"recipient_id": "u1", "type": "match_queue", "context": {"match_name": "Ranked", "queue_id": "q1"}}
    ]
    assert recorder.named(NotificationEvents.CLEARED) == []
    assert await engine.get_notifications("u1") == {}


@pytest.mark.unit
async def test_not_yet_expired_is_kept(engine, clock):
    await engine.send_queue_keep_alive("u1", "Ranked", "q1")

    clock.advance(1)

    assert await engine.check_expirations() == []
    assert await engine.pending_count("u1") == 1


@pytest.mark.unit
async def test_expired_notification_emits_once(engine, recorder, clock):
    recorder.listen(NotificationEvents.EXPIRED)
    await engine.send_queue_keep_alive("u1", "Ranked", "q1")
    clock.advance(3)

    await engine.check_expirations()
    await engine.check_expirations()

    assert len(recorder.named(NotificationEvents.EXPIRED)) == 1


@pytest.mark.unit
async def test_hook_handled_keys_are_not_swept(engine, hooks, recorder, clock):
    recorder.listen(NotificationEvents.EXPIRED)
    await engine.send_queue_keep_alive("u1", "Ranked", "q1")
    await engine.send_queue_keep_alive("u2", "Ranked", "q1")
    hooks.install(
        HookName.CHECK_EXPIRATIONS,
        AsyncMock(return_value=ExpirationResult(handled=True, handled_keys=frozenset({("u1", "match_queue")}))),
    )
    clock.advance(3)

    assert await engine.check_expirations() == [("u2", "match_queue")]
    assert await engine.pending_count("u1") == 1


@pytest.mark.unit
async def test_failing_expiration_hook_still_sweeps(engine, hooks, clock):
    await engine.send_queue_keep_alive("u1", "Ranked", "q1")
    hooks.install(HookName.CHECK_EXPIRATIONS, AsyncMock(side_effect=RuntimeError("boom")))
    clock.advance(3)

    assert await engine.check_expirations() == [("u1", "match_queue")]


@pytest.mark.unit
async def test_types_without_timeout_never_expire(engine, clock):
    engine.config = engine.config.model_copy(update={"timeout_seconds": {}})
    await engine.send_pre_game("u1", "Finals", "m9")

    clock.advance(10_000)

    assert await engine.check_expirations() == []


@pytest.mark.unit
async def test_handlers_for_notifications_removed_by_hook_are_dropped(engine, hooks):
    claimed = []

    async def handler(recipient_id, type, text, context):
        claimed.append(context["match_id"])
        return True

    async def auto_confirm(request):
        await request.store.remove("u1", "pre_game")
        return ExpirationResult(handled=True, handled_keys=frozenset({("u1", "pre_game")}))

    await engine.send_pre_game("u1", "Finals", "m1")
    engine.register_response_handler("u1", "pre_game", handler)
    hooks.install(HookName.CHECK_EXPIRATIONS, auto_confirm)

    await engine.check_expirations()
    hooks.remove(HookName.CHECK_EXPIRATIONS)
    await engine.send_pre_game("u1", "Rematch", "m2")

    assert await engine.handle_response("u1", "5 minutes") is False
    assert claimed == []
    assert list(await engine.get_notifications("u1")) == ["pre_game"]


@pytest.mark.unit
async def test_sweep_forgets_stale_reply_activity(engine, clock):
    await engine.send_pre_game("u1", "Finals", "m1")
    assert await engine.handle_response("u1", "ready")
    assert await engine.get_last_active_time("u1") == clock()

    clock.advance(6 * 24 * 3600)
    await engine.check_expirations()
    assert await engine.get_last_active_time("u1") is not None

    clock.advance(2 * 24 * 3600)
    await engine.check_expirations()
    assert await engine.get_last_active_time("u1") is None


@pytest.mark.unit
async def test_worker_sweeps_until_shutdown():
    shutdown = asyncio.Event()
    engine = AsyncMock()

    calls = []

    async def sweep():
        calls.append(1)
        if len(calls) >= 2:
            shutdown.set()
        return []

    engine.check_expirations.side_effect = sweep
    worker = ExpirationWorker(engine=engine, shutdown_event=shutdown, interval_s=0.01)

    await asyncio.wait_for(worker.run(), timeout=0.5)

    assert len(calls) == 2


@pytest.mark.unit
async def test_worker_survives_sweep_errors():
    shutdown = asyncio.Event()
    engine = AsyncMock()
    calls = []

    async def sweep():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("transient")
        shutdown.set()
        return []

    engine.check_expirations.side_effect = sweep
    worker = ExpirationWorker(engine=engine, shutdown_event=shutdown, interval_s=0.01)

    await asyncio.wait_for(worker.run(), timeout=0.5)

    assert len(calls) == 2
