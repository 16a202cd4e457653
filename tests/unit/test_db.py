"""Unit tests for the aiosqlite-backed Db."""

from pathlib import Path

import pytest

from pugbot.core.db import Db


@pytest.fixture
async def db(tmp_path: Path):
    database = Db(str(tmp_path / "data" / "pugbot.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.mark.integration
async def test_audit_events_newest_first(db):
    await db.log_event("notification", "pre_game", "u1", {"tier": 0})
    await db.log_event("notification", "match_queue", "u1", {"tier": 0})
    await db.log_event("notification", "pre_game", "u2", {"tier": 0})

    events = await db.list_events("u1")

    assert [event["event_type"] for event in events] == ["match_queue", "pre_game"]
    assert events[0]["payload"] == {"tier": 0}
    assert len(await db.list_events()) == 3


@pytest.mark.integration
async def test_table_lifecycle(db):
    assert await db.table_exists("prefs") is False

    await db.create_table("prefs", {"user_id": "TEXT PRIMARY KEY", "max_tier": "INTEGER"})
    await db.add_columns("prefs", [{"name": "quiet_hours", "type": "TEXT", "default": "none"}])

    assert await db.columns("prefs") == ["user_id", "max_tier", "quiet_hours"]

    await db.drop_columns("prefs", ["quiet_hours"])
    assert await db.columns("prefs") == ["user_id", "max_tier"]

    await db.drop_table("prefs")
    assert await db.table_exists("prefs") is False


@pytest.mark.integration
async def test_add_field_default_and_transform(db):
    await db.create_table("players", {"user_id": "TEXT", "rank": "INTEGER"})
    await db.conn.executemany("INSERT INTO players (user_id, rank) VALUES (?, ?)", [("u1", 1), ("u2", 5)])
    await db.conn.commit()
    await db.add_field("players", "tier_pref", 2, column_type="INTEGER")

    db.register_transform("promote", lambda row: {"rank": row["rank"] + 1} if row["rank"] < 5 else None)
    changed = await db.transform_data("players", "promote")

    assert changed == 1
    cursor = await db.conn.execute("SELECT user_id, rank, tier_pref FROM players ORDER BY user_id")
    rows = [tuple(row) for row in await cursor.fetchall()]
    await cursor.close()
    assert rows == [("u1", 2, 2), ("u2", 5, 2)]


@pytest.mark.integration
async def test_unknown_transform_raises(db):
    await db.create_table("players", {"user_id": "TEXT"})

    with pytest.raises(KeyError):
        await db.transform_data("players", "nope")


@pytest.mark.unit
async def test_identifiers_are_validated(db):
    with pytest.raises(ValueError, match="Invalid SQL identifier"):
        await db.create_table("players; DROP TABLE audit_events", {"id": "TEXT"})


@pytest.mark.unit
async def test_uninitialized_db_raises():
    with pytest.raises(RuntimeError):
        Db(":memory:").conn
