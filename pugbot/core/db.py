"""SQLite persistence: audit trail plus the schema/data operations upgrades drive."""

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import aiosqlite

from pugbot.logging_config import get_logger

logger = get_logger(__name__)

RowTransform = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_COLUMN_TYPE_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_ ()',.]*$")

_AUDIT_SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    category TEXT NOT NULL,
    event_type TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_audit_events_subject ON audit_events(subject_id);
"""


def _ident(name: str) -> str:
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


def _column_type(decl: str) -> str:
    if not _COLUMN_TYPE_RE.match(decl):
        raise ValueError(f"Invalid column type: {decl!r}")
    return decl


def _literal(value: Any) -> str:
    """Render a DEFAULT literal; SQLite does not accept bound parameters there."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value).replace("'", "''")
    return f"'{text}'"


class Db:
    """Async SQLite access for the audit sink and upgrade steps."""

    def __init__(self, db_path: str) -> None:
        """Initialize database.

        Args:
            db_path: Path to SQLite database file, or ``:memory:``
        """
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None
        self._transforms: Dict[str, RowTransform] = {}

    async def initialize(self) -> None:
        """Connect and create the audit table."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_AUDIT_SCHEMA)
        await self._db.commit()

    @property
    def conn(self) -> aiosqlite.Connection:
        """Get database connection, asserting it's initialized.

        Raises:
            RuntimeError: If database not initialized
        """
        if self._db is None:
            raise RuntimeError("Database not initialized - call initialize() first")
        return self._db

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    # Audit sink

    async def log_event(self, category: str, event_type: str, subject_id: str, payload: Dict[str, Any]) -> None:
        await self.conn.execute(
            "INSERT INTO audit_events (category, event_type, subject_id, payload, created_at) VALUES (?, ?, ?, ?, ?)",
            (category, event_type, subject_id, json.dumps(payload, default=str), datetime.now(timezone.utc).isoformat()),
        )
        await self.conn.commit()

    async def list_events(self, subject_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        """Return audit events newest first."""
        if subject_id is None:
            cursor = await self.conn.execute("SELECT * FROM audit_events ORDER BY id DESC LIMIT ?", (limit,))
        else:
            cursor = await self.conn.execute(
                "SELECT * FROM audit_events WHERE subject_id = ? ORDER BY id DESC LIMIT ?", (subject_id, limit)
            )
        rows = await cursor.fetchall()
        await cursor.close()
        return [
            {
                "id": row["id"],  # type: ignore[misc]  # Row access is Any from aiosqlite
                "category": row["category"],  # type: ignore[misc]
                "event_type": row["event_type"],  # type: ignore[misc]
                "subject_id": row["subject_id"],  # type: ignore[misc]
                "payload": json.loads(row["payload"]),  # type: ignore[misc]
                "created_at": row["created_at"],  # type: ignore[misc]
            }
            for row in rows
        ]

    # Storage schema

    async def table_exists(self, table: str) -> bool:
        cursor = await self.conn.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,))
        row = await cursor.fetchone()
        await cursor.close()
        return row is not None

    async def columns(self, table: str) -> List[str]:
        cursor = await self.conn.execute(f"PRAGMA table_info({_ident(table)})")
        rows = await cursor.fetchall()
        await cursor.close()
        return [str(row["name"]) for row in rows]  # type: ignore[misc]

    async def create_table(self, table: str, schema: Dict[str, str]) -> None:
        if not schema:
            raise ValueError(f"Table {table!r} needs at least one column")
        columns = ", ".join(f"{_ident(name)} {_column_type(decl)}" for name, decl in schema.items())
        await self.conn.execute(f"CREATE TABLE {_ident(table)} ({columns})")
        await self.conn.commit()
        logger.info("table created", table=table, columns=list(schema.keys()))

    async def add_columns(self, table: str, columns: List[Dict[str, Any]]) -> None:
        for column in columns:
            await self.add_field(table, column["name"], column.get("default"), column.get("type", "TEXT"))

    async def drop_columns(self, table: str, columns: List[str]) -> None:
        for column in columns:
            await self.remove_field(table, column)

    async def drop_table(self, table: str) -> None:
        await self.conn.execute(f"DROP TABLE IF EXISTS {_ident(table)}")
        await self.conn.commit()
        logger.info("table dropped", table=table)

    # Data migration

    async def add_field(self, table: str, field_name: str, default_value: Any = None, column_type: str = "TEXT") -> None:
        await self.conn.execute(
            f"ALTER TABLE {_ident(table)} ADD COLUMN {_ident(field_name)} "
            f"{_column_type(column_type)} DEFAULT {_literal(default_value)}"
        )
        await self.conn.commit()
        logger.info("column added", table=table, column=field_name)

    async def remove_field(self, table: str, field_name: str) -> None:
        await self.conn.execute(f"ALTER TABLE {_ident(table)} DROP COLUMN {_ident(field_name)}")
        await self.conn.commit()
        logger.info("column dropped", table=table, column=field_name)

    def register_transform(self, name: str, transform: RowTransform) -> None:
        """Register a named row transform for ``transform_data`` steps.

        The transform receives each row as a dict and returns the columns to
        update, or ``None`` to leave the row unchanged.
        """
        self._transforms[name] = transform

    async def transform_data(self, table: str, transform_name: str) -> int:
        """Apply a registered transform to every row. Returns rows changed."""
        transform = self._transforms.get(transform_name)
        if transform is None:
            raise KeyError(f"Unknown data transform: {transform_name}")

        cursor = await self.conn.execute(f"SELECT rowid AS _rowid, * FROM {_ident(table)}")
        rows = await cursor.fetchall()
        await cursor.close()

        changed = 0
        for row in rows:
            record = {key: row[key] for key in row.keys() if key != "_rowid"}  # type: ignore[misc]
            updates = transform(record)
            if not updates:
                continue
            assignments = ", ".join(f"{_ident(col)} = ?" for col in updates)
            await self.conn.execute(
                f"UPDATE {_ident(table)} SET {assignments} WHERE rowid = ?",
                (*updates.values(), row["_rowid"]),  # type: ignore[misc]
            )
            changed += 1
        await self.conn.commit()
        logger.info("data transformed", table=table, transform=transform_name, rows=changed)
        return changed
