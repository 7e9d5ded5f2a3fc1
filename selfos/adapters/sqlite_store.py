"""SQLite record store adapter — implements RecordStore.

Local stand-in for the hosted backend: the same four collections, the same
row shapes, UUID ids and ISO `created_at` timestamps. JSON columns and
booleans are encoded on the way in and decoded on the way out so callers see
the same dicts the Supabase adapter returns.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from selfos.ports.record_store import (
    ACTION_PLANS,
    ONBOARDING_RESPONSES,
    TASKS,
    USER_PROFILES,
    StoreError,
)

logger = logging.getLogger(__name__)


_SCHEMA: dict[str, str] = {
    TASKS: """
        CREATE TABLE IF NOT EXISTS tasks (
            id           TEXT    PRIMARY KEY,
            user_id      TEXT    NOT NULL,
            title        TEXT    NOT NULL,
            description  TEXT    NOT NULL DEFAULT '',
            task_date    TEXT    NOT NULL,
            completed    INTEGER NOT NULL DEFAULT 0,
            completed_at TEXT,
            position     INTEGER NOT NULL DEFAULT 0,
            created_at   TEXT    NOT NULL
        )
    """,
    USER_PROFILES: """
        CREATE TABLE IF NOT EXISTS user_profiles (
            id                    TEXT    PRIMARY KEY,
            username              TEXT    NOT NULL DEFAULT '',
            current_streak        INTEGER NOT NULL DEFAULT 0,
            total_tasks_completed INTEGER NOT NULL DEFAULT 0,
            last_active_date      TEXT,
            created_at            TEXT    NOT NULL
        )
    """,
    ONBOARDING_RESPONSES: """
        CREATE TABLE IF NOT EXISTS onboarding_responses (
            id               TEXT    PRIMARY KEY,
            user_id          TEXT    NOT NULL,
            main_problem     TEXT    NOT NULL,
            daily_routine    TEXT    NOT NULL DEFAULT '',
            available_time   TEXT    NOT NULL DEFAULT '',
            personal_goals   TEXT    NOT NULL DEFAULT '[]',
            motivation_level INTEGER NOT NULL DEFAULT 5,
            created_at       TEXT    NOT NULL
        )
    """,
    ACTION_PLANS: """
        CREATE TABLE IF NOT EXISTS action_plans (
            id                   TEXT    PRIMARY KEY,
            user_id              TEXT    NOT NULL,
            plan_data            TEXT    NOT NULL DEFAULT '{}',
            motivational_message TEXT    NOT NULL DEFAULT '',
            is_active            INTEGER NOT NULL DEFAULT 1,
            created_at           TEXT    NOT NULL
        )
    """,
}

# Column defaults applied on insert so returned rows are complete.
_DEFAULTS: dict[str, dict] = {
    TASKS: {
        "user_id": None, "title": None, "description": "", "task_date": None,
        "completed": False, "completed_at": None, "position": 0,
    },
    USER_PROFILES: {
        "username": "", "current_streak": 0, "total_tasks_completed": 0,
        "last_active_date": None,
    },
    ONBOARDING_RESPONSES: {
        "user_id": None, "main_problem": None, "daily_routine": "",
        "available_time": "", "personal_goals": [], "motivation_level": 5,
    },
    ACTION_PLANS: {
        "user_id": None, "plan_data": {}, "motivational_message": "",
        "is_active": True,
    },
}

_JSON_COLUMNS = {"personal_goals", "plan_data"}
_BOOL_COLUMNS = {"completed", "is_active"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _encode(column: str, value):
    if value is None:
        return None
    if column in _JSON_COLUMNS:
        return json.dumps(value)
    if column in _BOOL_COLUMNS:
        return int(bool(value))
    return value


def _decode_row(row: sqlite3.Row) -> dict:
    out: dict = {}
    for key in row.keys():
        value = row[key]
        if key in _JSON_COLUMNS and value is not None:
            value = json.loads(value)
        elif key in _BOOL_COLUMNS and value is not None:
            value = bool(value)
        out[key] = value
    return out


class SQLiteRecordStore:
    """SQLite implementation of RecordStore."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from selfos.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the four collections if they don't exist."""
        with self._connect() as conn:
            for ddl in _SCHEMA.values():
                conn.execute(ddl)
            self._columns = {
                table: {
                    row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()
                }
                for table in _SCHEMA
            }
        logger.debug("Record store initialized at %s", self._db_path)

    def _check(self, table: str, columns) -> None:
        if table not in _SCHEMA:
            raise StoreError(f"Unknown table: {table!r}")
        unknown = set(columns) - self._columns[table]
        if unknown:
            raise StoreError(f"Unknown columns for {table}: {sorted(unknown)}")

    def _where(self, table: str, filters: dict | None) -> tuple[str, list]:
        filters = filters or {}
        self._check(table, filters)
        if not filters:
            return "", []
        clauses = []
        params: list = []
        for column, value in filters.items():
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(_encode(column, value))
        return " WHERE " + " AND ".join(clauses), params

    async def select(
        self,
        table: str,
        filters: dict | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict]:
        where, params = self._where(table, filters)
        query = f"SELECT * FROM {table}{where}"
        direction = "DESC" if descending else "ASC"
        if order_by is not None:
            self._check(table, [order_by])
            query += f" ORDER BY {order_by} {direction}, rowid {direction}"
        else:
            query += f" ORDER BY rowid {direction}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))

        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"select from {table} failed: {exc}") from exc
        return [_decode_row(r) for r in rows]

    async def insert(self, table: str, rows: list[dict]) -> list[dict]:
        if not rows:
            return []
        for row in rows:
            self._check(table, row)

        stored: list[dict] = []
        for row in rows:
            full = {**_DEFAULTS[table], **row}
            full.setdefault("id", str(uuid.uuid4()))
            full["id"] = str(full["id"])
            full.setdefault("created_at", _now_iso())
            stored.append(full)

        try:
            with self._connect() as conn:
                for full in stored:
                    columns = list(full)
                    placeholders = ", ".join("?" for _ in columns)
                    conn.execute(
                        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                        [_encode(c, full[c]) for c in columns],
                    )
        except sqlite3.Error as exc:
            raise StoreError(f"insert into {table} failed: {exc}") from exc

        logger.debug("Inserted %d row(s) into %s", len(stored), table)
        return stored

    async def update(self, table: str, fields: dict, filters: dict) -> list[dict]:
        if not fields:
            return []
        self._check(table, fields)
        where, params = self._where(table, filters)
        assignments = ", ".join(f"{column} = ?" for column in fields)
        values = [_encode(c, v) for c, v in fields.items()]

        try:
            with self._connect() as conn:
                rowids = [
                    r[0] for r in conn.execute(f"SELECT rowid FROM {table}{where}", params)
                ]
                if not rowids:
                    return []
                marks = ", ".join("?" for _ in rowids)
                conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE rowid IN ({marks})",
                    values + rowids,
                )
                rows = conn.execute(
                    f"SELECT * FROM {table} WHERE rowid IN ({marks}) ORDER BY rowid",
                    rowids,
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"update of {table} failed: {exc}") from exc
        return [_decode_row(r) for r in rows]

    async def delete(self, table: str, filters: dict) -> int:
        where, params = self._where(table, filters)
        if not where:
            raise StoreError(f"Refusing to delete every row of {table}")
        try:
            with self._connect() as conn:
                cursor = conn.execute(f"DELETE FROM {table}{where}", params)
        except sqlite3.Error as exc:
            raise StoreError(f"delete from {table} failed: {exc}") from exc
        if cursor.rowcount:
            logger.debug("Deleted %d row(s) from %s", cursor.rowcount, table)
        return cursor.rowcount
