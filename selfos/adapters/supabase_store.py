"""Supabase record store adapter — implements RecordStore.

Talks to the hosted backend through supabase-py's PostgREST query builder.
Row-level atomicity is the backend's; this adapter only translates calls
and errors. supabase-py is synchronous, so each request runs in a worker
thread via asyncio.to_thread to keep the bot's event loop free.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from selfos.ports.record_store import StoreError

logger = logging.getLogger(__name__)


def _apply_filters(query: Any, filters: dict | None) -> Any:
    for column, value in (filters or {}).items():
        if value is None:
            query = query.is_(column, "null")
        else:
            query = query.eq(column, value)
    return query


async def _execute(query: Any, action: str) -> list[dict]:
    """Run a built query off the event loop; any backend failure -> StoreError."""
    try:
        result = await asyncio.to_thread(query.execute)
    except (APIError, httpx.HTTPError) as exc:
        logger.error("Supabase %s failed: %s", action, exc)
        raise StoreError(f"{action} failed: {exc}") from exc
    return list(result.data or [])


class SupabaseRecordStore:
    """Supabase implementation of RecordStore."""

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        client: Client | None = None,
    ) -> None:
        if client is None:
            if url is None or key is None:
                from selfos.config import settings
                url = url or settings.SUPABASE_URL
                key = key or settings.SUPABASE_KEY
            client = create_client(url, key)
        self._client = client

    async def select(
        self,
        table: str,
        filters: dict | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict]:
        query = _apply_filters(self._client.table(table).select("*"), filters)
        if order_by is not None:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        return await _execute(query, f"select from {table}")

    async def insert(self, table: str, rows: list[dict]) -> list[dict]:
        if not rows:
            return []
        query = self._client.table(table).insert(rows)
        return await _execute(query, f"insert into {table}")

    async def update(self, table: str, fields: dict, filters: dict) -> list[dict]:
        query = _apply_filters(self._client.table(table).update(fields), filters)
        return await _execute(query, f"update of {table}")

    async def delete(self, table: str, filters: dict) -> int:
        if not filters:
            raise StoreError(f"Refusing to delete every row of {table}")
        query = _apply_filters(self._client.table(table).delete(), filters)
        return len(await _execute(query, f"delete from {table}"))
