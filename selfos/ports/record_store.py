"""Record store port — abstract interface for the external data service.

Core modules depend on this protocol, never on a specific backend.
Filters are column-equality conjunctions; dates travel as YYYY-MM-DD strings.
"""

from __future__ import annotations

from typing import Protocol

TASKS = "tasks"
USER_PROFILES = "user_profiles"
ONBOARDING_RESPONSES = "onboarding_responses"
ACTION_PLANS = "action_plans"


class StoreError(Exception):
    """Raised when any record store operation fails."""


class RecordStore(Protocol):
    """Generic per-collection operations used by the service layer."""

    async def select(
        self,
        table: str,
        filters: dict | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict]: ...

    async def insert(self, table: str, rows: list[dict]) -> list[dict]: ...

    async def update(
        self, table: str, fields: dict, filters: dict
    ) -> list[dict]: ...

    async def delete(self, table: str, filters: dict) -> int: ...
