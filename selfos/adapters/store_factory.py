"""Record store factory — creates the right adapter based on config."""

from __future__ import annotations

from selfos.config import settings
from selfos.ports.record_store import RecordStore


def create_record_store() -> RecordStore:
    """Return the record store matching the STORE_PROVIDER setting."""
    provider = settings.STORE_PROVIDER.lower()

    if provider == "sqlite":
        from selfos.adapters.sqlite_store import SQLiteRecordStore

        return SQLiteRecordStore(db_path=settings.DATABASE_PATH)

    if provider == "supabase":
        from selfos.adapters.supabase_store import SupabaseRecordStore

        return SupabaseRecordStore(url=settings.SUPABASE_URL, key=settings.SUPABASE_KEY)

    raise ValueError(f"Unknown STORE_PROVIDER: {provider!r}")
