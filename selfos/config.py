"""
SelfOS — Centralized configuration.

Loads all settings from .env and validates required keys.
Every other module reads configuration through the `settings` singleton.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from selfos/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # Record store: "sqlite" | "supabase"
    STORE_PROVIDER: str = "sqlite"

    # SQLite (only needed when STORE_PROVIDER=sqlite)
    DATABASE_PATH: str = "data/selfos.db"

    # Supabase (only needed when STORE_PROVIDER=supabase)
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    # Security: an empty list means the bot is open to everyone
    ALLOWED_USER_IDS: list[int] = []

    # Calendar-day boundaries and the daily reminder
    TIMEZONE: str = "UTC"
    DAILY_REMINDER_HOUR: int = 8

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("DAILY_REMINDER_HOUR", mode="before")
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"DAILY_REMINDER_HOUR must be 0-23, got {hour}")
        return hour


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    provider = os.getenv("STORE_PROVIDER", "sqlite")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if provider.lower() == "supabase" and not (
        os.getenv("SUPABASE_URL") and os.getenv("SUPABASE_KEY")
    ):
        print(
            "ERROR: STORE_PROVIDER=supabase requires SUPABASE_URL and SUPABASE_KEY",
            file=sys.stderr,
        )
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        STORE_PROVIDER=provider,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/selfos.db"),
        SUPABASE_URL=os.getenv("SUPABASE_URL", ""),
        SUPABASE_KEY=os.getenv("SUPABASE_KEY", ""),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        DAILY_REMINDER_HOUR=os.getenv("DAILY_REMINDER_HOUR", "8"),
    )


# Singleton, imported by all other modules as:
#   from selfos.config import settings
settings = _load_settings()
