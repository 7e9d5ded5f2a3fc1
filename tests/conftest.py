"""Shared test fixtures and configuration.

Sets up fake environment variables so selfos.config doesn't sys.exit(),
and provides common fixtures like a temp record store.
"""

import os

# Patch env vars BEFORE any selfos imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("STORE_PROVIDER", "sqlite")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("TIMEZONE", "UTC")

import random
from datetime import date

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_selfos.db")


@pytest.fixture
def store(tmp_db_path):
    """Return a SQLiteRecordStore backed by a temp file."""
    from selfos.adapters.sqlite_store import SQLiteRecordStore
    return SQLiteRecordStore(db_path=tmp_db_path)


@pytest.fixture
def service(store):
    """Return a HabitService with a seeded random source."""
    from selfos.core.habit_service import HabitService
    return HabitService(store, rng=random.Random(7))


@pytest.fixture
def today():
    return date(2026, 3, 10)


@pytest.fixture
def answers():
    from selfos.data.models import OnboardingAnswers
    return OnboardingAnswers(
        main_problem="Focus",
        daily_routine="Night owl",
        available_time="In the evening",
        personal_goals=("Study",),
        motivation_level=6,
    )
