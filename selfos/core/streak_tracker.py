"""
SelfOS — Streak Tracker.

Pure calendar-day rules for the completion streak. Callers always pass
"today" explicitly; nothing in this module reads the clock.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta
from typing import Iterable

from selfos.data.models import StreakState


def yesterday(today: date) -> date:
    return today - timedelta(days=1)


def rollover_check(state: StreakState, today: date) -> StreakState:
    """Reset the streak if the user skipped a day.

    Run once per dashboard load, before the streak is shown. A last-active
    date of yesterday or today keeps the streak; anything else resets
    `current_streak` to 0 and leaves the other counters alone.
    """
    last = state.last_active_date
    if last == yesterday(today):
        return state
    if last != today:
        return replace(state, current_streak=0)
    return state


def on_all_tasks_completed(state: StreakState, today: date) -> StreakState:
    """Record that every task for `today` is complete.

    Continues the streak when the previous active day was yesterday,
    otherwise starts a new streak at 1. `total_tasks_completed` counts
    completion events (one per day), not individual tasks.
    """
    if state.last_active_date == yesterday(today):
        streak = state.current_streak + 1
    else:
        streak = 1
    return StreakState(
        current_streak=streak,
        last_active_date=today,
        total_tasks_completed=state.total_tasks_completed + 1,
    )


def all_complete(flags: Iterable[bool]) -> bool:
    """True when a day's task set is non-empty and fully complete."""
    flags = list(flags)
    return bool(flags) and all(flags)


def completion_edge(before: bool, after: bool) -> bool:
    """True only for the Incomplete -> AllComplete transition."""
    return not before and after


def should_record_completion(
    before: bool, after: bool, state: StreakState, today: date,
) -> bool:
    """Decide whether a toggle fires `on_all_tasks_completed`.

    The aggregate must flip from incomplete to complete, and today must not
    have been recorded already; un-checking and re-checking a task on an
    already-completed day fires nothing.
    """
    return completion_edge(before, after) and state.last_active_date != today


def streak_message(streak: int) -> str:
    if streak <= 0:
        return "Start your streak today!"
    if streak == 1:
        return "Great start! Keep it going!"
    if streak < 7:
        return f"{streak} days strong! You're building momentum!"
    if streak < 30:
        return f"{streak} days! You're creating lasting change!"
    return f"{streak} days! You're unstoppable!"
