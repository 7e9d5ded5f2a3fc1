"""
SelfOS — UI-Agnostic Habit Service.

Stateless service layer that holds all I/O around the pure plan and streak
logic: onboarding -> plan -> today's tasks, dashboard loading with the
day-boundary rollover, task toggling with edge-triggered streak updates,
and plan regeneration.

Each UI adapter (Telegram today) calls this service and renders the
returned dataclasses in its own way. "Today" is always supplied by the
caller.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Awaitable, Callable

from selfos.core.plan_generator import generate_plan
from selfos.core.streak_tracker import (
    all_complete,
    on_all_tasks_completed,
    rollover_check,
    should_record_completion,
    streak_message,
)
from selfos.data.models import (
    ActionPlan,
    OnboardingAnswers,
    OnboardingRecord,
    StoredPlan,
    StreakState,
    TaskRecord,
    UserProfile,
)
from selfos.ports.record_store import (
    ACTION_PLANS,
    ONBOARDING_RESPONSES,
    TASKS,
    USER_PROFILES,
    StoreError,
)

if TYPE_CHECKING:
    from selfos.ports.record_store import RecordStore

logger = logging.getLogger(__name__)

UndoStep = Callable[[], Awaitable[object]]


class HabitServiceError(Exception):
    """Raised when a user-facing operation cannot be completed."""


class OnboardingError(HabitServiceError):
    """The onboarding write sequence failed and was rolled back.

    Nothing from the failed attempt is left behind, so the whole
    submission can simply be retried.
    """


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


@dataclass
class Dashboard:
    profile: UserProfile | None
    tasks: list[TaskRecord] = field(default_factory=list)
    motivational_message: str | None = None
    streak_message: str = ""

    @property
    def completed_count(self) -> int:
        return sum(1 for t in self.tasks if t.completed)

    @property
    def total_count(self) -> int:
        return len(self.tasks)

    @property
    def progress(self) -> float:
        """Percentage of today's tasks completed (0 when there are none)."""
        if not self.tasks:
            return 0.0
        return self.completed_count / self.total_count * 100

    @property
    def all_complete(self) -> bool:
        return all_complete(t.completed for t in self.tasks)


@dataclass
class ToggleResult:
    task: TaskRecord
    all_complete: bool
    streak_recorded: bool
    profile: UserProfile | None = None


@dataclass
class ProfileView:
    profile: UserProfile | None
    answers: OnboardingAnswers | None = None
    answers_submitted_at: str = ""


# ---------------------------------------------------------------------------
# HabitService
# ---------------------------------------------------------------------------


class HabitService:
    """Orchestrates every user action against the record store.

    Returns structured dataclasses — never sends messages directly.
    """

    def __init__(
        self,
        store: RecordStore,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def register_user(self, user_id: str, username: str) -> UserProfile:
        """Create the profile row on first contact; return the existing one otherwise."""
        existing = await self._get_profile(user_id)
        if existing is not None:
            return existing

        rows = await self._store.insert(
            USER_PROFILES,
            [{
                "id": user_id,
                "username": username,
                "current_streak": 0,
                "total_tasks_completed": 0,
                "last_active_date": None,
            }],
        )
        logger.info("Registered user %s (%s)", user_id, username)
        return UserProfile.from_row(rows[0])

    async def get_profile(self, user_id: str) -> ProfileView:
        """Profile stats plus the most recent questionnaire answers."""
        profile = await self._get_profile(user_id)
        record = await self._latest_onboarding(user_id)
        if record is None:
            return ProfileView(profile=profile)
        return ProfileView(
            profile=profile,
            answers=record.answers,
            answers_submitted_at=record.created_at,
        )

    async def list_user_ids(self) -> list[str]:
        rows = await self._store.select(USER_PROFILES, order_by="created_at")
        return [str(r["id"]) for r in rows]

    # ------------------------------------------------------------------
    # Onboarding, preferences and plans
    # ------------------------------------------------------------------

    async def submit_onboarding(
        self, user_id: str, answers: OnboardingAnswers, today: date,
    ) -> ActionPlan:
        """Store the answers, generate a plan and install today's tasks.

        The three writes form one unit: if any of them fails, everything
        written by this attempt is undone and OnboardingError is raised.
        """
        undo: list[UndoStep] = []
        try:
            rows = await self._store.insert(
                ONBOARDING_RESPONSES, [{"user_id": user_id, **answers.to_row()}],
            )
            answers_id = rows[0]["id"]
            undo.append(lambda: self._store.delete(ONBOARDING_RESPONSES, {"id": answers_id}))

            plan = generate_plan(answers, self._rng)
            await self._install_plan(user_id, plan, today, undo)
        except StoreError as exc:
            logger.error("Onboarding for user %s failed, rolling back: %s", user_id, exc)
            await self._run_undo(undo)
            raise OnboardingError("Failed to save onboarding data") from exc

        logger.info(
            "Onboarding complete for user %s: %d task(s) for %s",
            user_id, len(plan.tasks), today.isoformat(),
        )
        return plan

    async def save_preferences(
        self, user_id: str, answers: OnboardingAnswers,
    ) -> OnboardingRecord:
        """Store a new answers record without touching the active plan."""
        rows = await self._store.insert(
            ONBOARDING_RESPONSES, [{"user_id": user_id, **answers.to_row()}],
        )
        logger.info("Preferences updated for user %s", user_id)
        return OnboardingRecord.from_row(rows[0])

    async def regenerate_plan(
        self,
        user_id: str,
        today: date,
        answers: OnboardingAnswers | None = None,
    ) -> ActionPlan:
        """Replace the active plan and today's tasks.

        Uses `answers` when given, otherwise the latest stored answers.
        """
        if answers is None:
            record = await self._latest_onboarding(user_id)
            if record is None:
                raise HabitServiceError("Complete onboarding before regenerating your plan")
            answers = record.answers

        plan = generate_plan(answers, self._rng)
        undo: list[UndoStep] = []
        try:
            await self._install_plan(user_id, plan, today, undo)
        except StoreError as exc:
            logger.error("Plan regeneration for user %s failed, rolling back: %s", user_id, exc)
            await self._run_undo(undo)
            raise HabitServiceError("Failed to regenerate plan") from exc

        logger.info("Plan regenerated for user %s", user_id)
        return plan

    # ------------------------------------------------------------------
    # Dashboard and task toggling
    # ------------------------------------------------------------------

    async def load_dashboard(self, user_id: str, today: date) -> Dashboard:
        """Load today's view, applying the streak rollover first.

        A reset streak is persisted. When the active plan has no task rows
        for today yet (a new day), they are created from the plan.
        """
        profile = await self._get_profile(user_id)
        if profile is not None:
            state = profile.streak_state()
            rolled = rollover_check(state, today)
            if rolled != state:
                await self._store.update(
                    USER_PROFILES, {"current_streak": 0}, {"id": user_id},
                )
                logger.info(
                    "Streak of %d reset for user %s (last active %s)",
                    state.current_streak, user_id, profile.last_active_date,
                )
                profile = profile.with_streak(rolled)

        plan = await self._active_plan(user_id)
        tasks = await self._today_tasks(user_id, today)
        if not tasks and plan is not None and plan.tasks:
            tasks = await self._materialize_tasks(user_id, plan, today)

        streak = profile.current_streak if profile else 0
        return Dashboard(
            profile=profile,
            tasks=tasks,
            motivational_message=plan.motivational_message if plan else None,
            streak_message=streak_message(streak),
        )

    async def toggle_task(self, user_id: str, task_id: str, today: date) -> ToggleResult:
        """Flip one of today's tasks and record the day if it just became complete.

        Completion state is compared on a fresh read of today's tasks,
        before and after the flip, so only the Incomplete -> AllComplete
        transition can touch the streak.
        """
        tasks = await self._today_tasks(user_id, today)
        target = next((t for t in tasks if t.id == task_id), None)
        if target is None:
            raise HabitServiceError(f"Task {task_id} is not one of today's tasks")

        before = all_complete(t.completed for t in tasks)

        new_status = not target.completed
        completed_at = self._clock().isoformat() if new_status else None
        await self._store.update(
            TASKS,
            {"completed": new_status, "completed_at": completed_at},
            {"id": task_id, "user_id": user_id},
        )
        target.completed = new_status
        target.completed_at = completed_at

        after = all_complete(t.completed for t in tasks)

        profile = await self._get_profile(user_id)
        recorded = False
        if profile is None:
            logger.warning("User %s has no profile; streak not updated", user_id)
        else:
            stored = profile.streak_state()
            state = rollover_check(stored, today)
            if should_record_completion(before, after, state, today):
                state = on_all_tasks_completed(state, today)
                recorded = True
                logger.info(
                    "User %s completed %s: streak %d",
                    user_id, today.isoformat(), state.current_streak,
                )
            # Persist a rollover reset as well as a recorded completion.
            if state != stored:
                await self._save_streak(user_id, state)
            profile = profile.with_streak(state)

        return ToggleResult(
            task=target, all_complete=after, streak_recorded=recorded, profile=profile,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _get_profile(self, user_id: str) -> UserProfile | None:
        rows = await self._store.select(USER_PROFILES, {"id": user_id}, limit=1)
        return UserProfile.from_row(rows[0]) if rows else None

    async def _latest_onboarding(self, user_id: str) -> OnboardingRecord | None:
        rows = await self._store.select(
            ONBOARDING_RESPONSES, {"user_id": user_id},
            order_by="created_at", descending=True, limit=1,
        )
        return OnboardingRecord.from_row(rows[0]) if rows else None

    async def _active_plan(self, user_id: str) -> StoredPlan | None:
        rows = await self._store.select(
            ACTION_PLANS, {"user_id": user_id, "is_active": True},
            order_by="created_at", descending=True, limit=1,
        )
        return StoredPlan.from_row(rows[0]) if rows else None

    async def _today_tasks(self, user_id: str, today: date) -> list[TaskRecord]:
        rows = await self._store.select(
            TASKS, {"user_id": user_id, "task_date": today.isoformat()},
            order_by="position",
        )
        return [TaskRecord.from_row(r) for r in rows]

    async def _save_streak(self, user_id: str, state: StreakState) -> None:
        await self._store.update(
            USER_PROFILES,
            {
                "current_streak": state.current_streak,
                "last_active_date": (
                    state.last_active_date.isoformat() if state.last_active_date else None
                ),
                "total_tasks_completed": state.total_tasks_completed,
            },
            {"id": user_id},
        )

    async def _materialize_tasks(
        self, user_id: str, plan: StoredPlan, today: date,
    ) -> list[TaskRecord]:
        rows = await self._store.insert(TASKS, _task_rows(user_id, plan.tasks, today))
        logger.info("Created %d task(s) for user %s on %s", len(rows), user_id, today.isoformat())
        return [TaskRecord.from_row(r) for r in rows]

    async def _install_plan(
        self, user_id: str, plan: ActionPlan, today: date, undo: list[UndoStep],
    ) -> None:
        """Swap in a new active plan and today's task set.

        The previous plan is deactivated before the new one is inserted,
        and today's rows are deleted before the new ones are inserted.
        Each completed step pushes its inverse onto `undo`.
        """
        previous = await self._store.select(
            ACTION_PLANS, {"user_id": user_id, "is_active": True},
        )
        if previous:
            await self._store.update(
                ACTION_PLANS, {"is_active": False}, {"user_id": user_id, "is_active": True},
            )
            for row in previous:
                plan_id = row["id"]
                undo.append(
                    lambda plan_id=plan_id: self._store.update(
                        ACTION_PLANS, {"is_active": True}, {"id": plan_id},
                    )
                )

        rows = await self._store.insert(
            ACTION_PLANS,
            [{
                "user_id": user_id,
                "plan_data": {"tasks": [t.to_dict() for t in plan.tasks]},
                "motivational_message": plan.motivational_message,
                "is_active": True,
            }],
        )
        new_plan_id = rows[0]["id"]
        undo.append(lambda: self._store.delete(ACTION_PLANS, {"id": new_plan_id}))

        day_filter = {"user_id": user_id, "task_date": today.isoformat()}
        old_tasks = await self._store.select(TASKS, day_filter, order_by="position")
        await self._store.delete(TASKS, day_filter)
        if old_tasks:
            undo.append(lambda: self._store.insert(TASKS, old_tasks))

        inserted = await self._store.insert(TASKS, _task_rows(user_id, plan.tasks, today))
        new_ids = [r["id"] for r in inserted]
        undo.append(lambda: _delete_ids(self._store, TASKS, new_ids))

    @staticmethod
    async def _run_undo(undo: list[UndoStep]) -> None:
        """Run undo steps newest-first; a failing step is logged and skipped."""
        for step in reversed(undo):
            try:
                await step()
            except StoreError as exc:
                logger.error("Rollback step failed, data may be inconsistent: %s", exc)


def _task_rows(user_id: str, tasks, today: date) -> list[dict]:
    return [
        {
            "user_id": user_id,
            "title": t.title,
            "description": t.description,
            "task_date": today.isoformat(),
            "completed": False,
            "position": position,
        }
        for position, t in enumerate(tasks)
    ]


async def _delete_ids(store: RecordStore, table: str, ids: list[str]) -> None:
    for row_id in ids:
        await store.delete(table, {"id": row_id})
