"""Tests for selfos.core.habit_service — the UI-agnostic service layer.

Runs HabitService against a temp SQLite record store; failure paths wrap the
store so a chosen write raises StoreError.
"""

import random
from datetime import date, datetime, timedelta, timezone

import pytest

from selfos.core.habit_service import (
    Dashboard,
    HabitService,
    HabitServiceError,
    OnboardingError,
)
from selfos.core.plan_generator import CELEBRATE_TASK, GOAL_TASKS, PROBLEM_TASKS, REFLECT_TASK
from selfos.data.models import OnboardingAnswers, TaskRecord, UserProfile
from selfos.ports.record_store import (
    ACTION_PLANS,
    ONBOARDING_RESPONSES,
    TASKS,
    USER_PROFILES,
    StoreError,
)

USER = "12345"


class FlakyStore:
    """Delegates to a real store, failing the Nth call of one (method, table)."""

    def __init__(self, inner, method, table, fail_on=1):
        self._inner = inner
        self._method = method
        self._table = table
        self._fail_on = fail_on
        self._calls = 0

    def __getattr__(self, name):
        real = getattr(self._inner, name)

        async def wrapper(table, *args, **kwargs):
            if name == self._method and table == self._table:
                self._calls += 1
                if self._calls == self._fail_on:
                    raise StoreError(f"{name} on {table} failed")
            return await real(table, *args, **kwargs)

        return wrapper


async def _set_streak(store, current, last_active, total):
    await store.update(
        USER_PROFILES,
        {
            "current_streak": current,
            "last_active_date": last_active.isoformat() if last_active else None,
            "total_tasks_completed": total,
        },
        {"id": USER},
    )


async def _onboarded(service, answers, today):
    await service.register_user(USER, "amit")
    await service.submit_onboarding(USER, answers, today)
    return await service.load_dashboard(USER, today)


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class TestRegisterUser:
    @pytest.mark.asyncio
    async def test_creates_zeroed_profile(self, service):
        profile = await service.register_user(USER, "amit")
        assert isinstance(profile, UserProfile)
        assert profile.id == USER
        assert profile.current_streak == 0
        assert profile.total_tasks_completed == 0
        assert profile.last_active_date is None

    @pytest.mark.asyncio
    async def test_second_call_returns_existing(self, service, store):
        await service.register_user(USER, "amit")
        await _set_streak(store, 3, date(2026, 3, 9), 3)
        profile = await service.register_user(USER, "renamed")
        assert profile.username == "amit"
        assert profile.current_streak == 3
        assert len(await store.select(USER_PROFILES)) == 1

    @pytest.mark.asyncio
    async def test_list_user_ids(self, service):
        await service.register_user("1", "a")
        await service.register_user("2", "b")
        assert await service.list_user_ids() == ["1", "2"]


class TestGetProfile:
    @pytest.mark.asyncio
    async def test_missing_everything_is_empty_state(self, service):
        view = await service.get_profile(USER)
        assert view.profile is None
        assert view.answers is None

    @pytest.mark.asyncio
    async def test_latest_answers_win(self, service, answers):
        await service.register_user(USER, "amit")
        await service.save_preferences(USER, answers)
        newer = OnboardingAnswers("Laziness", "Morning person", "In the morning", ("Health",), 9)
        await service.save_preferences(USER, newer)
        view = await service.get_profile(USER)
        assert view.answers == newer
        assert view.answers_submitted_at


# ---------------------------------------------------------------------------
# Onboarding and plans
# ---------------------------------------------------------------------------


class TestSubmitOnboarding:
    @pytest.mark.asyncio
    async def test_writes_answers_plan_and_tasks(self, service, store, answers, today):
        await service.register_user(USER, "amit")
        plan = await service.submit_onboarding(USER, answers, today)

        assert list(plan.tasks) == [
            PROBLEM_TASKS["focus"][0], GOAL_TASKS["study"][0], REFLECT_TASK, CELEBRATE_TASK,
        ]
        assert len(await store.select(ONBOARDING_RESPONSES, {"user_id": USER})) == 1
        plans = await store.select(ACTION_PLANS, {"user_id": USER})
        assert len(plans) == 1
        assert plans[0]["is_active"] is True
        assert plans[0]["motivational_message"] == plan.motivational_message
        tasks = await store.select(
            TASKS, {"user_id": USER, "task_date": today.isoformat()}, order_by="created_at",
        )
        assert [t["title"] for t in tasks] == [t.title for t in plan.tasks]
        assert all(t["completed"] is False for t in tasks)

    @pytest.mark.asyncio
    async def test_resubmission_keeps_one_active_plan(self, service, store, answers, today):
        await service.register_user(USER, "amit")
        await service.submit_onboarding(USER, answers, today)
        await service.submit_onboarding(USER, answers, today)

        active = await store.select(ACTION_PLANS, {"user_id": USER, "is_active": True})
        assert len(active) == 1
        tasks = await store.select(TASKS, {"user_id": USER, "task_date": today.isoformat()})
        assert len(tasks) == 4
        assert len(await store.select(ONBOARDING_RESPONSES, {"user_id": USER})) == 2

    @pytest.mark.asyncio
    async def test_task_insert_failure_rolls_back_everything(self, store, answers, today):
        flaky = FlakyStore(store, "insert", TASKS)
        service = HabitService(flaky, rng=random.Random(1))
        await service.register_user(USER, "amit")

        with pytest.raises(OnboardingError):
            await service.submit_onboarding(USER, answers, today)

        assert await store.select(ONBOARDING_RESPONSES) == []
        assert await store.select(ACTION_PLANS) == []
        assert await store.select(TASKS) == []

    @pytest.mark.asyncio
    async def test_failed_retry_restores_previous_plan(self, store, answers, today):
        good = HabitService(store, rng=random.Random(1))
        await good.register_user(USER, "amit")
        await good.submit_onboarding(USER, answers, today)
        before_plans = await store.select(ACTION_PLANS, {"is_active": True})
        before_tasks = await store.select(TASKS, order_by="created_at")

        flaky = FlakyStore(store, "insert", TASKS)
        with pytest.raises(OnboardingError):
            await HabitService(flaky).submit_onboarding(USER, answers, today)

        assert await store.select(ACTION_PLANS, {"is_active": True}) == before_plans
        assert len(await store.select(ACTION_PLANS)) == 1
        after_tasks = await store.select(TASKS, order_by="created_at")
        assert [t["id"] for t in after_tasks] == [t["id"] for t in before_tasks]
        assert len(await store.select(ONBOARDING_RESPONSES)) == 1

    @pytest.mark.asyncio
    async def test_plan_insert_failure_is_retryable(self, store, answers, today):
        flaky = FlakyStore(store, "insert", ACTION_PLANS)
        service = HabitService(flaky)
        await service.register_user(USER, "amit")

        with pytest.raises(OnboardingError):
            await service.submit_onboarding(USER, answers, today)
        plan = await service.submit_onboarding(USER, answers, today)

        assert len(plan.tasks) == 4
        assert len(await store.select(ONBOARDING_RESPONSES)) == 1
        assert len(await store.select(ACTION_PLANS)) == 1


class TestSavePreferences:
    @pytest.mark.asyncio
    async def test_does_not_touch_plan_or_tasks(self, service, store, answers, today):
        await _onboarded(service, answers, today)
        plans_before = await store.select(ACTION_PLANS)
        tasks_before = await store.select(TASKS)

        record = await service.save_preferences(
            USER, OnboardingAnswers("Laziness", "", "", (), 2),
        )

        assert record.answers.main_problem == "Laziness"
        assert await store.select(ACTION_PLANS) == plans_before
        assert await store.select(TASKS) == tasks_before


class TestRegeneratePlan:
    @pytest.mark.asyncio
    async def test_requires_onboarding(self, service, today):
        await service.register_user(USER, "amit")
        with pytest.raises(HabitServiceError, match="Complete onboarding"):
            await service.regenerate_plan(USER, today)

    @pytest.mark.asyncio
    async def test_uses_latest_answers(self, service, store, answers, today):
        await _onboarded(service, answers, today)
        await service.save_preferences(
            USER, OnboardingAnswers("Laziness", "", "In the morning", ("Work",), 9),
        )

        plan = await service.regenerate_plan(USER, today)

        assert plan.tasks[0] == PROBLEM_TASKS["laziness"][0]
        dashboard = await service.load_dashboard(USER, today)
        assert [t.title for t in dashboard.tasks] == [t.title for t in plan.tasks]
        assert dashboard.motivational_message == plan.motivational_message
        assert len(await store.select(ACTION_PLANS, {"is_active": True})) == 1
        assert len(await store.select(ACTION_PLANS, {"is_active": False})) == 1

    @pytest.mark.asyncio
    async def test_explicit_answers_are_not_saved(self, service, store, answers, today):
        await _onboarded(service, answers, today)
        other = OnboardingAnswers("Discipline", "", "", (), 5)
        plan = await service.regenerate_plan(USER, today, answers=other)
        assert plan.tasks[0] == PROBLEM_TASKS["discipline"][0]
        assert len(await store.select(ONBOARDING_RESPONSES)) == 1

    @pytest.mark.asyncio
    async def test_completed_tasks_replaced(self, service, answers, today):
        dashboard = await _onboarded(service, answers, today)
        await service.toggle_task(USER, dashboard.tasks[0].id, today)
        await service.regenerate_plan(USER, today)
        dashboard = await service.load_dashboard(USER, today)
        assert dashboard.completed_count == 0

    @pytest.mark.asyncio
    async def test_failure_raises_service_error(self, store, answers, today):
        good = HabitService(store)
        await _onboarded(good, answers, today)
        flaky = FlakyStore(store, "delete", TASKS)
        with pytest.raises(HabitServiceError, match="Failed to regenerate"):
            await HabitService(flaky).regenerate_plan(USER, today)
        assert len(await store.select(ACTION_PLANS, {"is_active": True})) == 1
        assert len(await store.select(ACTION_PLANS)) == 1


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class TestLoadDashboard:
    @pytest.mark.asyncio
    async def test_unknown_user_is_empty_state(self, service, today):
        dashboard = await service.load_dashboard(USER, today)
        assert dashboard.profile is None
        assert dashboard.tasks == []
        assert dashboard.motivational_message is None
        assert dashboard.progress == 0.0
        assert dashboard.streak_message == "Start your streak today!"

    @pytest.mark.asyncio
    async def test_gap_resets_and_persists_streak(self, service, store, today):
        await service.register_user(USER, "amit")
        await _set_streak(store, 10, today - timedelta(days=3), 30)

        dashboard = await service.load_dashboard(USER, today)

        assert dashboard.profile.current_streak == 0
        assert dashboard.profile.total_tasks_completed == 30
        rows = await store.select(USER_PROFILES, {"id": USER})
        assert rows[0]["current_streak"] == 0
        assert rows[0]["last_active_date"] == (today - timedelta(days=3)).isoformat()

    @pytest.mark.asyncio
    async def test_yesterday_keeps_streak(self, service, store, today):
        await service.register_user(USER, "amit")
        await _set_streak(store, 4, today - timedelta(days=1), 4)
        dashboard = await service.load_dashboard(USER, today)
        assert dashboard.profile.current_streak == 4
        assert dashboard.streak_message.startswith("4 days strong")

    @pytest.mark.asyncio
    async def test_new_day_materializes_tasks_from_plan(self, service, store, answers, today):
        await _onboarded(service, answers, today)
        tomorrow = today + timedelta(days=1)

        first = await service.load_dashboard(USER, tomorrow)
        second = await service.load_dashboard(USER, tomorrow)

        assert [t.title for t in first.tasks] == [
            PROBLEM_TASKS["focus"][0].title, GOAL_TASKS["study"][0].title,
            REFLECT_TASK.title, CELEBRATE_TASK.title,
        ]
        assert all(t.task_date == tomorrow.isoformat() for t in first.tasks)
        assert [t.id for t in second.tasks] == [t.id for t in first.tasks]
        assert len(await store.select(TASKS, {"task_date": today.isoformat()})) == 4

    @pytest.mark.asyncio
    async def test_progress(self, service, answers, today):
        dashboard = await _onboarded(service, answers, today)
        await service.toggle_task(USER, dashboard.tasks[0].id, today)
        dashboard = await service.load_dashboard(USER, today)
        assert dashboard.completed_count == 1
        assert dashboard.total_count == 4
        assert dashboard.progress == 25.0
        assert dashboard.all_complete is False


class TestDashboardProperties:
    def test_empty_dashboard_not_complete(self):
        assert Dashboard(profile=None).all_complete is False

    def test_full_dashboard(self):
        tasks = [
            TaskRecord(id=str(i), user_id=USER, title="t", description="",
                       task_date="2026-03-10", completed=True)
            for i in range(3)
        ]
        dashboard = Dashboard(profile=None, tasks=tasks)
        assert dashboard.progress == 100.0
        assert dashboard.all_complete is True


# ---------------------------------------------------------------------------
# Toggling and streaks
# ---------------------------------------------------------------------------


async def _complete_all(service, dashboard, today):
    result = None
    for task in dashboard.tasks:
        result = await service.toggle_task(USER, task.id, today)
    return result


class TestToggleTask:
    @pytest.mark.asyncio
    async def test_toggle_sets_completed_at(self, store, answers, today):
        fixed = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)
        service = HabitService(store, clock=lambda: fixed)
        dashboard = await _onboarded(service, answers, today)

        result = await service.toggle_task(USER, dashboard.tasks[0].id, today)
        assert result.task.completed is True
        assert result.task.completed_at == fixed.isoformat()
        assert result.streak_recorded is False

        result = await service.toggle_task(USER, dashboard.tasks[0].id, today)
        assert result.task.completed is False
        assert result.task.completed_at is None
        rows = await store.select(TASKS, {"id": dashboard.tasks[0].id})
        assert rows[0]["completed"] is False
        assert rows[0]["completed_at"] is None

    @pytest.mark.asyncio
    async def test_unknown_task(self, service, answers, today):
        await _onboarded(service, answers, today)
        with pytest.raises(HabitServiceError):
            await service.toggle_task(USER, "not-a-task", today)

    @pytest.mark.asyncio
    async def test_yesterdays_task_is_not_togglable_today(self, service, answers, today):
        dashboard = await _onboarded(service, answers, today)
        with pytest.raises(HabitServiceError):
            await service.toggle_task(USER, dashboard.tasks[0].id, today + timedelta(days=1))

    @pytest.mark.asyncio
    async def test_first_completed_day_starts_streak(self, service, answers, today):
        dashboard = await _onboarded(service, answers, today)
        result = await _complete_all(service, dashboard, today)

        assert result.all_complete is True
        assert result.streak_recorded is True
        assert result.profile.current_streak == 1
        assert result.profile.total_tasks_completed == 1
        assert result.profile.last_active_date == today.isoformat()

    @pytest.mark.asyncio
    async def test_continues_streak_from_yesterday(self, service, store, answers, today):
        dashboard = await _onboarded(service, answers, today)
        await _set_streak(store, 4, today - timedelta(days=1), 4)

        result = await _complete_all(service, dashboard, today)

        assert result.profile.current_streak == 5
        rows = await store.select(USER_PROFILES, {"id": USER})
        assert rows[0]["current_streak"] == 5
        assert rows[0]["last_active_date"] == today.isoformat()
        assert rows[0]["total_tasks_completed"] == 5

    @pytest.mark.asyncio
    async def test_uncheck_and_recheck_counts_once(self, service, store, answers, today):
        dashboard = await _onboarded(service, answers, today)
        await _set_streak(store, 4, today - timedelta(days=1), 4)
        await _complete_all(service, dashboard, today)

        last = dashboard.tasks[-1].id
        undo = await service.toggle_task(USER, last, today)
        redo = await service.toggle_task(USER, last, today)

        assert undo.all_complete is False
        assert undo.streak_recorded is False
        assert redo.all_complete is True
        assert redo.streak_recorded is False
        rows = await store.select(USER_PROFILES, {"id": USER})
        assert rows[0]["current_streak"] == 5
        assert rows[0]["total_tasks_completed"] == 5

    @pytest.mark.asyncio
    async def test_stale_streak_restarts_at_one(self, service, store, answers, today):
        dashboard = await _onboarded(service, answers, today)
        await _set_streak(store, 10, today - timedelta(days=3), 10)
        result = await _complete_all(service, dashboard, today)
        assert result.profile.current_streak == 1
        assert result.profile.total_tasks_completed == 11

    @pytest.mark.asyncio
    async def test_consecutive_days(self, service, answers, today):
        dashboard = await _onboarded(service, answers, today)
        await _complete_all(service, dashboard, today)

        tomorrow = today + timedelta(days=1)
        dashboard = await service.load_dashboard(USER, tomorrow)
        assert dashboard.profile.current_streak == 1
        result = await _complete_all(service, dashboard, tomorrow)
        assert result.profile.current_streak == 2

        later = tomorrow + timedelta(days=2)
        dashboard = await service.load_dashboard(USER, later)
        assert dashboard.profile.current_streak == 0
        assert dashboard.profile.total_tasks_completed == 2


class TestChecklistOrder:
    @pytest.mark.asyncio
    async def test_tasks_carry_plan_positions(self, service, store, answers, today):
        dashboard = await _onboarded(service, answers, today)
        assert [t.position for t in dashboard.tasks] == [0, 1, 2, 3]
        rows = await store.select(TASKS, {"task_date": today.isoformat()})
        assert sorted(r["position"] for r in rows) == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_same_timestamp_rows_follow_position(self, service, store, today):
        await service.register_user(USER, "amit")
        stamp = "2026-03-10T06:00:00+00:00"
        await store.insert(TASKS, [
            {"user_id": USER, "title": "Second", "task_date": today.isoformat(),
             "position": 1, "created_at": stamp},
            {"user_id": USER, "title": "First", "task_date": today.isoformat(),
             "position": 0, "created_at": stamp},
        ])

        dashboard = await service.load_dashboard(USER, today)

        assert [t.title for t in dashboard.tasks] == ["First", "Second"]


class TestToggleAfterMissedDays:
    @pytest.mark.asyncio
    async def test_reset_streak_is_persisted_without_completion(
        self, service, store, answers, today,
    ):
        dashboard = await _onboarded(service, answers, today)
        await _set_streak(store, 10, today - timedelta(days=3), 10)

        result = await service.toggle_task(USER, dashboard.tasks[0].id, today)

        assert result.streak_recorded is False
        assert result.profile.current_streak == 0
        rows = await store.select(USER_PROFILES, {"id": USER})
        assert rows[0]["current_streak"] == 0
        assert rows[0]["total_tasks_completed"] == 10
        assert rows[0]["last_active_date"] == (today - timedelta(days=3)).isoformat()
