"""
SelfOS — Data Models.

Plain dataclasses shared by the core, the service layer and the adapters.
Persisted records mirror the rows of the record store; dates travel as
calendar-day strings (YYYY-MM-DD) on the store side and as `date` objects
inside the streak logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class OnboardingAnswers:
    """One questionnaire submission.

    A new submission creates a new record; old answers are never mutated.
    """

    main_problem: str                  # e.g. "Procrastination"
    daily_routine: str                 # free label, not used by plan logic
    available_time: str                # only the substring "morning" matters
    personal_goals: tuple[str, ...] = ()
    motivation_level: int = 5          # 1-10 inclusive

    def to_row(self) -> dict:
        return {
            "main_problem": self.main_problem,
            "daily_routine": self.daily_routine,
            "available_time": self.available_time,
            "personal_goals": list(self.personal_goals),
            "motivation_level": self.motivation_level,
        }

    @classmethod
    def from_row(cls, row: dict) -> OnboardingAnswers:
        return cls(
            main_problem=row.get("main_problem") or "",
            daily_routine=row.get("daily_routine") or "",
            available_time=row.get("available_time") or "",
            personal_goals=tuple(row.get("personal_goals") or ()),
            motivation_level=int(row.get("motivation_level") or 5),
        )


@dataclass(frozen=True)
class PlanTask:
    """A title/description pair from the task catalog."""

    title: str
    description: str

    def to_dict(self) -> dict:
        return {"title": self.title, "description": self.description}


@dataclass(frozen=True)
class ActionPlan:
    """Ordered tasks (1-5) plus one motivational message."""

    tasks: tuple[PlanTask, ...]
    motivational_message: str


@dataclass(frozen=True)
class StreakState:
    """Streak counters owned by the user profile."""

    current_streak: int = 0
    last_active_date: date | None = None
    total_tasks_completed: int = 0


@dataclass
class TaskRecord:
    """A persisted task belonging to one user and one calendar day."""

    id: str
    user_id: str
    title: str
    description: str
    task_date: str                     # ISO date YYYY-MM-DD
    completed: bool = False
    completed_at: str | None = None    # ISO timestamp, None while open
    created_at: str = ""
    position: int = 0                  # order within the day's checklist

    @classmethod
    def from_row(cls, row: dict) -> TaskRecord:
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=row["title"],
            description=row.get("description") or "",
            task_date=row["task_date"],
            completed=bool(row.get("completed")),
            completed_at=row.get("completed_at"),
            created_at=row.get("created_at") or "",
            position=int(row.get("position") or 0),
        )


@dataclass
class UserProfile:
    """The per-user profile row holding the streak counters."""

    id: str
    username: str
    current_streak: int = 0
    total_tasks_completed: int = 0
    last_active_date: str | None = None  # ISO date YYYY-MM-DD
    created_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> UserProfile:
        return cls(
            id=str(row["id"]),
            username=row.get("username") or "",
            current_streak=int(row.get("current_streak") or 0),
            total_tasks_completed=int(row.get("total_tasks_completed") or 0),
            last_active_date=row.get("last_active_date"),
            created_at=row.get("created_at") or "",
        )

    def streak_state(self) -> StreakState:
        last = date.fromisoformat(self.last_active_date) if self.last_active_date else None
        return StreakState(
            current_streak=self.current_streak,
            last_active_date=last,
            total_tasks_completed=self.total_tasks_completed,
        )

    def with_streak(self, state: StreakState) -> UserProfile:
        """Return a copy carrying the given streak counters."""
        return UserProfile(
            id=self.id,
            username=self.username,
            current_streak=state.current_streak,
            total_tasks_completed=state.total_tasks_completed,
            last_active_date=(
                state.last_active_date.isoformat() if state.last_active_date else None
            ),
            created_at=self.created_at,
        )


@dataclass
class StoredPlan:
    """A persisted action plan; at most one is active per user."""

    id: str
    user_id: str
    tasks: list[PlanTask] = field(default_factory=list)
    motivational_message: str = ""
    is_active: bool = True
    created_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> StoredPlan:
        plan_data = row.get("plan_data") or {}
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            tasks=[
                PlanTask(title=t["title"], description=t.get("description", ""))
                for t in plan_data.get("tasks", [])
            ],
            motivational_message=row.get("motivational_message") or "",
            is_active=bool(row.get("is_active")),
            created_at=row.get("created_at") or "",
        )


@dataclass
class OnboardingRecord:
    """A persisted questionnaire submission."""

    id: str
    user_id: str
    answers: OnboardingAnswers
    created_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> OnboardingRecord:
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            answers=OnboardingAnswers.from_row(row),
            created_at=row.get("created_at") or "",
        )
