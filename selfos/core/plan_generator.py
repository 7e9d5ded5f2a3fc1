"""
SelfOS — Action Plan Generator.

Turns onboarding answers into a short ordered task list and a motivational
message. Everything here is a static lookup; the only non-deterministic step
is picking one message out of three, and the random source is injectable so
callers and tests can fix it.
"""

from __future__ import annotations

import logging
import random

from selfos.data.models import ActionPlan, OnboardingAnswers, PlanTask

logger = logging.getLogger(__name__)

MAX_TASKS = 5
MIN_TASKS_BEFORE_CLOSING = 3


MOTIVATIONAL_MESSAGES: dict[str, tuple[str, ...]] = {
    "low": (
        "Small steps lead to big changes. You've got this!",
        "Progress, not perfection. Let's start simple today.",
        "Every journey begins with a single step. Take yours now.",
    ),
    "medium": (
        "You're building momentum! Keep the energy flowing.",
        "Consistency is key. You're doing great!",
        "Your dedication is inspiring. Let's make today count!",
    ),
    "high": (
        "Your determination is unstoppable! Let's achieve greatness today.",
        "Channel that energy into action. Amazing things await!",
        "You're on fire! Let's turn that motivation into results.",
    ),
}

PROBLEM_TASKS: dict[str, tuple[PlanTask, ...]] = {
    "laziness": (
        PlanTask("Start with 5 minutes", "Do your most important task for just 5 minutes"),
        PlanTask("Physical movement", "10 jumping jacks or a quick walk to energize"),
        PlanTask("Quick win", "Complete one small task you've been avoiding"),
    ),
    "procrastination": (
        PlanTask("Break it down", "Divide your biggest task into 3 smaller steps"),
        PlanTask("Time block", "Schedule 25 minutes of focused work (Pomodoro)"),
        PlanTask("Remove distractions", "Put phone away and close unnecessary tabs"),
    ),
    "discipline": (
        PlanTask("Morning routine", "Follow your planned morning sequence"),
        PlanTask("Track progress", "Log what you accomplished today"),
        PlanTask("Evening review", "Reflect on wins and tomorrow's priorities"),
    ),
    "focus": (
        PlanTask("Single-task focus", "Work on ONE thing at a time for 30 minutes"),
        PlanTask("Environment setup", "Create a distraction-free workspace"),
        PlanTask("Mindfulness break", "5 minutes of deep breathing or meditation"),
    ),
}

GOAL_TASKS: dict[str, tuple[PlanTask, ...]] = {
    "study": (
        PlanTask("Study session", "30 minutes of focused learning"),
        PlanTask("Review notes", "Go through today's key concepts"),
        PlanTask("Practice problems", "Complete 3 practice exercises"),
    ),
    "work": (
        PlanTask("Priority task", "Complete your most important work task"),
        PlanTask("Email management", "Respond to urgent messages"),
        PlanTask("Plan tomorrow", "List top 3 priorities for tomorrow"),
    ),
    "health": (
        PlanTask("Physical activity", "20 minutes of exercise or movement"),
        PlanTask("Healthy meal", "Prepare or eat a nutritious meal"),
        PlanTask("Hydration check", "Drink 2 glasses of water"),
    ),
    "habits": (
        PlanTask("New habit practice", "Spend 10 minutes on your new habit"),
        PlanTask("Habit tracking", "Mark off today's habit completions"),
        PlanTask("Reflect on progress", "Note how you feel about your habits"),
    ),
}

DEFAULT_PROBLEM = "procrastination"

MORNING_TASK = PlanTask(
    "Morning momentum", "Complete your most challenging task first thing",
)
REFLECT_TASK = PlanTask("Reflect and plan", "Spend 5 minutes reviewing your goals")
CELEBRATE_TASK = PlanTask("Celebrate progress", "Acknowledge what you accomplished today")


def classify_motivation(level: int) -> str:
    """Map a 1-10 motivation level to "low", "medium" or "high"."""
    if level <= 3:
        return "low"
    if level <= 7:
        return "medium"
    return "high"


def generate_plan(
    answers: OnboardingAnswers, rng: random.Random | None = None,
) -> ActionPlan:
    """Build today's action plan from a questionnaire submission.

    Args:
        answers: The user's onboarding answers.
        rng: Random source used only to pick the motivational message.
            A fresh `random.Random()` is used when omitted.

    Unknown problems fall back to the procrastination tasks and unknown
    goals are skipped; nothing here raises for well-typed input. The final
    list is capped at MAX_TASKS, which can drop the closing
    "Celebrate progress" task when many goals matched.
    """
    tasks: list[PlanTask] = []

    problem_key = answers.main_problem.lower()
    problem_tasks = PROBLEM_TASKS.get(problem_key)
    if problem_tasks is None:
        logger.debug("Unknown main problem %r, using %s", answers.main_problem, DEFAULT_PROBLEM)
        problem_tasks = PROBLEM_TASKS[DEFAULT_PROBLEM]
    tasks.append(problem_tasks[0])

    for goal in answers.personal_goals:
        goal_tasks = GOAL_TASKS.get(goal.lower())
        if goal_tasks:
            tasks.append(goal_tasks[0])

    if "morning" in answers.available_time:
        tasks.append(MORNING_TASK)

    if len(tasks) < MIN_TASKS_BEFORE_CLOSING:
        tasks.append(REFLECT_TASK)

    tasks.append(CELEBRATE_TASK)

    rng = rng or random.Random()
    tier = classify_motivation(answers.motivation_level)
    message = rng.choice(MOTIVATIONAL_MESSAGES[tier])

    return ActionPlan(tasks=tuple(tasks[:MAX_TASKS]), motivational_message=message)
