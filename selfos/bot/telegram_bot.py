"""
SelfOS — Telegram Bot.

Telegram is the user interface: the onboarding questionnaire, today's
checklist, the profile and plan regeneration all flow through this bot.
Handlers only collect input and render output; every decision lives in
HabitService and the pure core underneath it.

When ALLOWED_USER_IDS is set, unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, ReplyKeyboardMarkup, ReplyKeyboardRemove, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)
from telegram.helpers import escape_markdown

from selfos.config import settings
from selfos.core.habit_service import HabitService, HabitServiceError
from selfos.data.models import OnboardingAnswers
from selfos.ports.record_store import StoreError

if TYPE_CHECKING:
    from selfos.core.habit_service import Dashboard
    from selfos.ports.notification_port import NotificationPort
    from selfos.ports.record_store import RecordStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def _is_authorized(user) -> bool:
    if user is None:
        return False
    return not settings.ALLOWED_USER_IDS or user.id in settings.ALLOWED_USER_IDS


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, Any]],
) -> Callable[..., Coroutine[Any, Any, Any]]:
    """Decorator that silently ignores messages from unauthorized users."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        if not _is_authorized(user):
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return ConversationHandler.END
        return await func(update, context)

    return wrapper


def _today() -> date:
    """Calendar day in the configured timezone."""
    return datetime.now(ZoneInfo(settings.TIMEZONE)).date()


def _service(context: ContextTypes.DEFAULT_TYPE) -> HabitService:
    return context.bot_data["service"]


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _render_dashboard(dashboard: Dashboard) -> tuple[str, InlineKeyboardMarkup | None]:
    """Build the /today message text and its checklist keyboard."""
    profile = dashboard.profile
    streak = profile.current_streak if profile else 0
    lifetime = profile.total_tasks_completed if profile else 0

    lines = [
        f"🔥 *Current streak:* {streak} days",
        f"_{dashboard.streak_message}_",
        f"✅ *Lifetime completions:* {lifetime}",
        "",
    ]

    if not dashboard.tasks:
        lines.append(
            "No tasks for today. Complete /onboarding to get your personalized plan."
        )
        return "\n".join(lines), None

    lines.append(
        f"*Today's action plan* — {dashboard.completed_count} of "
        f"{dashboard.total_count} done ({round(dashboard.progress)}%)"
    )
    if dashboard.motivational_message:
        lines.append(f"💬 {dashboard.motivational_message}")
    lines.append("")
    for task in dashboard.tasks:
        lines.append(f"• *{task.title}*: {task.description}")
    lines.append("")
    if dashboard.all_complete:
        lines.append("Amazing! All tasks completed!")
    else:
        lines.append(f"Keep going! {round(100 - dashboard.progress)}% to go.")

    keyboard = [
        [InlineKeyboardButton(
            f"{'✅' if task.completed else '⬜'} {task.title}",
            callback_data=f"task:{task.id}",
        )]
        for task in dashboard.tasks
    ]
    return "\n".join(lines), InlineKeyboardMarkup(keyboard)


def _format_answers(answers: OnboardingAnswers) -> str:
    goals = ", ".join(answers.personal_goals) or "none"
    return (
        f"• Main challenge: {answers.main_problem}\n"
        f"• Routine: {answers.daily_routine}\n"
        f"• Best time: {answers.available_time}\n"
        f"• Goals: {goals}\n"
        f"• Motivation: {answers.motivation_level}/10"
    )


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — register the user and explain the bot."""
    user = update.effective_user
    service = _service(context)
    try:
        await service.register_user(str(user.id), user.username or user.first_name or "")
        view = await service.get_profile(str(user.id))
    except StoreError as exc:
        logger.error("/start error: %s", exc)
        await update.message.reply_text("Couldn't set up your profile. Please try again.")
        return

    text = (
        "Welcome to *SelfOS*!\n\n"
        "I turn a short questionnaire into a daily action plan and track "
        "your streak of fully completed days.\n\n"
    )
    if view.answers is None:
        text += "Start with /onboarding to get your first plan."
    else:
        text += "Use /today to see today's tasks. Type /help for all commands."
    await update.message.reply_text(text, parse_mode="Markdown")


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/today — Today's tasks and your streak\n"
        "/onboarding — Answer the questionnaire and get a new plan\n"
        "/preferences — Update your answers without changing today's plan\n"
        "/regenerate — Rebuild today's plan from your latest answers\n"
        "/profile — Your stats and answers\n"
        "/cancel — Stop the questionnaire\n"
        "/help — Show this message",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_today(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /today — show the dashboard with a checklist keyboard."""
    user_id = str(update.effective_user.id)
    try:
        dashboard = await _service(context).load_dashboard(user_id, _today())
    except StoreError as exc:
        logger.error("/today error: %s", exc)
        await update.message.reply_text("Couldn't load your dashboard. Please try again later.")
        return

    if dashboard.profile is None:
        await update.message.reply_text("Please send /start first.")
        return

    text, markup = _render_dashboard(dashboard)
    await update.message.reply_text(text, parse_mode="Markdown", reply_markup=markup)


@authorized_only
async def cmd_regenerate(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /regenerate — replace today's plan using the latest answers."""
    user_id = str(update.effective_user.id)
    service = _service(context)
    today = _today()
    try:
        await service.regenerate_plan(user_id, today)
        dashboard = await service.load_dashboard(user_id, today)
    except HabitServiceError as exc:
        logger.error("/regenerate error: %s", exc)
        await update.message.reply_text(f"Failed to regenerate plan: {exc}")
        return
    except StoreError as exc:
        logger.error("/regenerate error: %s", exc)
        await update.message.reply_text("Failed to regenerate plan. Please try again later.")
        return

    text, markup = _render_dashboard(dashboard)
    await update.message.reply_text(
        "🔄 Action plan regenerated successfully!\n\n" + text,
        parse_mode="Markdown",
        reply_markup=markup,
    )


@authorized_only
async def cmd_profile(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /profile — stats plus the latest questionnaire answers."""
    user_id = str(update.effective_user.id)
    try:
        view = await _service(context).get_profile(user_id)
    except StoreError as exc:
        logger.error("/profile error: %s", exc)
        await update.message.reply_text("Couldn't load your profile. Please try again later.")
        return

    if view.profile is None:
        await update.message.reply_text("Please send /start first.")
        return

    profile = view.profile
    name = escape_markdown(profile.username or "friend")
    lines = [
        f"*{name}*",
        f"Member since {profile.created_at[:10]}",
        "",
        f"🔥 Current streak: {profile.current_streak} days",
        f"✅ Days completed: {profile.total_tasks_completed}",
        "",
    ]
    if view.answers is None:
        lines.append("No preferences yet. Use /onboarding to set them.")
    else:
        lines.append("*Your preferences:*")
        lines.append(escape_markdown(_format_answers(view.answers)))
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


async def _handle_task_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE,
) -> None:
    """Handle a checklist tap: toggle the task and redraw the dashboard."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if not _is_authorized(user):
        return

    user_id = str(user.id)
    task_id = query.data.split(":", 1)[1]
    service = _service(context)
    today = _today()

    try:
        result = await service.toggle_task(user_id, task_id, today)
        dashboard = await service.load_dashboard(user_id, today)
    except HabitServiceError as exc:
        logger.warning("Task toggle rejected for %s: %s", user_id, exc)
        await query.edit_message_text("That task is no longer on today's list. Send /today again.")
        return
    except StoreError as exc:
        logger.error("Task toggle error for %s: %s", user_id, exc)
        await query.message.reply_text("Couldn't update that task. Please try again.")
        return

    text, markup = _render_dashboard(dashboard)
    await query.edit_message_text(text, parse_mode="Markdown", reply_markup=markup)

    if result.streak_recorded and result.profile is not None:
        await query.message.reply_text(
            f"🎉 Day complete! {dashboard.streak_message}",
        )


# ---------------------------------------------------------------------------
# Questionnaire (/onboarding and /preferences)
# ---------------------------------------------------------------------------

# ConversationHandler states
(
    Q_PROBLEM,
    Q_ROUTINE,
    Q_TIME,
    Q_GOALS,
    Q_MOTIVATION,
) = range(5)

PROBLEMS = ["Laziness", "Procrastination", "Discipline", "Focus"]
ROUTINES = ["Morning person", "Night owl", "Flexible schedule", "Fixed work hours"]
TIME_SLOTS = ["In the morning", "In the afternoon", "In the evening", "At night"]
GOALS = ["Study", "Work", "Health", "Habits"]
DONE_LABEL = "Done"

_QUESTIONNAIRE_KEYS = ["q_mode", "q_problem", "q_routine", "q_time", "q_goals"]


def _clear_questionnaire(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Remove all questionnaire keys from user_data."""
    for k in _QUESTIONNAIRE_KEYS:
        context.user_data.pop(k, None)


def _match_goal(text: str) -> str | None:
    """Return the canonical goal label for a typed goal, or None."""
    lowered = text.strip().lower()
    for goal in GOALS:
        if goal.lower() == lowered:
            return goal
    return None


def _goals_keyboard(selected: list[str]) -> ReplyKeyboardMarkup:
    labels = [f"{g} ✓" if g in selected else g for g in GOALS]
    return ReplyKeyboardMarkup(
        [labels[:2], labels[2:], [DONE_LABEL]], resize_keyboard=True,
    )


async def _ask_problem(update: Update) -> int:
    keyboard = ReplyKeyboardMarkup(
        [PROBLEMS[:2], PROBLEMS[2:]], one_time_keyboard=True, resize_keyboard=True,
    )
    await update.message.reply_text(
        "What's your biggest challenge right now?", reply_markup=keyboard,
    )
    return Q_PROBLEM


@authorized_only
async def cmd_onboarding(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle /onboarding — questionnaire that ends in a new plan."""
    _clear_questionnaire(context)
    context.user_data["q_mode"] = "onboarding"
    return await _ask_problem(update)


@authorized_only
async def cmd_preferences(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle /preferences — questionnaire that only saves the answers."""
    _clear_questionnaire(context)
    context.user_data["q_mode"] = "preferences"
    return await _ask_problem(update)


async def q_problem(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive main problem, ask for routine."""
    context.user_data["q_problem"] = update.message.text.strip()
    keyboard = ReplyKeyboardMarkup(
        [ROUTINES[:2], ROUTINES[2:]], one_time_keyboard=True, resize_keyboard=True,
    )
    await update.message.reply_text("Which best describes your routine?", reply_markup=keyboard)
    return Q_ROUTINE


async def q_routine(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive routine, ask for available time."""
    context.user_data["q_routine"] = update.message.text.strip()
    keyboard = ReplyKeyboardMarkup(
        [TIME_SLOTS[:2], TIME_SLOTS[2:]], one_time_keyboard=True, resize_keyboard=True,
    )
    await update.message.reply_text(
        "When do you usually have time for yourself?", reply_markup=keyboard,
    )
    return Q_TIME


async def q_time(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive available time, start goal selection."""
    context.user_data["q_time"] = update.message.text.strip()
    context.user_data["q_goals"] = []
    await update.message.reply_text(
        f"Pick your goals — tap each one you want, then tap {DONE_LABEL}.",
        reply_markup=_goals_keyboard([]),
    )
    return Q_GOALS


async def q_goals(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Toggle a goal in the selection, or move on when the user taps Done."""
    text = update.message.text.strip().rstrip("✓").strip()
    selected: list[str] = context.user_data.setdefault("q_goals", [])

    if text.lower() == DONE_LABEL.lower():
        keyboard = ReplyKeyboardMarkup(
            [["1", "2", "3", "4", "5"], ["6", "7", "8", "9", "10"]],
            one_time_keyboard=True,
            resize_keyboard=True,
        )
        await update.message.reply_text(
            "How motivated are you right now, from 1 to 10?", reply_markup=keyboard,
        )
        return Q_MOTIVATION

    goal = _match_goal(text)
    if goal is None:
        await update.message.reply_text(
            f"Please pick one of: {', '.join(GOALS)} — or tap {DONE_LABEL}.",
            reply_markup=_goals_keyboard(selected),
        )
        return Q_GOALS

    if goal in selected:
        selected.remove(goal)
    else:
        selected.append(goal)
    chosen = ", ".join(selected) or "none yet"
    await update.message.reply_text(
        f"Selected: {chosen}", reply_markup=_goals_keyboard(selected),
    )
    return Q_GOALS


async def q_motivation(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive motivation level and submit the questionnaire."""
    text = update.message.text.strip()
    try:
        level = int(text)
        if not 1 <= level <= 10:
            raise ValueError
    except ValueError:
        await update.message.reply_text("Please enter a number from 1 to 10.")
        return Q_MOTIVATION

    answers = OnboardingAnswers(
        main_problem=context.user_data.get("q_problem", ""),
        daily_routine=context.user_data.get("q_routine", ""),
        available_time=context.user_data.get("q_time", ""),
        personal_goals=tuple(context.user_data.get("q_goals", [])),
        motivation_level=level,
    )
    mode = context.user_data.get("q_mode", "onboarding")
    user = update.effective_user
    user_id = str(user.id)
    service = _service(context)

    try:
        await service.register_user(user_id, user.username or user.first_name or "")
        if mode == "preferences":
            await service.save_preferences(user_id, answers)
            reply = "Preferences updated successfully! Use /regenerate to apply them to today's plan."
        else:
            plan = await service.submit_onboarding(user_id, answers, _today())
            lines = ["🎯 *Your action plan is ready!*\n"]
            lines.extend(f"• *{t.title}*: {t.description}" for t in plan.tasks)
            lines.append(f"\n💬 {plan.motivational_message}")
            lines.append("\nOpen /today to start checking tasks off.")
            reply = "\n".join(lines)
    except (HabitServiceError, StoreError) as exc:
        logger.error("Questionnaire (%s) failed for %s: %s", mode, user_id, exc)
        failure = (
            "Failed to save settings" if mode == "preferences"
            else "Failed to save onboarding data"
        )
        await update.message.reply_text(
            f"{failure}. Nothing was saved — please run /{mode} again.",
            reply_markup=ReplyKeyboardRemove(),
        )
        _clear_questionnaire(context)
        return ConversationHandler.END

    await update.message.reply_text(
        reply, parse_mode="Markdown", reply_markup=ReplyKeyboardRemove(),
    )
    _clear_questionnaire(context)
    return ConversationHandler.END


async def q_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Cancel the questionnaire."""
    _clear_questionnaire(context)
    await update.message.reply_text(
        "Questionnaire cancelled.", reply_markup=ReplyKeyboardRemove(),
    )
    return ConversationHandler.END


async def _error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log any exception a handler let through and apologise to the user."""
    logger.error(
        "Unhandled error while processing update: %s", context.error, exc_info=context.error,
    )
    if isinstance(update, Update) and update.effective_message is not None:
        await update.effective_message.reply_text(
            "Something went wrong on our side. Please try again in a moment.",
        )


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    store: RecordStore | None = None,
    notifier: NotificationPort | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        store: Record store implementation. Defaults to the STORE_PROVIDER adapter.
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if store is None:
        from selfos.adapters.store_factory import create_record_store
        store = create_record_store()

    if notifier is None:
        from selfos.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    service = HabitService(store)
    app.bot_data["service"] = service
    app.bot_data["notifier"] = notifier

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("today", cmd_today))
    app.add_handler(CommandHandler("regenerate", cmd_regenerate))
    app.add_handler(CommandHandler("profile", cmd_profile))
    app.add_handler(CallbackQueryHandler(_handle_task_callback, pattern=r"^task:"))

    # /onboarding and /preferences share one conversation
    _text = filters.TEXT & ~filters.COMMAND
    questionnaire = ConversationHandler(
        entry_points=[
            CommandHandler("onboarding", cmd_onboarding),
            CommandHandler("preferences", cmd_preferences),
        ],
        states={
            Q_PROBLEM: [MessageHandler(_text, q_problem)],
            Q_ROUTINE: [MessageHandler(_text, q_routine)],
            Q_TIME: [MessageHandler(_text, q_time)],
            Q_GOALS: [MessageHandler(_text, q_goals)],
            Q_MOTIVATION: [MessageHandler(_text, q_motivation)],
        },
        fallbacks=[CommandHandler("cancel", q_cancel)],
    )
    app.add_handler(questionnaire)
    app.add_error_handler(_error_handler)

    _setup_daily_reminder(app, service, notifier)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_daily_reminder(
    app: Application,
    service: HabitService,
    notifier: NotificationPort,
) -> None:
    """Register the daily plan reminder at DAILY_REMINDER_HOUR in TIMEZONE."""
    from selfos.core.reminder import send_daily_reminders

    tz = ZoneInfo(settings.TIMEZONE)
    reminder_time = dt_time(hour=settings.DAILY_REMINDER_HOUR, minute=0, tzinfo=tz)

    async def _reminder_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await send_daily_reminders(service, notifier, _today())

    app.job_queue.run_daily(
        _reminder_job_callback,
        time=reminder_time,
        name="daily_reminder",
    )

    logger.info(
        "Daily reminder scheduled at %02d:00 %s",
        settings.DAILY_REMINDER_HOUR,
        settings.TIMEZONE,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting SelfOS bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
