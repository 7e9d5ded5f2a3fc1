"""
SelfOS — Daily Reminder.

A proactive daily push with each user's task list for the day, their
streak and the active plan's motivational message. Loading the dashboard
here also applies the day-boundary rollover and creates the day's task
rows, so the list is ready before the user opens the bot.

This module is messenger-agnostic: it depends on HabitService and the
NotificationPort protocol, not on Telegram.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from selfos.core.habit_service import Dashboard, HabitService
    from selfos.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


async def send_daily_reminders(
    service: HabitService, notifier: NotificationPort, today: date,
) -> int:
    """Send today's plan to every registered user.

    One user's failure is logged and does not stop the others.
    Returns the number of reminders sent.
    """
    sent = 0
    for user_id in await service.list_user_ids():
        try:
            dashboard = await service.load_dashboard(user_id, today)
            if not dashboard.tasks:
                continue
            await notifier.send_message(user_id, build_reminder(dashboard))
            sent += 1
        except Exception as exc:
            logger.error("Failed to send daily reminder to %s: %s", user_id, exc)
    logger.info("Daily reminders sent: %d", sent)
    return sent


def build_reminder(dashboard: Dashboard) -> str:
    lines = ["☀️ *Good morning! Here's today's plan:*\n"]
    for task in dashboard.tasks:
        mark = "✅" if task.completed else "•"
        lines.append(f"{mark} *{task.title}* — {task.description}")
    if dashboard.motivational_message:
        lines.append(f"\n_{dashboard.motivational_message}_")
    lines.append(f"\n🔥 {dashboard.streak_message}")
    lines.append("Open /today to check tasks off.")
    return "\n".join(lines)
