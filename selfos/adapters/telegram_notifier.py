"""Telegram notification adapter — implements NotificationPort.

User ids are stored as strings in the record store; Telegram wants the
numeric chat id back.
"""

from __future__ import annotations

import logging

from telegram import Bot

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, user_id: str, text: str) -> None:
        await self._bot.send_message(chat_id=int(user_id), text=text, parse_mode="Markdown")
        logger.debug("Pushed %d chars to user %s", len(text), user_id)
