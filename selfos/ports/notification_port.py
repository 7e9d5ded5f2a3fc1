"""Notification port — abstract interface for pushing messages to users.

The daily reminder depends on this protocol, never on a specific messenger.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def send_message(self, user_id: str, text: str) -> None: ...
