"""Telegram notification callback for Saved Messages.

Formats a Markdown reminder and sends it to the user's Saved Messages through
a Telethon user session.
"""

from __future__ import annotations

from telethon import TelegramClient

from adapters.notification_formatting import format_notification
from core.models import CalendarEvent, WatchConfig


class TelegramSavedMessagesNotifier:
    """Callback adapter that sends reminders to the user's Saved Messages."""

    def __init__(self, client: TelegramClient, calendar_labels: dict[str, str]) -> None:
        self._client = client
        self._calendar_labels = calendar_labels

    async def _ensure_connected(self) -> None:
        if not self._client.is_connected():
            await self._client.connect()
        # Login is interactive and belongs to `eventwatch login`, never to a check run.
        if not await self._client.is_user_authorized():
            raise RuntimeError("Telegram session is not authorized; run `eventwatch login`")

    async def invoke(self, event: CalendarEvent, watch: WatchConfig) -> None:
        """Send the formatted reminder to Saved Messages."""

        await self._ensure_connected()
        message = format_notification(event, watch, self._calendar_labels, mode="markdown")
        await self._client.send_message("me", message, parse_mode="Markdown")
