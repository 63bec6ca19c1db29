"""Telegram Bot API notification callback.

Uses the Bot API for delivery so reminders can be routed via a bot chat.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.request

from adapters.notification_formatting import format_notification
from core.models import CalendarEvent, WatchConfig


class TelegramBotNotifier:
    """Callback adapter that sends reminders via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str, calendar_labels: dict[str, str]) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._calendar_labels = calendar_labels

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def build_payload(self, event: CalendarEvent, watch: WatchConfig) -> dict:
        return {
            "chat_id": self._chat_id,
            "text": format_notification(event, watch, self._calendar_labels, mode="html"),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

    async def invoke(self, event: CalendarEvent, watch: WatchConfig) -> None:
        """Send the formatted reminder via the Bot API."""

        data = json.dumps(self.build_payload(event, watch)).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        # Blocking HTTP is fine here: check runs are sequential and low volume.
        try:
            with urllib.request.urlopen(request, timeout=10):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"Bot API error {e.code}: {body}") from e
