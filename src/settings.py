"""Static configuration for eventwatch.

All user-editable settings (calendars, timezone, dedup, notifications,
logging) live in a single JSON file for quick edits without touching Python.
"""

import json
import os
from zoneinfo import ZoneInfo

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# config.json sits in the project root unless EVENTWATCH_CONFIG points elsewhere.
CONFIG_PATH = os.getenv("EVENTWATCH_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database (watches, dedup cache, timers).
_storage = _CONFIG.get("storage", {})
DB_PATH = _resolve_path(_storage.get("db_path", "eventwatch.db"))

# Windows are computed as local calendar days in this zone.
TIMEZONE_NAME = _CONFIG.get("timezone", "UTC")
TIMEZONE = ZoneInfo(TIMEZONE_NAME)

# Calendars keyed by id; each entry has a "path" or "url" and an optional name.
CALENDARS = _CONFIG.get("calendars", {})
DEFAULT_CALENDAR_ID = _CONFIG.get("default_calendar")

# Deduplication controls for repeated scans of the same event instance.
# - DEDUP_SCOPE: "global" (per event instance) or "per_watch"
# - DEDUP_SUCCESS_TTL_HOURS / DEDUP_ERROR_TTL_HOURS: marker lifetimes
# - MISSING_CALLBACK_POLICY: "retry" (no marker) or "suppress" (error marker)
_dedup = _CONFIG.get("dedup", {})
DEDUP_SCOPE = _dedup.get("scope", "global")
DEDUP_SUCCESS_TTL_HOURS = float(_dedup.get("success_ttl_hours", 6))
DEDUP_ERROR_TTL_HOURS = float(_dedup.get("error_ttl_hours", 1))
MISSING_CALLBACK_POLICY = _dedup.get("missing_callback", "retry")

# Timer cadence for the first watch and how often the loop looks for due timers.
_scheduler = _CONFIG.get("scheduler", {})
DEFAULT_CHECK_FREQUENCY_HOURS = int(_scheduler.get("default_check_frequency_hours", 6))
POLL_SECONDS = int(_scheduler.get("poll_seconds", 60))

# Notification callbacks registered next to the built-in "log" callback.
# - "saved_messages" registers "telegram" (Telethon user session)
# - "bot" registers "telegram_bot" (requires BOT_API and bot_chat_id)
_notifications = _CONFIG.get("notifications", {})
NOTIFICATION_METHODS = list(_notifications.get("methods", []))
BOT_CHAT_ID = _notifications.get("bot_chat_id")

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
