"""Ports (interfaces) used by the core engine.

Ports define the minimal contracts for storage, scheduling, calendar, and
callback adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from core.models import CalendarEvent, CalendarHandle, TimerInfo, WatchConfig


class PropertyStorePort(Protocol):
    """Opaque durable key/value namespace backing the config store."""

    def get_property(self, key: str) -> Optional[str]:
        ...

    def set_property(self, key: str, value: str) -> None:
        ...

    def delete_property(self, key: str) -> None:
        ...

    def list_properties(self, prefix: str) -> dict[str, str]:
        ...


class CachePort(Protocol):
    """Expiring key/value cache used for duplicate suppression."""

    def get(self, key: str) -> Optional[str]:
        ...

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        ...


class SchedulerPort(Protocol):
    """Periodic timer operations required by the trigger ref counter."""

    def ensure_timer(self, handler_name: str, every_hours: int) -> str:
        ...

    def list_timers(self) -> Sequence[TimerInfo]:
        ...

    def delete_timer(self, timer_id: str) -> None:
        ...


class CalendarSourcePort(Protocol):
    """Read-only calendar access."""

    def get_calendar(self, calendar_id: str) -> Optional[CalendarHandle]:
        ...

    def find_events(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        text_filter: str,
    ) -> Sequence[CalendarEvent]:
        ...


class CallbackPort(Protocol):
    """A user callback invoked once per matched event instance."""

    async def invoke(self, event: CalendarEvent, watch: WatchConfig) -> None:
        ...
