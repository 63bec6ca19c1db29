"""Window computation and event matching logic (core domain).

The calendar source only pre-filters events: its text search may be
case-sensitive or broader than a substring, and multi-day events can overlap
the window without starting in it. The checks here are the authority.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, List, Tuple

from core.models import CalendarEvent, WatchConfig


def localize(moment: datetime, tz: tzinfo) -> datetime:
    """Return `moment` in `tz`; naive values are taken as wall time in `tz`."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def compute_window(now: datetime, days_before: int, tz: tzinfo) -> Tuple[datetime, datetime]:
    """Return the [start, end) calendar day `days_before` days after `now`.

    Both bounds are local midnights, so on daylight-saving transition days the
    window spans 23 or 25 hours of absolute time while still being one day.
    """

    target_day = localize(now, tz).date() + timedelta(days=days_before)
    window_start = start_of_day(target_day, tz)
    window_end = start_of_day(target_day + timedelta(days=1), tz)
    return window_start, window_end


def event_day(event: CalendarEvent, tz: tzinfo) -> date:
    """Return the local calendar date on which the event starts."""

    return localize(event.start, tz).date()


def title_contains(title: str, substring: str) -> bool:
    return substring.lower() in (title or "").lower()


def is_match(event: CalendarEvent, watch: WatchConfig, window_start: datetime) -> bool:
    """Return True when the event starts on the window's day and its title matches.

    The date check is exact: the event start, converted to the window's zone and
    truncated to midnight, must equal `window_start`. The title check is a
    case-insensitive containment test.
    """

    tz = window_start.tzinfo
    if tz is None:
        raise ValueError("window_start must be timezone-aware")
    if event_day(event, tz) != window_start.date():
        return False
    return title_contains(event.title, watch.event_name_substring)


def filter_matches(
    events: Iterable[CalendarEvent],
    watch: WatchConfig,
    window_start: datetime,
) -> List[CalendarEvent]:
    """Return the events that pass the exact recheck, preserving order."""

    return [event for event in events if is_match(event, watch, window_start)]
