"""iCalendar source adapter.

Reads calendars from local .ics files or HTTP(S) URLs and expands recurring
events so each occurrence is reported as its own instance.
"""

from __future__ import annotations

import logging
import os
import urllib.request
from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo
from typing import List, Optional

import recurring_ical_events
from icalendar import Calendar

from core.errors import ResourceUnavailable
from core.matching import title_contains
from core.models import CalendarEvent, CalendarHandle

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarSpec:
    """Where one configured calendar lives."""

    calendar_id: str
    name: str
    path: Optional[str] = None
    url: Optional[str] = None


def build_calendar_specs(raw: dict, base_dir: str) -> dict[str, CalendarSpec]:
    """Normalize the `calendars` config block; relative paths resolve against base_dir."""

    specs: dict[str, CalendarSpec] = {}
    for calendar_id, entry in raw.items():
        if not entry.get("enabled", True):
            continue
        path = entry.get("path")
        if path and not os.path.isabs(path):
            path = os.path.join(base_dir, path)
        url = entry.get("url")
        if not path and not url:
            LOGGER.warning("Calendar %s has neither path nor url, ignoring", calendar_id)
            continue
        specs[calendar_id] = CalendarSpec(
            calendar_id=calendar_id,
            name=entry.get("name") or calendar_id,
            path=path,
            url=url,
        )
    return specs


def _to_datetime(value: date, tz: tzinfo) -> tuple[datetime, bool]:
    """Return (aware start, all_day). Floating times are taken in `tz`."""

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz), False
        return value, False
    return datetime.combine(value, time.min, tzinfo=tz), True


class IcsCalendarSource:
    """CalendarSourcePort implementation over iCalendar feeds."""

    def __init__(self, calendars: dict[str, CalendarSpec], tz: tzinfo, timeout: int = 30) -> None:
        self._calendars = calendars
        self._tz = tz
        self._timeout = timeout

    def get_calendar(self, calendar_id: str) -> Optional[CalendarHandle]:
        spec = self._calendars.get(calendar_id)
        if spec is None:
            return None
        if spec.path and not os.path.exists(spec.path):
            LOGGER.warning("Calendar file for %s is missing: %s", calendar_id, spec.path)
            return None
        return CalendarHandle(calendar_id=spec.calendar_id, name=spec.name)

    def _read(self, spec: CalendarSpec) -> bytes:
        try:
            if spec.path:
                with open(spec.path, "rb") as handle:
                    return handle.read()
            with urllib.request.urlopen(spec.url, timeout=self._timeout) as response:
                return response.read()
        except OSError as exc:
            raise ResourceUnavailable(f"Could not read calendar {spec.calendar_id}: {exc}") from exc

    def find_events(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        text_filter: str,
    ) -> List[CalendarEvent]:
        """Return event occurrences overlapping [start, end) whose title contains text_filter."""

        spec = self._calendars.get(calendar_id)
        if spec is None:
            raise ResourceUnavailable(f"Unknown calendar {calendar_id}")

        try:
            calendar = Calendar.from_ical(self._read(spec))
        except ValueError as exc:
            raise ResourceUnavailable(f"Calendar {calendar_id} is not valid iCalendar: {exc}") from exc

        events: List[CalendarEvent] = []
        for component in recurring_ical_events.of(calendar).between(start, end):
            title = str(component.get("SUMMARY", ""))
            if text_filter and not title_contains(title, text_filter):
                continue
            dtstart = component.get("DTSTART")
            if dtstart is None:
                continue
            event_start, all_day = _to_datetime(dtstart.dt, self._tz)
            event_end = None
            dtend = component.get("DTEND")
            if dtend is not None:
                event_end, _ = _to_datetime(dtend.dt, self._tz)
            uid = component.get("UID")
            events.append(
                CalendarEvent(
                    event_id=str(uid) if uid else f"{title}@{event_start.isoformat()}",
                    title=title,
                    start=event_start,
                    all_day=all_day,
                    end=event_end,
                    calendar_id=calendar_id,
                    location=str(component.get("LOCATION")) if component.get("LOCATION") else None,
                    description=str(component.get("DESCRIPTION")) if component.get("DESCRIPTION") else None,
                )
            )
        return events
