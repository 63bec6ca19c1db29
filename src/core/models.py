"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any calendar or storage-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from core.errors import IncompleteConfiguration

# Stored records use the same field names as the JSON blobs in the property
# store, so they stay readable when inspected by hand.
_RECORD_FIELDS = {
    "unique_id": "uniqueId",
    "event_name_substring": "eventNameSubstring",
    "days_before": "daysBefore",
    "function_to_run": "functionToRun",
    "calendar_id": "calendarId",
    "check_frequency_hours": "checkFrequencyHours",
    "associated_trigger_id": "associatedTriggerId",
}


@dataclass(frozen=True)
class CalendarEvent:
    """A single event instance returned by a calendar source."""

    event_id: str
    title: str
    start: datetime
    all_day: bool = False
    end: Optional[datetime] = None
    calendar_id: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class CalendarHandle:
    """Resolved calendar reference."""

    calendar_id: str
    name: str


@dataclass(frozen=True)
class WatchConfig:
    """A persisted watch rule (substring + lead time + callback + cadence)."""

    unique_id: str
    event_name_substring: str
    days_before: int
    function_to_run: str
    calendar_id: str
    check_frequency_hours: int
    associated_trigger_id: str
    created_at: Optional[datetime] = None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            key: getattr(self, attr) for attr, key in _RECORD_FIELDS.items()
        }
        if self.created_at is not None:
            record["createdAt"] = self.created_at.isoformat()
        return record

    @classmethod
    def from_record(cls, record: Any) -> "WatchConfig":
        """Build a watch from a stored record.

        Raises IncompleteConfiguration when the record is not a mapping or a
        required field is missing or empty.
        """

        if not isinstance(record, dict):
            raise IncompleteConfiguration(f"Record is not an object: {record!r}")

        missing = [key for key in _RECORD_FIELDS.values() if record.get(key) in (None, "")]
        if missing:
            raise IncompleteConfiguration(f"Missing fields: {', '.join(missing)}")

        try:
            days_before = int(record["daysBefore"])
            check_frequency_hours = int(record["checkFrequencyHours"])
        except (TypeError, ValueError) as exc:
            raise IncompleteConfiguration(f"Non-numeric field: {exc}") from exc

        created_at = None
        if record.get("createdAt"):
            try:
                created_at = datetime.fromisoformat(record["createdAt"])
            except (TypeError, ValueError):
                created_at = None

        return cls(
            unique_id=str(record["uniqueId"]),
            event_name_substring=str(record["eventNameSubstring"]),
            days_before=days_before,
            function_to_run=str(record["functionToRun"]),
            calendar_id=str(record["calendarId"]),
            check_frequency_hours=check_frequency_hours,
            associated_trigger_id=str(record["associatedTriggerId"]),
            created_at=created_at,
        )


@dataclass(frozen=True)
class TimerInfo:
    """Periodic timer registered with the scheduler."""

    timer_id: str
    handler_name: str
    every_hours: int = 6
    last_run_at: Optional[datetime] = None


class OutcomeStatus(str, Enum):
    """Per-event result of a check or simulation run."""

    DISPATCHED = "dispatched"
    WOULD_DISPATCH = "would_dispatch"
    DUPLICATE = "duplicate"
    ERRORED = "errored"
    MISSING_CALLBACK = "missing_callback"


@dataclass(frozen=True)
class EventOutcome:
    """What happened to one matched event for one watch."""

    unique_id: str
    event: CalendarEvent
    status: OutcomeStatus
    dedupe_key: str
    detail: str = ""


@dataclass(frozen=True)
class SkippedWatch:
    """A watch that could not be evaluated, with the reason."""

    unique_id: str
    reason: str


@dataclass
class CheckReport:
    """Aggregated outcomes of a run_check or simulate call."""

    started_at: datetime
    dry_run: bool = False
    watches_checked: int = 0
    outcomes: list[EventOutcome] = field(default_factory=list)
    skipped: list[SkippedWatch] = field(default_factory=list)

    def with_status(self, status: OutcomeStatus) -> list[EventOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is status]

    @property
    def matched(self) -> int:
        """Matches that were (or would be) acted on, excluding duplicates."""

        return sum(1 for outcome in self.outcomes if outcome.status is not OutcomeStatus.DUPLICATE)

    @property
    def dispatched(self) -> int:
        return len(self.with_status(OutcomeStatus.DISPATCHED))

    @property
    def errored(self) -> int:
        return len(self.with_status(OutcomeStatus.ERRORED))
