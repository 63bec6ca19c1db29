"""Core check-and-dispatch engine.

This module is integration-agnostic. It only relies on ports for calendars,
the cache, and callbacks, enabling other adapters without changes here.

A check run enforces a strict order per watch:
1) Parse the stored record, skipping incomplete ones
2) Resolve the calendar
3) Query candidate events for the target day
4) Exact date + substring recheck
5) Dedup lookup
6) Invoke the callback
7) Mark the dedup cache
Simulation runs steps 1-5 only.
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Any, Iterator, Optional, Tuple

from core.callbacks import CallbackRegistry
from core.config_store import ConfigStore
from core.dedup import STATUS_ERROR, STATUS_PROCESSED, DedupeCache
from core.errors import CallbackFailure, IncompleteConfiguration, MissingCallback
from core.matching import compute_window, is_match, localize
from core.models import (
    CalendarEvent,
    CheckReport,
    EventOutcome,
    OutcomeStatus,
    SkippedWatch,
    WatchConfig,
)
from core.ports import CalendarSourcePort

LOGGER = logging.getLogger(__name__)


class DispatchEngine:
    """Orchestrates matching, dedup, and callback dispatch for all watches."""

    def __init__(
        self,
        store: ConfigStore,
        calendars: CalendarSourcePort,
        cache: DedupeCache,
        callbacks: CallbackRegistry,
        tz: tzinfo,
    ) -> None:
        self._store = store
        self._calendars = calendars
        self._cache = cache
        self._callbacks = callbacks
        self._tz = tz

    def _now(self, now: Optional[datetime]) -> datetime:
        if now is None:
            return datetime.now(self._tz)
        return localize(now, self._tz)

    async def run_check(self, now: Optional[datetime] = None) -> CheckReport:
        """Dispatch callbacks for every watch whose target day has a match."""

        now = self._now(now)
        report = CheckReport(started_at=now)

        for unique_id, record in self._load_records(report):
            for watch, event, key in self._candidates(unique_id, record, now, report):
                if self._cache.seen(key):
                    LOGGER.info("Dedup skip for %s (%s)", event.title, watch.unique_id)
                    report.outcomes.append(
                        EventOutcome(watch.unique_id, event, OutcomeStatus.DUPLICATE, key)
                    )
                    continue
                report.outcomes.append(await self._dispatch(watch, event, key))

        LOGGER.info(
            "Check complete: watches=%s, dispatched=%s, errors=%s, skipped=%s",
            report.watches_checked,
            report.dispatched,
            report.errored,
            len(report.skipped),
        )
        return report

    def simulate(self, now: Optional[datetime] = None, unique_id: Optional[str] = None) -> CheckReport:
        """Report what run_check would do without invoking callbacks or writing the cache."""

        now = self._now(now)
        report = CheckReport(started_at=now, dry_run=True)

        records = self._load_records(report)
        if unique_id is not None:
            records = [(uid, record) for uid, record in records if uid == unique_id]
            if not records:
                report.skipped.append(SkippedWatch(unique_id, "no such watch"))
                return report

        # Keys a real run would have marked earlier in this same pass.
        would_mark: set[str] = set()
        for uid, record in records:
            for watch, event, key in self._candidates(uid, record, now, report):
                if key in would_mark or self._cache.seen(key):
                    report.outcomes.append(EventOutcome(watch.unique_id, event, OutcomeStatus.DUPLICATE, key))
                    continue
                report.outcomes.append(EventOutcome(watch.unique_id, event, OutcomeStatus.WOULD_DISPATCH, key))
                if self._marks_on_dispatch(watch):
                    would_mark.add(key)
        return report

    def _marks_on_dispatch(self, watch: WatchConfig) -> bool:
        # An unresolvable callback leaves no marker under the "retry" policy.
        if watch.function_to_run in self._callbacks:
            return True
        return self._cache.config.missing_callback == "suppress"

    def _load_records(self, report: CheckReport) -> list:
        try:
            return self._store.list_records()
        except Exception:
            LOGGER.exception("Could not load watches from the config store")
            report.skipped.append(SkippedWatch("*", "config store unavailable"))
            return []

    def _candidates(
        self,
        unique_id: str,
        record: Any,
        now: datetime,
        report: CheckReport,
    ) -> Iterator[Tuple[WatchConfig, CalendarEvent, str]]:
        """Yield (watch, event, dedupe key) for each match; record skips on the report."""

        try:
            watch = WatchConfig.from_record(record)
        except IncompleteConfiguration as exc:
            LOGGER.warning("Skipping watch %s: %s", unique_id, exc)
            report.skipped.append(SkippedWatch(unique_id, str(exc)))
            return

        report.watches_checked += 1
        try:
            window_start, window_end = compute_window(now, watch.days_before, self._tz)
        except Exception as exc:
            LOGGER.exception("Could not compute the window for %s", watch.unique_id)
            report.skipped.append(SkippedWatch(watch.unique_id, f"invalid window: {exc}"))
            return
        events = self._load_events(watch, window_start, window_end, report)
        if events is None:
            return

        for event in events:
            try:
                if not is_match(event, watch, window_start):
                    continue
                key = self._cache.key_for(event, watch.unique_id)
            except Exception as exc:
                LOGGER.exception("Could not evaluate %s for %s", event.event_id, watch.unique_id)
                report.outcomes.append(EventOutcome(watch.unique_id, event, OutcomeStatus.ERRORED, "", str(exc)))
                continue
            yield watch, event, key

    def _load_events(
        self,
        watch: WatchConfig,
        window_start: datetime,
        window_end: datetime,
        report: CheckReport,
    ) -> Optional[list]:
        def skip(reason: str) -> None:
            report.skipped.append(SkippedWatch(watch.unique_id, reason))

        if not watch.calendar_id:
            LOGGER.warning("Skipping watch %s: no calendar id", watch.unique_id)
            skip("no calendar id")
            return None

        try:
            calendar = self._calendars.get_calendar(watch.calendar_id)
        except Exception:
            LOGGER.exception("Calendar lookup failed for %s", watch.unique_id)
            skip(f"calendar {watch.calendar_id} unavailable")
            return None
        if calendar is None:
            LOGGER.warning("Skipping watch %s: calendar %s not found", watch.unique_id, watch.calendar_id)
            skip(f"calendar {watch.calendar_id} not found")
            return None

        try:
            events = list(
                self._calendars.find_events(
                    watch.calendar_id,
                    window_start,
                    window_end,
                    watch.event_name_substring,
                )
            )
        except Exception:
            LOGGER.exception("Event query failed for %s", watch.unique_id)
            skip(f"event query on {watch.calendar_id} failed")
            return None

        LOGGER.debug(
            "Watch %s: %s candidate(s) on %s",
            watch.unique_id,
            len(events),
            window_start.date().isoformat(),
        )
        return events

    async def _dispatch(self, watch: WatchConfig, event: CalendarEvent, key: str) -> EventOutcome:
        try:
            await self._callbacks.invoke(watch.function_to_run, event, watch)
        except MissingCallback as exc:
            LOGGER.error("Watch %s: %s", watch.unique_id, exc)
            # Under the "retry" policy no marker is written, so the next run tries again.
            if self._cache.config.missing_callback == "suppress":
                self._cache.mark(key, STATUS_ERROR)
            return EventOutcome(watch.unique_id, event, OutcomeStatus.MISSING_CALLBACK, key, str(exc))
        except CallbackFailure as exc:
            LOGGER.error("Watch %s on %s: %s", watch.unique_id, event.title, exc, exc_info=exc.cause)
            self._cache.mark(key, STATUS_ERROR)
            return EventOutcome(watch.unique_id, event, OutcomeStatus.ERRORED, key, str(exc.cause))

        self._cache.mark(key, STATUS_PROCESSED)
        LOGGER.info("Dispatched %s for %s (%s)", watch.function_to_run, event.title, watch.unique_id)
        return EventOutcome(watch.unique_id, event, OutcomeStatus.DISPATCHED, key)
