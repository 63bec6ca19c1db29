"""Administrative watch operations: create, look up, and delete.

These run from an operator context one at a time. There is no locking beyond
read-modify-write on the store, so concurrent setup/delete of the same unique
id can race.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from core.callbacks import CallbackRegistry
from core.config import WatchDefaults
from core.config_store import ConfigStore
from core.errors import ConfigConflict, IncompleteConfiguration, ResourceUnavailable, ValidationError
from core.models import WatchConfig
from core.ports import CalendarSourcePort
from core.triggers import TriggerRefCounter

LOGGER = logging.getLogger(__name__)

# Ten years of lead time.
MAX_DAYS_BEFORE = 3650


def default_unique_id(event_name_substring: str, function_to_run: str) -> str:
    return f"{event_name_substring}_{function_to_run}"


def _require_text(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")
    return value


def _require_positive_int(name: str, value: Any, maximum: Optional[int] = None) -> int:
    # bool is an int subclass; True must not pass as 1.
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"{name} must be a positive integer")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{name} must be at most {maximum}")
    return value


class WatchAdmin:
    """Create and remove watches while keeping the shared timer consistent."""

    def __init__(
        self,
        store: ConfigStore,
        triggers: TriggerRefCounter,
        calendars: CalendarSourcePort,
        callbacks: CallbackRegistry,
        defaults: Optional[WatchDefaults] = None,
    ) -> None:
        self._store = store
        self._triggers = triggers
        self._calendars = calendars
        self._callbacks = callbacks
        self._defaults = defaults or WatchDefaults()

    def setup(
        self,
        event_name_substring: str,
        days_before: int,
        function_to_run: str,
        check_frequency_hours: Optional[int] = None,
        unique_id: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> WatchConfig:
        """Validate, acquire the shared timer, and persist a new watch.

        Nothing is written when validation fails or the unique id is taken. If
        the record cannot be persisted after the timer was acquired, any partial
        record is removed, the timer is released again (best effort), and
        ResourceUnavailable is raised.
        """

        if check_frequency_hours is None:
            check_frequency_hours = self._defaults.check_frequency_hours
        _require_text("event_name_substring", event_name_substring)
        _require_positive_int("days_before", days_before, MAX_DAYS_BEFORE)
        _require_text("function_to_run", function_to_run)
        _require_positive_int("check_frequency_hours", check_frequency_hours)
        if unique_id is None:
            unique_id = default_unique_id(event_name_substring, function_to_run)
        _require_text("unique_id", unique_id)

        if function_to_run not in self._callbacks:
            raise ValidationError(f"No callback registered under {function_to_run!r}")

        calendar_id = calendar_id or self._defaults.calendar_id
        if not calendar_id:
            raise ValidationError("calendar_id is required (no default calendar configured)")
        try:
            calendar = self._calendars.get_calendar(calendar_id)
        except Exception as exc:
            raise ResourceUnavailable(f"Calendar {calendar_id} lookup failed: {exc}") from exc
        if calendar is None:
            raise ValidationError(f"Calendar {calendar_id} not found")

        try:
            exists = self._store.exists(unique_id)
        except Exception as exc:
            raise ResourceUnavailable(f"Could not read watch {unique_id}: {exc}") from exc
        if exists:
            raise ConfigConflict(f"A watch with unique id {unique_id!r} already exists")

        try:
            timer_id = self._triggers.acquire(check_frequency_hours)
        except Exception as exc:
            raise ResourceUnavailable(f"Could not acquire the check timer: {exc}") from exc
        watch = WatchConfig(
            unique_id=unique_id,
            event_name_substring=event_name_substring,
            days_before=days_before,
            function_to_run=function_to_run,
            calendar_id=calendar_id,
            check_frequency_hours=check_frequency_hours,
            associated_trigger_id=timer_id,
            created_at=datetime.now(timezone.utc),
        )

        try:
            self._store.put(watch)
        except Exception as exc:
            LOGGER.exception("Failed to persist watch %s, rolling back", unique_id)
            self._rollback_record(unique_id)
            self._rollback_timer(timer_id)
            raise ResourceUnavailable(f"Could not persist watch {unique_id}: {exc}") from exc

        LOGGER.info(
            "Watch %s created: %r %s day(s) ahead on %s -> %s",
            unique_id,
            event_name_substring,
            days_before,
            calendar_id,
            function_to_run,
        )
        return watch

    def _rollback_record(self, unique_id: str) -> None:
        try:
            self._store.delete(unique_id)
        except Exception:
            LOGGER.exception("Record rollback for %s failed", unique_id)

    def _rollback_timer(self, timer_id: str) -> None:
        try:
            self._triggers.release(timer_id, self._store.list_all())
        except Exception:
            LOGGER.exception("Timer rollback for %s failed", timer_id)

    def list_all(self) -> List[WatchConfig]:
        return self._store.list_all()

    def get_by_unique_id(self, unique_id: str) -> Optional[WatchConfig]:
        return self._store.get(unique_id)

    def get_by_event_substring(self, event_name_substring: str) -> List[WatchConfig]:
        """Return watches whose stored substring equals `event_name_substring`, ignoring case."""

        wanted = event_name_substring.lower()
        return [w for w in self._store.list_all() if w.event_name_substring.lower() == wanted]

    def delete_one(self, unique_id: str) -> bool:
        """Delete a watch and release its timer if nothing else uses it.

        Returns False when the watch does not exist or its record could not be
        deleted. Timer cleanup failures are only logged.
        """

        try:
            watch = self._store.get(unique_id)
        except IncompleteConfiguration as exc:
            # Broken records are still deletable; they just hold no timer reference.
            LOGGER.warning("Deleting incomplete watch %s: %s", unique_id, exc)
            watch = None
        except Exception:
            LOGGER.exception("Could not read watch %s", unique_id)
            return False
        else:
            if watch is None:
                LOGGER.info("No watch %s to delete", unique_id)
                return False

        try:
            self._store.delete(unique_id)
        except Exception:
            LOGGER.exception("Failed to delete watch %s", unique_id)
            return False

        if watch is not None:
            try:
                self._triggers.release(watch.associated_trigger_id, self._store.list_all())
            except Exception:
                LOGGER.warning("Timer cleanup after deleting %s failed", unique_id, exc_info=True)

        LOGGER.info("Watch %s deleted", unique_id)
        return True

    def delete_all(self) -> int:
        deleted = 0
        for unique_id, _ in self._store.list_records():
            if self.delete_one(unique_id):
                deleted += 1
        return deleted
