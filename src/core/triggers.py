"""Shared periodic timer bookkeeping (core domain).

Every watch runs off a single timer bound to the check handler. Watches
reference it through `associated_trigger_id`; the timer is only torn down
when the last referencing watch is deleted.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from core.models import TimerInfo, WatchConfig
from core.ports import SchedulerPort

LOGGER = logging.getLogger(__name__)

CHECK_HANDLER = "run_check"


class TriggerRefCounter:
    """Acquire and release the shared check timer."""

    def __init__(self, scheduler: SchedulerPort, handler_name: str = CHECK_HANDLER) -> None:
        self._scheduler = scheduler
        self._handler_name = handler_name

    @property
    def handler_name(self) -> str:
        return self._handler_name

    def active_timer(self) -> Optional[TimerInfo]:
        for timer in self._scheduler.list_timers():
            if timer.handler_name == self._handler_name:
                return timer
        return None

    def acquire(self, every_hours: int) -> str:
        """Return the shared timer id, creating the timer if none exists.

        The cadence only applies when the timer is created here; an existing
        timer keeps its original cadence.
        """

        timer = self.active_timer()
        if timer is not None:
            if timer.every_hours != every_hours:
                LOGGER.info(
                    "Reusing timer %s every %sh (requested %sh)",
                    timer.timer_id,
                    timer.every_hours,
                    every_hours,
                )
            return timer.timer_id

        timer_id = self._scheduler.ensure_timer(self._handler_name, every_hours)
        LOGGER.info("Created timer %s for %s every %sh", timer_id, self._handler_name, every_hours)
        return timer_id

    def release(self, timer_id: str, remaining: Iterable[WatchConfig]) -> bool:
        """Delete `timer_id` if no remaining watch references it.

        Returns True only when a timer was deleted. A timer bound to a different
        handler is never touched.
        """

        if any(watch.associated_trigger_id == timer_id for watch in remaining):
            return False

        timer = next((t for t in self._scheduler.list_timers() if t.timer_id == timer_id), None)
        if timer is None:
            LOGGER.info("Timer %s already gone", timer_id)
            return False

        if timer.handler_name != self._handler_name:
            LOGGER.warning(
                "Timer %s is bound to %s, not %s; leaving it untouched",
                timer_id,
                timer.handler_name,
                self._handler_name,
            )
            return False

        self._scheduler.delete_timer(timer_id)
        LOGGER.info("Deleted timer %s", timer_id)
        return True
