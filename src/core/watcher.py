"""Public facade over the admin operations and the dispatch engine."""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import List, Optional

from core.admin import WatchAdmin
from core.callbacks import CallbackRegistry
from core.config import DedupConfig, WatchDefaults
from core.config_store import ConfigStore
from core.dedup import DedupeCache
from core.models import CheckReport, WatchConfig
from core.ports import CachePort, CalendarSourcePort, PropertyStorePort, SchedulerPort
from core.processor import DispatchEngine
from core.triggers import TriggerRefCounter


class EventWatcher:
    """Wire the core components from explicit port implementations."""

    def __init__(
        self,
        properties: PropertyStorePort,
        calendars: CalendarSourcePort,
        scheduler: SchedulerPort,
        cache: CachePort,
        callbacks: CallbackRegistry,
        tz: tzinfo,
        dedup_config: Optional[DedupConfig] = None,
        defaults: Optional[WatchDefaults] = None,
    ) -> None:
        self.store = ConfigStore(properties)
        self.triggers = TriggerRefCounter(scheduler)
        self.callbacks = callbacks
        self.admin = WatchAdmin(self.store, self.triggers, calendars, callbacks, defaults)
        self.engine = DispatchEngine(
            self.store,
            calendars,
            DedupeCache(cache, dedup_config or DedupConfig(), tz),
            callbacks,
            tz,
        )

    def setup(
        self,
        event_name_substring: str,
        days_before: int,
        function_to_run: str,
        check_frequency_hours: Optional[int] = None,
        unique_id: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> WatchConfig:
        return self.admin.setup(
            event_name_substring,
            days_before,
            function_to_run,
            check_frequency_hours=check_frequency_hours,
            unique_id=unique_id,
            calendar_id=calendar_id,
        )

    async def run_check(self, now: Optional[datetime] = None) -> CheckReport:
        return await self.engine.run_check(now)

    def simulate(self, now: Optional[datetime] = None, unique_id: Optional[str] = None) -> CheckReport:
        return self.engine.simulate(now, unique_id)

    def list_all(self) -> List[WatchConfig]:
        return self.admin.list_all()

    def get_by_unique_id(self, unique_id: str) -> Optional[WatchConfig]:
        return self.admin.get_by_unique_id(unique_id)

    def get_by_event_substring(self, event_name_substring: str) -> List[WatchConfig]:
        return self.admin.get_by_event_substring(event_name_substring)

    def delete_one(self, unique_id: str) -> bool:
        return self.admin.delete_one(unique_id)

    def delete_all(self) -> int:
        return self.admin.delete_all()
