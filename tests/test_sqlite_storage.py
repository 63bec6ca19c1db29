from __future__ import annotations

from datetime import datetime, timedelta, timezone

from adapters.sqlite_scheduler import SQLiteScheduler
from adapters.sqlite_storage import SQLiteStorage
from core.config_store import ConfigStore
from core.models import WatchConfig
from core.triggers import CHECK_HANDLER


def _storage(tmp_path) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "eventwatch.db"))
    storage.init_db()
    return storage


def test_properties_roundtrip(tmp_path) -> None:
    storage = _storage(tmp_path)

    storage.set_property("WATCH_CONFIG_a", "1")
    storage.set_property("WATCH_CONFIG_a", "2")
    storage.set_property("WATCH_TRIGGER_a", "t")

    assert storage.get_property("WATCH_CONFIG_a") == "2"
    storage.delete_property("WATCH_TRIGGER_a")
    assert storage.get_property("WATCH_TRIGGER_a") is None


def test_list_properties_treats_prefix_literally(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.set_property("WATCH_CONFIG_a", "1")
    # "_" is a LIKE wildcard; this key must not match the prefix.
    storage.set_property("WATCHxCONFIGxb", "2")

    assert storage.list_properties("WATCH_CONFIG_") == {"WATCH_CONFIG_a": "1"}


def test_config_store_over_sqlite(tmp_path) -> None:
    store = ConfigStore(_storage(tmp_path))
    watch = WatchConfig(
        unique_id="Standup_notify",
        event_name_substring="Standup",
        days_before=3,
        function_to_run="notify",
        calendar_id="family",
        check_frequency_hours=6,
        associated_trigger_id="abc",
    )

    store.put(watch)

    assert store.get("Standup_notify") == watch
    assert store.list_all() == [watch]
    store.delete("Standup_notify")
    assert store.get("Standup_notify") is None


def test_cache_entries_expire(tmp_path) -> None:
    storage = _storage(tmp_path)

    storage.put("fresh", "v", ttl_seconds=3600)
    storage.put("stale", "v", ttl_seconds=0)

    assert storage.get("fresh") == "v"
    assert storage.get("stale") is None
    assert storage.cleanup_cache() == 1


def test_cache_put_refreshes_ttl(tmp_path) -> None:
    storage = _storage(tmp_path)

    storage.put("k", "error", ttl_seconds=0)
    storage.put("k", "processed", ttl_seconds=3600)

    assert storage.get("k") == "processed"


def test_scheduler_timers_and_due_logic(tmp_path) -> None:
    scheduler = SQLiteScheduler(str(tmp_path / "eventwatch.db"))
    scheduler.init_db()
    now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    timer_id = scheduler.ensure_timer(CHECK_HANDLER, 6)
    [timer] = scheduler.list_timers()
    assert (timer.timer_id, timer.handler_name, timer.every_hours) == (timer_id, CHECK_HANDLER, 6)
    assert [t.timer_id for t in scheduler.due_timers(now)] == [timer_id]

    scheduler.mark_run(timer_id, now)
    assert scheduler.due_timers(now + timedelta(hours=5)) == []
    assert len(scheduler.due_timers(now + timedelta(hours=6))) == 1

    scheduler.delete_timer(timer_id)
    assert scheduler.list_timers() == []
