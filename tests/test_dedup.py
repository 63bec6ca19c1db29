from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from core.config import DedupConfig
from core.dedup import STATUS_ERROR, STATUS_PROCESSED, DedupeCache, compute_dedupe_key
from core.models import CalendarEvent
from fakes import FakeCache

START = datetime(2024, 1, 4, 9, 0, tzinfo=timezone.utc)


def _event(event_id: str = "evt-1", start: datetime = START) -> CalendarEvent:
    return CalendarEvent(event_id=event_id, title="Standup", start=start)


def test_key_is_stable_for_the_same_instance() -> None:
    # Same instant expressed in another offset is the same instance.
    shifted = START.astimezone(timezone(timedelta(hours=2)))

    assert compute_dedupe_key(_event()) == compute_dedupe_key(_event(start=shifted))


def test_key_differs_per_occurrence_and_event() -> None:
    base = compute_dedupe_key(_event())

    assert compute_dedupe_key(_event(start=START + timedelta(days=7))) != base
    assert compute_dedupe_key(_event(event_id="evt-2")) != base


def test_global_scope_ignores_watch_and_per_watch_does_not() -> None:
    event = _event()

    assert compute_dedupe_key(event, "a") == compute_dedupe_key(event, "b")
    assert compute_dedupe_key(event, "a", "per_watch") != compute_dedupe_key(event, "b", "per_watch")


def test_unknown_scope_is_rejected() -> None:
    with pytest.raises(ValueError):
        compute_dedupe_key(_event(), "a", "nonsense")


def test_mark_uses_status_specific_ttls() -> None:
    cache = FakeCache()
    dedupe = DedupeCache(cache, DedupConfig(success_ttl_hours=6, error_ttl_hours=1))

    dedupe.mark("ok", STATUS_PROCESSED)
    dedupe.mark("bad", STATUS_ERROR)

    assert cache.ttls == {"ok": 6 * 3600, "bad": 3600}
    assert json.loads(cache.values["bad"])["status"] == "error"
    assert dedupe.seen("ok")
    assert not dedupe.seen("other")


def test_explicit_ttl_wins() -> None:
    cache = FakeCache()
    DedupeCache(cache, DedupConfig()).mark("k", STATUS_PROCESSED, ttl_seconds=60)

    assert cache.ttls["k"] == 60


def test_cache_outage_fails_open() -> None:
    cache = FakeCache()
    cache.broken = True
    dedupe = DedupeCache(cache, DedupConfig())

    assert dedupe.seen("k") is False
    dedupe.mark("k", STATUS_PROCESSED)


def test_dedup_config_rejects_unknown_values() -> None:
    with pytest.raises(ValueError):
        DedupConfig(scope="per_source")
    with pytest.raises(ValueError):
        DedupConfig(missing_callback="backoff")


def test_naive_start_is_read_in_the_configured_zone() -> None:
    plus_two = timezone(timedelta(hours=2))
    naive = _event(start=datetime(2024, 1, 4, 11, 0))
    aware = _event(start=datetime(2024, 1, 4, 11, 0, tzinfo=plus_two))
    cache = DedupeCache(FakeCache(), DedupConfig(), plus_two)

    assert cache.key_for(naive, "w") == cache.key_for(aware, "w")
    # Without a zone a naive start is taken as UTC.
    assert compute_dedupe_key(naive) == compute_dedupe_key(_event(start=START.replace(hour=11)))
