from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone

from core.config import DedupConfig
from core.config_store import config_key
from core.models import CalendarEvent, OutcomeStatus
from fakes import RecordingCallback, make_watcher

UTC = timezone.utc
NOW = datetime(2024, 1, 1, tzinfo=UTC)


def _standup() -> CalendarEvent:
    return CalendarEvent(
        event_id="standup-1",
        title="Daily Standup",
        start=datetime(2024, 1, 4, 9, 0, tzinfo=UTC),
    )


def _events(*events: CalendarEvent) -> dict[str, list[CalendarEvent]]:
    return {"primary": list(events)}


def test_standup_scenario_dispatches_once() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")

    first = asyncio.run(watcher.run_check(NOW))
    second = asyncio.run(watcher.run_check(datetime(2024, 1, 1, 0, 5, tzinfo=UTC)))

    assert len(ports.callback.calls) == 1
    assert ports.callback.calls[0][0].title == "Daily Standup"
    assert [o.status for o in first.outcomes] == [OutcomeStatus.DISPATCHED]
    assert [o.status for o in second.outcomes] == [OutcomeStatus.DUPLICATE]


def test_success_marker_uses_long_ttl() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")

    report = asyncio.run(watcher.run_check(NOW))

    assert ports.cache.ttls[report.outcomes[0].dedupe_key] == 6 * 3600


def test_rerun_after_expiry_dispatches_again() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")

    asyncio.run(watcher.run_check(NOW))
    ports.cache.expire_all()
    asyncio.run(watcher.run_check(NOW))

    assert len(ports.callback.calls) == 2


def test_non_matching_events_are_skipped_silently() -> None:
    other_day = CalendarEvent("standup-2", "Daily Standup", datetime(2024, 1, 5, 9, 0, tzinfo=UTC))
    other_title = CalendarEvent("lunch", "Team lunch", datetime(2024, 1, 4, 12, 0, tzinfo=UTC))
    watcher, ports = make_watcher(_events(other_day, other_title))
    watcher.setup("Standup", 3, "notify")

    report = asyncio.run(watcher.run_check(NOW))

    assert report.outcomes == []
    assert report.watches_checked == 1
    assert ports.callback.calls == []


def test_callback_failure_marks_error_and_continues() -> None:
    second = CalendarEvent("standup-2", "Evening Standup", datetime(2024, 1, 4, 18, 0, tzinfo=UTC))
    watcher, ports = make_watcher(_events(_standup(), second))
    ports.registry.register("explode", RecordingCallback(fail=True))
    watcher.setup("Daily", 3, "explode")
    watcher.setup("Evening", 3, "notify")

    report = asyncio.run(watcher.run_check(NOW))

    errored = report.with_status(OutcomeStatus.ERRORED)
    assert len(errored) == 1
    assert "callback exploded" in errored[0].detail
    assert ports.cache.ttls[errored[0].dedupe_key] == 3600
    assert report.dispatched == 1
    assert [call[0].title for call in ports.callback.calls] == ["Evening Standup"]


def test_missing_callback_is_retried_next_run_by_default() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")
    ports.registry.unregister("notify")

    first = asyncio.run(watcher.run_check(NOW))
    second = asyncio.run(watcher.run_check(NOW))

    assert [o.status for o in first.outcomes] == [OutcomeStatus.MISSING_CALLBACK]
    assert [o.status for o in second.outcomes] == [OutcomeStatus.MISSING_CALLBACK]
    assert ports.cache.puts == 0


def test_missing_callback_suppress_policy_writes_error_marker() -> None:
    watcher, ports = make_watcher(_events(_standup()), dedup_config=DedupConfig(missing_callback="suppress"))
    watcher.setup("Standup", 3, "notify")
    ports.registry.unregister("notify")

    asyncio.run(watcher.run_check(NOW))
    second = asyncio.run(watcher.run_check(NOW))

    assert [o.status for o in second.outcomes] == [OutcomeStatus.DUPLICATE]
    assert list(ports.cache.ttls.values()) == [3600]


def test_incomplete_record_is_skipped_without_aborting() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")
    ports.properties.values[config_key("broken")] = '{"uniqueId": "broken", "daysBefore": 3}'
    ports.properties.values[config_key("garbage")] = "not json"

    report = asyncio.run(watcher.run_check(NOW))

    assert {s.unique_id for s in report.skipped} == {"broken", "garbage"}
    assert report.dispatched == 1


def test_unavailable_calendar_skips_only_that_watch() -> None:
    events = _events(_standup())
    events["team"] = [CalendarEvent("t-1", "Team Standup", datetime(2024, 1, 4, 10, 0, tzinfo=UTC))]
    watcher, ports = make_watcher(events)
    watcher.setup("Team", 3, "notify", calendar_id="team")
    watcher.setup("Daily", 3, "notify")
    ports.calendars.failing.add("team")

    report = asyncio.run(watcher.run_check(NOW))

    assert [s.unique_id for s in report.skipped] == ["Team_notify"]
    assert report.dispatched == 1


def test_deleted_calendar_skips_watch() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")
    del ports.calendars.events["primary"]

    report = asyncio.run(watcher.run_check(NOW))

    assert report.outcomes == []
    assert "not found" in report.skipped[0].reason


def test_query_uses_window_and_substring() -> None:
    watcher, ports = make_watcher(_events())
    watcher.setup("Standup", 3, "notify")

    asyncio.run(watcher.run_check(NOW))

    calendar_id, start, end, text = ports.calendars.queries[0]
    assert (calendar_id, text) == ("primary", "Standup")
    assert start == datetime(2024, 1, 4, tzinfo=UTC)
    assert end == datetime(2024, 1, 5, tzinfo=UTC)


def test_same_event_matched_by_two_watches_dispatches_once_globally() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")
    watcher.setup("daily", 3, "notify")

    report = asyncio.run(watcher.run_check(NOW))

    assert len(ports.callback.calls) == 1
    assert report.dispatched == 1
    assert len(report.with_status(OutcomeStatus.DUPLICATE)) == 1


def test_per_watch_scope_dispatches_for_each_watch() -> None:
    watcher, ports = make_watcher(_events(_standup()), dedup_config=DedupConfig(scope="per_watch"))
    watcher.setup("Standup", 3, "notify")
    watcher.setup("daily", 3, "notify")

    asyncio.run(watcher.run_check(NOW))

    assert sorted(call[1] for call in ports.callback.calls) == ["Standup_notify", "daily_notify"]


def test_cache_outage_still_dispatches() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")
    ports.cache.broken = True

    asyncio.run(watcher.run_check(NOW))
    asyncio.run(watcher.run_check(NOW))

    # Fail-open: without a working cache every run dispatches.
    assert len(ports.callback.calls) == 2


def test_check_run_does_not_mutate_watches_or_timers() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")
    writes = ports.properties.writes
    timers = dict(ports.scheduler.timers)

    asyncio.run(watcher.run_check(NOW))

    assert ports.properties.writes == writes
    assert ports.scheduler.timers == timers


def test_simulate_reports_same_matches_without_side_effects() -> None:
    lunch = CalendarEvent("lunch", "Team lunch", datetime(2024, 1, 4, 12, 0, tzinfo=UTC))
    watcher, ports = make_watcher(_events(_standup(), lunch))
    watcher.setup("Standup", 3, "notify")
    writes = ports.properties.writes
    created = ports.scheduler.created

    simulated = watcher.simulate(NOW)

    assert ports.callback.calls == []
    assert ports.cache.puts == 0
    assert ports.properties.writes == writes
    assert ports.scheduler.created == created
    assert simulated.dry_run

    checked = asyncio.run(watcher.run_check(NOW))
    assert [(o.unique_id, o.event, o.dedupe_key) for o in simulated.outcomes] == [
        (o.unique_id, o.event, o.dedupe_key) for o in checked.outcomes
    ]
    assert [o.status for o in simulated.outcomes] == [OutcomeStatus.WOULD_DISPATCH]


def test_simulate_reports_duplicates_after_a_run() -> None:
    watcher, _ = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")
    asyncio.run(watcher.run_check(NOW))

    report = watcher.simulate(NOW)

    assert [o.status for o in report.outcomes] == [OutcomeStatus.DUPLICATE]


def test_simulate_single_watch() -> None:
    watcher, _ = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")
    watcher.setup("Standup", 2, "notify", unique_id="two-days")

    report = watcher.simulate(NOW, unique_id="two-days")
    missing = watcher.simulate(NOW, unique_id="nope")

    assert report.watches_checked == 1
    assert report.outcomes == []
    assert missing.skipped[0].reason == "no such watch"


def test_simulate_mirrors_in_run_suppression() -> None:
    watcher, _ = make_watcher(_events(_standup()))
    watcher.setup("Standup", 3, "notify")
    watcher.setup("daily", 3, "notify")

    report = watcher.simulate(NOW)

    assert sorted(o.status.value for o in report.outcomes) == ["duplicate", "would_dispatch"]


def test_simulate_matches_run_when_callback_is_missing() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    ports.registry.register("gone", RecordingCallback())
    watcher.setup("Daily", 3, "gone")
    watcher.setup("Standup", 3, "notify")
    ports.registry.unregister("gone")

    simulated = watcher.simulate(NOW)
    report = asyncio.run(watcher.run_check(NOW))

    assert [(o.unique_id, o.status) for o in simulated.outcomes] == [
        ("Daily_gone", OutcomeStatus.WOULD_DISPATCH),
        ("Standup_notify", OutcomeStatus.WOULD_DISPATCH),
    ]
    assert [(o.unique_id, o.status) for o in report.outcomes] == [
        ("Daily_gone", OutcomeStatus.MISSING_CALLBACK),
        ("Standup_notify", OutcomeStatus.DISPATCHED),
    ]


def test_out_of_range_watch_does_not_abort_the_run() -> None:
    watcher, ports = make_watcher(_events(_standup()))
    good = watcher.setup("Standup", 3, "notify")
    watcher.store.put(replace(good, unique_id="Aaa_notify", event_name_substring="Aaa", days_before=10**7))

    report = asyncio.run(watcher.run_check(NOW))

    assert [s.unique_id for s in report.skipped] == ["Aaa_notify"]
    assert report.dispatched == 1
    assert len(ports.callback.calls) == 1


def test_unreadable_event_is_errored_and_others_dispatch() -> None:
    broken = CalendarEvent("broken", "Daily Standup", start=None)
    watcher, ports = make_watcher(_events(broken, _standup()))
    watcher.setup("Standup", 3, "notify")

    report = asyncio.run(watcher.run_check(NOW))

    assert [(o.event.event_id, o.status) for o in report.outcomes] == [
        ("broken", OutcomeStatus.ERRORED),
        ("standup-1", OutcomeStatus.DISPATCHED),
    ]
    assert [call[0].event_id for call in ports.callback.calls] == ["standup-1"]
