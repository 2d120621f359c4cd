"""Tests for the free/busy timeline and slot search."""

import zoneinfo
from datetime import date, datetime, timedelta

import pytest

from aiva.nexus.freebusy import compute_free_busy, find_available_slots, weekday_index
from aiva.nexus.models import SchedulingRules

TZ = zoneinfo.ZoneInfo("America/New_York")
MONDAY = date(2026, 3, 2)


def _at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=TZ)


def _event(start: datetime, end: datetime, title: str = "Sync") -> dict:
    return {"start_time": start.isoformat(), "end_time": end.isoformat(), "title": title}


def _spans(slots) -> list[tuple[datetime, datetime, bool]]:
    return [(s.start, s.end, s.is_busy) for s in slots]


@pytest.fixture
def rules() -> SchedulingRules:
    return SchedulingRules(
        buffer_minutes=15,
        working_hours_start="09:00",
        working_hours_end="17:00",
        timezone="America/New_York",
    )


# -- compute_free_busy -------------------------------------------------------


def test_single_event_with_buffers(rules: SchedulingRules) -> None:
    slots = compute_free_busy(
        [_event(_at(10), _at(10, 30))], MONDAY, MONDAY + timedelta(days=1), rules
    )

    assert _spans(slots) == [
        (_at(9), _at(9, 45), False),
        (_at(10), _at(10, 30), True),
        (_at(10, 45), _at(17), False),
    ]
    assert slots[1].event_title == "Sync"


def test_event_stored_in_utc_lands_on_local_day(rules: SchedulingRules) -> None:
    # 15:00 UTC is 10:00 in New York before daylight saving starts
    slots = compute_free_busy(
        [{"start_time": "2026-03-02T15:00:00+00:00", "end_time": "2026-03-02T15:30:00+00:00"}],
        MONDAY, MONDAY + timedelta(days=1), rules,
    )
    busy = [s for s in slots if s.is_busy]
    assert busy[0].start == _at(10)
    assert busy[0].event_title == "Busy"


def test_empty_day_is_one_free_slot(rules: SchedulingRules) -> None:
    slots = compute_free_busy([], MONDAY, MONDAY + timedelta(days=1), rules)
    assert _spans(slots) == [(_at(9), _at(17), False)]


def test_no_meeting_days_are_skipped() -> None:
    rules = SchedulingRules(no_meeting_days=(1,), timezone="America/New_York")
    slots = compute_free_busy([], MONDAY, MONDAY + timedelta(days=2), rules)

    assert weekday_index(MONDAY) == 1
    assert {s.start.date() for s in slots} == {MONDAY + timedelta(days=1)}


def test_events_outside_working_window_are_ignored(rules: SchedulingRules) -> None:
    slots = compute_free_busy(
        [_event(_at(7), _at(8)), _event(_at(18), _at(19))],
        MONDAY, MONDAY + timedelta(days=1), rules,
    )
    assert _spans(slots) == [(_at(9), _at(17), False)]


def test_busy_span_is_clipped_to_window(rules: SchedulingRules) -> None:
    slots = compute_free_busy(
        [_event(_at(16), _at(18))], MONDAY, MONDAY + timedelta(days=1), rules
    )
    assert _spans(slots)[-1] == (_at(16), _at(17), True)


def test_overlapping_events_merge(rules: SchedulingRules) -> None:
    slots = compute_free_busy(
        [_event(_at(10), _at(11), "A"), _event(_at(10, 30), _at(12), "B")],
        MONDAY, MONDAY + timedelta(days=1), rules,
    )
    busy = [s for s in slots if s.is_busy]
    assert len(busy) == 1
    assert (busy[0].start, busy[0].end) == (_at(10), _at(12))
    assert busy[0].event_title == "A, B"


def test_slots_never_overlap_and_stay_in_window(rules: SchedulingRules) -> None:
    events = [
        _event(_at(9), _at(9, 30)),
        _event(_at(9, 40), _at(10)),
        _event(_at(13), _at(14)),
        _event(_at(13, 30), _at(15)),
        _event(_at(16, 50), _at(17, 30)),
    ]
    slots = compute_free_busy(events, MONDAY, MONDAY + timedelta(days=1), rules)

    for earlier, later in zip(slots, slots[1:], strict=False):
        assert earlier.end <= later.start
    for slot in slots:
        assert _at(9) <= slot.start < slot.end <= _at(17)


def test_zero_buffer_leaves_no_gaps(rules: SchedulingRules) -> None:
    rules = rules.model_copy(update={"buffer_minutes": 0})
    slots = compute_free_busy(
        [_event(_at(10), _at(11))], MONDAY, MONDAY + timedelta(days=1), rules
    )
    assert _spans(slots) == [
        (_at(9), _at(10), False),
        (_at(10), _at(11), True),
        (_at(11), _at(17), False),
    ]


# -- find_available_slots ----------------------------------------------------


def test_hour_long_request_skips_short_gap(rules: SchedulingRules) -> None:
    slots = compute_free_busy(
        [_event(_at(10), _at(10, 30))], MONDAY, MONDAY + timedelta(days=1), rules
    )
    offers = find_available_slots(slots, 60)

    assert len(offers) == 1
    assert (offers[0].start, offers[0].end) == (_at(10, 45), _at(11, 45))


def test_offers_are_earliest_first_and_capped(rules: SchedulingRules) -> None:
    slots = compute_free_busy([], MONDAY, MONDAY + timedelta(days=5), rules)
    offers = find_available_slots(slots, 30, count=3)

    assert [o.start for o in offers] == [
        _at(9), _at(9, day=MONDAY + timedelta(days=1)), _at(9, day=MONDAY + timedelta(days=2))
    ]


def test_offers_fit_inside_free_slots(rules: SchedulingRules) -> None:
    slots = compute_free_busy(
        [_event(_at(9, 30), _at(12)), _event(_at(13), _at(16, 30))],
        MONDAY, MONDAY + timedelta(days=1), rules,
    )
    free = [s for s in slots if not s.is_busy]
    for offer in find_available_slots(slots, 30, count=10):
        assert offer.end - offer.start == timedelta(minutes=30)
        assert any(f.start <= offer.start and offer.end <= f.end for f in free)


def test_earliest_trims_past_free_time(rules: SchedulingRules) -> None:
    slots = compute_free_busy([], MONDAY, MONDAY + timedelta(days=1), rules)
    offers = find_available_slots(slots, 60, earliest=_at(16, 30))
    assert offers == []

    offers = find_available_slots(slots, 30, earliest=_at(16, 30))
    assert offers[0].start == _at(16, 30)
