"""Free/busy timeline and available-slot search.

``compute_free_busy`` and ``find_available_slots`` are pure; the loader
only adds the calendar read.
"""

from __future__ import annotations

import logging
import zoneinfo
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from aiva.nexus.models import FreeBusySlot, ProposedSlot
from aiva.timeutil import local_midnight, parse_datetime, to_utc_iso

if TYPE_CHECKING:
    from collections.abc import Iterable

    from aiva.nexus.models import SchedulingRules
    from aiva.workspace.store import WorkspaceStore

logger = logging.getLogger(__name__)


@dataclass
class _Busy:
    start: datetime
    end: datetime
    title: str


def weekday_index(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return day.isoweekday() % 7


def _days(start_date: date, end_date: date) -> Iterable[date]:
    day = start_date
    while day < end_date:
        yield day
        day += timedelta(days=1)


def _merge_overlapping(events: list[_Busy]) -> list[_Busy]:
    """Collapse overlapping events so busy slots never overlap each other."""
    merged: list[_Busy] = []
    for event in events:
        if merged and event.start < merged[-1].end:
            last = merged[-1]
            last.end = max(last.end, event.end)
            last.title = f"{last.title}, {event.title}"
        else:
            merged.append(_Busy(event.start, event.end, event.title))
    return merged


def compute_free_busy(
    events: list[dict[str, Any]],
    start_date: date,
    end_date: date,
    rules: SchedulingRules,
) -> list[FreeBusySlot]:
    """Build the slot timeline for each day in ``[start_date, end_date)``.

    Days in ``rules.no_meeting_days`` are skipped. Within a day, only events
    whose start falls inside the working window count. The buffer around
    each event is neither free nor busy.
    """
    tz = zoneinfo.ZoneInfo(rules.timezone)
    buffer = timedelta(minutes=rules.buffer_minutes)

    parsed = sorted(
        (
            _Busy(
                parse_datetime(e["start_time"]).astimezone(tz),
                parse_datetime(e["end_time"]).astimezone(tz),
                e.get("title") or "Busy",
            )
            for e in events
        ),
        key=lambda b: b.start,
    )

    slots: list[FreeBusySlot] = []
    for day in _days(start_date, end_date):
        if weekday_index(day) in rules.no_meeting_days:
            continue

        window_start = datetime.combine(day, rules.start_time, tzinfo=tz)
        window_end = datetime.combine(day, rules.end_time, tzinfo=tz)
        if window_end <= window_start:
            continue

        day_events = _merge_overlapping(
            [b for b in parsed if window_start <= b.start < window_end]
        )

        cursor = window_start
        for event in day_events:
            busy_end = min(event.end, window_end)
            free_end = event.start - buffer
            if cursor < free_end:
                slots.append(FreeBusySlot(start=cursor, end=free_end, is_busy=False))
            slots.append(
                FreeBusySlot(start=event.start, end=busy_end, is_busy=True, event_title=event.title)
            )
            cursor = max(cursor, busy_end + buffer)

        if cursor < window_end:
            slots.append(FreeBusySlot(start=cursor, end=window_end, is_busy=False))

    return slots


async def load_free_busy(
    store: WorkspaceStore,
    user_id: str,
    start_date: date,
    end_date: date,
    rules: SchedulingRules,
) -> list[FreeBusySlot]:
    """Fetch the user's events in range and compute their free/busy timeline."""
    tz = zoneinfo.ZoneInfo(rules.timezone)
    events = await store.list_events(
        user_id,
        start_from=to_utc_iso(local_midnight(start_date, tz)),
        start_before=to_utc_iso(local_midnight(end_date, tz)),
    )
    slots = compute_free_busy(events, start_date, end_date, rules)
    logger.debug(
        "Free/busy for %s %s..%s: %d events, %d slots",
        user_id, start_date, end_date, len(events), len(slots),
    )
    return slots


def find_available_slots(
    slots: list[FreeBusySlot],
    duration_minutes: int,
    count: int = 3,
    earliest: datetime | None = None,
) -> list[ProposedSlot]:
    """Earliest-first offers, one per free slot long enough for the duration.

    When *earliest* is given, free time before it is trimmed off first.
    """
    duration = timedelta(minutes=duration_minutes)
    offers: list[ProposedSlot] = []
    for slot in slots:
        if slot.is_busy:
            continue
        start = max(slot.start, earliest) if earliest else slot.start
        if slot.end - start < duration:
            continue
        offers.append(ProposedSlot(start=start, end=start + duration))
        if len(offers) >= count:
            break
    return offers
