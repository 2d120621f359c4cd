"""Daily briefing: a read-only aggregate of today's calendar and inbox."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from aiva.llm.prompt import resolve_timezone
from aiva.nexus.models import (
    CalendarDensity,
    DailyBriefing,
    FocusBlock,
    InboxSummary,
    MeetingPrep,
    TriageAction,
)
from aiva.timeutil import local_midnight, parse_datetime, to_utc_iso

if TYPE_CHECKING:
    from aiva.actions.store import PendingActionStore
    from aiva.nexus.models import SchedulingRules
    from aiva.workspace.store import WorkspaceStore

logger = logging.getLogger(__name__)

MAX_MEETING_PREPS = 5
MAX_TRIAGE_ACTIONS = 5
THREAD_WINDOW = 50
URGENT_PRIORITIES = ("urgent", "high")


def _attendee_emails(event: dict[str, Any]) -> list[str]:
    emails = []
    for attendee in event.get("attendees") or []:
        email = attendee.get("email") if isinstance(attendee, dict) else attendee
        if email:
            emails.append(email.lower())
    return emails


def _meeting_prep(event: dict[str, Any], threads: list[dict[str, Any]]) -> MeetingPrep:
    attendees = _attendee_emails(event)
    wanted = set(attendees)
    related = [
        t["id"] for t in threads
        if t.get("contact_email") and t["contact_email"].lower() in wanted
    ]
    summary = (
        f"{len(related)} related email thread(s) found" if related else "No recent email context"
    )
    return MeetingPrep(
        event_title=event["title"],
        start_time=event["start_time"],
        attendees=attendees,
        related_thread_ids=related,
        context_summary=summary,
    )


def summarize_day(
    day: str,
    events: list[dict[str, Any]],
    threads: list[dict[str, Any]],
    *,
    workday_hours: float,
    auto_handled: int = 0,
) -> DailyBriefing:
    """Pure aggregation over already-loaded events and threads."""
    total_minutes = sum(
        (parse_datetime(e["end_time"]) - parse_datetime(e["start_time"])).total_seconds() / 60
        for e in events
    )
    total_hours = round(total_minutes / 60, 1)
    free_hours = round(max(0.0, workday_hours - total_hours), 1)

    triage = [
        TriageAction(
            thread_id=t["id"],
            reason=f"{t['priority']} priority, unread: {t.get('primary_subject') or 'No subject'}",
        )
        for t in threads
        if t.get("priority") in URGENT_PRIORITIES and t.get("is_unread")
    ][:MAX_TRIAGE_ACTIONS]

    focus = [
        FocusBlock(
            event_id=e["id"],
            title=e["title"],
            start_time=e["start_time"],
            end_time=e["end_time"],
            task_id=e["task_id"],
        )
        for e in events
        if e.get("task_id") and e.get("created_by") == "aiva"
    ]

    return DailyBriefing(
        date=day,
        meeting_preps=[_meeting_prep(e, threads) for e in events[:MAX_MEETING_PREPS]],
        triage_actions=triage,
        focus_blocks=focus,
        calendar_density=CalendarDensity(
            total_meetings=len(events),
            total_hours=total_hours,
            free_hours=free_hours,
        ),
        inbox_summary=InboxSummary(
            unread=sum(1 for t in threads if t.get("is_unread")),
            urgent=sum(1 for t in threads if t.get("priority") in URGENT_PRIORITIES),
            needs_reply=sum(1 for t in threads if t.get("has_draft")),
            auto_handled=auto_handled,
        ),
    )


async def generate_daily_briefing(
    user_id: str,
    timezone: str | None,
    *,
    rules: SchedulingRules,
    workspace: WorkspaceStore,
    actions: PendingActionStore,
    now: datetime | None = None,
) -> DailyBriefing:
    """Build today's briefing in the caller's timezone. Performs no writes."""
    tz = resolve_timezone(timezone)
    today = (now or datetime.now(tz)).astimezone(tz).date()
    day_start = to_utc_iso(local_midnight(today, tz))
    day_end = to_utc_iso(local_midnight(today + timedelta(days=1), tz))

    events = await workspace.list_events(user_id, start_from=day_start, start_before=day_end)
    threads = await workspace.search_threads(user_id, date_from=day_start, limit=THREAD_WINDOW)
    auto_handled = await actions.count_logs_since(user_id, day_start)

    briefing = summarize_day(
        today.isoformat(),
        events,
        threads,
        workday_hours=rules.workday_hours,
        auto_handled=auto_handled,
    )
    logger.info(
        "Briefing for %s on %s: %d meetings, %d threads",
        user_id, briefing.date, len(events), len(threads),
    )
    return briefing
