"""Tests for the inbox, task, calendar and scheduling tools."""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from aiva.tools.calendar_tools import create_calendar_event, get_calendar_events
from aiva.tools.inbox_tools import get_contact_info, get_thread_detail, search_inbox
from aiva.tools.nexus_tools import find_available_times, schedule_meeting
from aiva.tools.task_tools import create_task, list_tasks
from aiva.timeutil import to_utc_iso

NY = ZoneInfo("America/New_York")
USER = "user-1"

pytestmark = pytest.mark.usefixtures("workspace", "actions")


@pytest.fixture
async def inbox(workspace):
    dana = await workspace.add_contact(USER, "Dana Smith", "dana@acme.com", company="Acme")
    t1 = await workspace.add_thread(
        USER, subject="Contract review", snippet="Please review the contract",
        last_message_at="2026-02-22T15:00:00Z", contact_id=dana["id"], priority="urgent",
    )
    t2 = await workspace.add_thread(
        USER, subject="Weekly newsletter", snippet="Top stories",
        last_message_at="2026-02-20T09:00:00Z", is_unread=False, priority="low",
    )
    t3 = await workspace.add_thread(
        USER, subject="Standup notes", last_message_at="2026-02-23T09:00:00Z",
        provider="slack",
    )
    await workspace.add_thread(
        "someone-else", subject="Contract review", last_message_at="2026-02-22T10:00:00Z"
    )
    await workspace.add_message(
        t1, sender_email="dana@acme.com", sender_name="Dana Smith",
        subject="Contract review", body="Please review the contract by Friday.",
        timestamp="2026-02-22T15:00:00Z",
    )
    return {"contract": t1, "newsletter": t2, "standup": t3}


# -- Inbox ---------------------------------------------------------------------


async def test_search_inbox_recent_first(inbox, context) -> None:
    result = await search_inbox(context=context)
    assert result.success
    assert [t["subject"] for t in result.data["threads"]] == [
        "Standup notes", "Contract review", "Weekly newsletter",
    ]
    first = result.data["threads"][1]
    assert first["senderEmail"] == "dana@acme.com"
    assert first["isUnread"] is True
    assert first["provider"] == "gmail"


async def test_search_inbox_date_to_is_inclusive(inbox, context) -> None:
    result = await search_inbox(date_from="2026-02-21", date_to="2026-02-22", context=context)
    assert [t["threadId"] for t in result.data["threads"]] == [inbox["contract"]]


async def test_search_inbox_filters(inbox, context) -> None:
    by_sender = await search_inbox(sender_name="dana", context=context)
    assert by_sender.data["count"] == 1

    by_keyword = await search_inbox(search_query="STORIES", context=context)
    assert by_keyword.data["threads"][0]["threadId"] == inbox["newsletter"]

    by_channel = await search_inbox(channel="SLACK", context=context)
    assert [t["threadId"] for t in by_channel.data["threads"]] == [inbox["standup"]]

    unread_urgent = await search_inbox(is_unread=True, priority="urgent", context=context)
    assert unread_urgent.data["count"] == 1


async def test_search_inbox_no_results(inbox, context) -> None:
    result = await search_inbox(sender_email="nobody@example.com", context=context)
    assert result.data == {"threads": [], "count": 0, "message": "No matching threads found."}


async def test_thread_detail_and_contact(inbox, context) -> None:
    detail = await get_thread_detail(inbox["contract"], context=context)
    assert detail.data["count"] == 1
    assert detail.data["messages"][0]["from"] == "Dana Smith"

    contact = await get_contact_info(name="dana", context=context)
    assert contact.data["contacts"][0]["company"] == "Acme"


# -- Tasks -----------------------------------------------------------------------


async def test_create_task_is_staged_not_created(workspace, actions, context) -> None:
    result = await create_task("Send invoice", priority="high", context=context)

    assert result.data["status"] == "pending"
    assert await workspace.list_tasks(USER) == []
    staged = await actions.list_pending(USER)
    assert staged[0].id == result.data["pendingActionId"]
    assert staged[0].details.task.priority == "high"

    listed = await list_tasks(context=context)
    assert listed.data["count"] == 0


# -- Calendar --------------------------------------------------------------------


async def test_get_calendar_events_by_local_day(workspace, context) -> None:
    # 23:30 local on the 2nd is already the 3rd in UTC
    late = datetime(2026, 3, 2, 23, 30, tzinfo=NY)
    await workspace.add_event(
        USER, "Late call", to_utc_iso(late), to_utc_iso(late + timedelta(minutes=20))
    )
    await workspace.add_event(
        USER, "Next day", to_utc_iso(datetime(2026, 3, 3, 10, tzinfo=NY)),
        to_utc_iso(datetime(2026, 3, 3, 11, tzinfo=NY)),
    )

    result = await get_calendar_events("2026-03-02", "2026-03-02", context=context)
    assert [e["title"] for e in result.data["events"]] == ["Late call"]


async def test_get_calendar_events_bad_dates(context) -> None:
    result = await get_calendar_events("soon", "later", context=context)
    assert result.error


async def test_create_calendar_event_stages_utc_times(workspace, actions, context) -> None:
    result = await create_calendar_event(
        "Sync with Dana", "2026-03-02T10:00:00", "2026-03-02T10:30:00",
        attendees=["dana@acme.com"], context=context,
    )

    assert result.success
    staged = (await actions.list_pending(USER))[0]
    assert staged.details.calendar_event.start_time == "2026-03-02T15:00:00+00:00"
    assert staged.details.calendar_event.attendees == ["dana@acme.com"]
    assert await workspace.list_events(USER) == []


async def test_create_calendar_event_rejects_inverted_range(actions, context) -> None:
    result = await create_calendar_event(
        "Backwards", "2026-03-02T11:00:00", "2026-03-02T10:00:00", context=context
    )
    assert result.error == "end_time must be after start_time"
    assert await actions.list_pending(USER) == []


# -- Scheduling ------------------------------------------------------------------


def _future_day() -> date:
    return date.today() + timedelta(days=30)


async def test_find_available_times_respects_buffer(workspace, context) -> None:
    day = _future_day()
    await workspace.add_event(
        USER, "Standup",
        to_utc_iso(datetime.combine(day, time(9), NY)),
        to_utc_iso(datetime.combine(day, time(10), NY)),
    )

    result = await find_available_times(
        date_from=day.isoformat(), date_to=day.isoformat(), count=2, context=context
    )

    starts = [datetime.fromisoformat(s["start"]).astimezone(NY).time() for s in result.data["slots"]]
    assert starts[0] == time(10, 15)
    assert result.data["rules"] == {
        "buffer": 15, "workingHours": "09:00-17:00", "timezone": "America/New_York",
    }


async def test_schedule_meeting_stages_earliest_slot(actions, context) -> None:
    day = _future_day().isoformat()
    result = await schedule_meeting(
        "Intro call", attendee_emails=["dana@acme.com"],
        date_from=day, date_to=day, context=context,
    )

    assert result.data["success"] is True
    staged = (await actions.list_pending(USER))[0]
    assert staged.id == result.data["pendingActionId"]
    assert staged.summary == 'Schedule "Intro call" with dana@acme.com'
    start = datetime.fromisoformat(staged.details.calendar_event.start_time)
    assert start.astimezone(NY).time() == time(9)
