"""Calendar tools: read events and propose new ones."""

from __future__ import annotations

import logging
from datetime import timedelta, tzinfo
from typing import TYPE_CHECKING

from pydantic import Field

from aiva.actions.manager import PendingActionManager
from aiva.actions.models import CreateCalendarEventDetails, EventDraft
from aiva.context import resolve_user_id
from aiva.llm.prompt import resolve_timezone
from aiva.timeutil import local_midnight, parse_date, parse_datetime, to_utc_iso
from aiva.tools.base import NOT_AUTHENTICATED, ToolName, ToolParams, ToolResult
from aiva.tools.registry import registry
from aiva.workspace.store import WorkspaceStore

if TYPE_CHECKING:
    from aiva.context import RequestContext

logger = logging.getLogger(__name__)

_CATEGORY = "calendar"
_MAX_EVENTS = 50


def _range_bound(value: str, tz: tzinfo, *, end: bool) -> str:
    """Turn a date or datetime argument into a UTC bound.

    A bare date as the end of a range covers that whole day.
    """
    if len(value) == 10:
        day = parse_date(value) + (timedelta(days=1) if end else timedelta())
        return to_utc_iso(local_midnight(day, tz))
    return to_utc_iso(parse_datetime(value, tz))


# -- get_calendar_events -------------------------------------------------------


class GetCalendarEventsParams(ToolParams):
    date_from: str = Field(description="ISO date or datetime for the start of the range")
    date_to: str = Field(description="ISO date or datetime for the end of the range")


@registry.tool(
    name=ToolName.GET_CALENDAR_EVENTS,
    description="Fetch the user's calendar events in a date range.",
    category=_CATEGORY,
    params_model=GetCalendarEventsParams,
)
async def get_calendar_events(
    date_from: str,
    date_to: str,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    tz = resolve_timezone(context.timezone if context else None)
    try:
        start = _range_bound(date_from, tz, end=False)
        end = _range_bound(date_to, tz, end=True)
    except ValueError:
        return ToolResult(error="date_from and date_to must be ISO dates or datetimes")

    events = await WorkspaceStore.get().list_events(
        user_id, start_from=start, end_by=end, limit=_MAX_EVENTS
    )
    formatted = [
        {
            "id": e["id"],
            "title": e["title"],
            "startTime": e["start_time"],
            "endTime": e["end_time"],
            "location": e["location"],
            "attendees": e["attendees"],
            "color": e["color"],
            "taskId": e["task_id"],
        }
        for e in events
    ]
    return ToolResult(data={"events": formatted, "count": len(formatted)})


# -- create_calendar_event -----------------------------------------------------


class CreateCalendarEventParams(ToolParams):
    title: str = Field(description="Event title")
    start_time: str = Field(description="ISO 8601 start datetime")
    end_time: str = Field(description="ISO 8601 end datetime")
    attendees: list[str] = Field(default_factory=list, description="Attendee email addresses")
    location: str | None = Field(default=None, description="Optional location")
    conference_url: str | None = Field(default=None, description="Optional video link")
    thread_id: str | None = Field(default=None, description="Thread this event came from")


@registry.tool(
    name=ToolName.CREATE_CALENDAR_EVENT,
    description=(
        "Propose a calendar event at an exact time. The event is staged for approval, "
        "not created immediately. Use schedule_meeting when no time is fixed yet."
    ),
    category=_CATEGORY,
    params_model=CreateCalendarEventParams,
)
async def create_calendar_event(
    title: str,
    start_time: str,
    end_time: str,
    attendees: list[str] | None = None,
    location: str | None = None,
    conference_url: str | None = None,
    thread_id: str | None = None,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    tz = resolve_timezone(context.timezone if context else None)
    try:
        start = parse_datetime(start_time, tz)
        end = parse_datetime(end_time, tz)
    except ValueError:
        return ToolResult(error="start_time and end_time must be ISO datetimes")
    if end <= start:
        return ToolResult(error="end_time must be after start_time")

    details = CreateCalendarEventDetails(
        calendar_event=EventDraft(
            title=title,
            start_time=to_utc_iso(start),
            end_time=to_utc_iso(end),
            attendees=attendees or [],
            location=location,
            conference_url=conference_url,
        ),
        thread_id=thread_id,
    )
    action = await PendingActionManager().create_pending_action(
        user_id,
        details,
        summary=f'Add "{title}" to the calendar',
        audit_reason="Calendar event requested in conversation",
        source_thread_id=thread_id,
    )
    return ToolResult(
        data={
            "pendingActionId": action.id,
            "status": str(action.status),
            "message": f'"{title}" is staged and awaiting approval.',
        }
    )
