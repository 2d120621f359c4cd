"""Nexus tools: classification, availability, scheduling and the briefing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import Field

from aiva.actions.store import PendingActionStore
from aiva.config import settings
from aiva.context import resolve_user_id
from aiva.nexus.briefing import generate_daily_briefing
from aiva.nexus.classifier import classify_email_intent as classify
from aiva.nexus.classifier import is_actionable
from aiva.nexus.models import dump
from aiva.nexus.scheduling import SchedulingEngine
from aiva.tools.base import NOT_AUTHENTICATED, ToolName, ToolParams, ToolResult
from aiva.tools.registry import registry
from aiva.workspace.store import WorkspaceStore

if TYPE_CHECKING:
    from aiva.context import RequestContext

logger = logging.getLogger(__name__)

_CATEGORY = "nexus"


# -- classify_email_intent -----------------------------------------------------


class ClassifyEmailIntentParams(ToolParams):
    thread_id: str | None = Field(
        default=None, description="Classify the latest message of this thread"
    )
    subject: str | None = Field(default=None, description="Subject, when no thread_id is given")
    body: str | None = Field(default=None, description="Body, when no thread_id is given")
    sender_email: str | None = Field(default=None, description="Sender address")


@registry.tool(
    name=ToolName.CLASSIFY_EMAIL_INTENT,
    description=(
        "Classify an email's intent (meeting request, task, newsletter, ...) and extract "
        "meeting or task details. Results with actionable=false must not be acted on."
    ),
    category=_CATEGORY,
    params_model=ClassifyEmailIntentParams,
)
async def classify_email_intent(
    thread_id: str | None = None,
    subject: str | None = None,
    body: str | None = None,
    sender_email: str | None = None,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    if thread_id:
        messages = await WorkspaceStore.get().get_thread_messages(
            user_id, thread_id, newest_first=True, limit=1
        )
        if not messages:
            return ToolResult(error="No messages found for that thread")
        latest = messages[0]
        subject = latest["subject"]
        body = latest["body"] or latest["snippet"]
        sender_email = latest["sender_email"]
    elif not body:
        return ToolResult(error="Provide a thread_id or the message body")

    result = await classify(subject or "", body or "", sender_email or "")
    actionable = is_actionable(result, settings.min_action_confidence)
    if not actionable:
        result = result.model_copy(update={"suggested_actions": []})

    data = dump(result)
    data["actionable"] = actionable
    return ToolResult(data=data)


# -- find_available_times ------------------------------------------------------


class FindAvailableTimesParams(ToolParams):
    duration_minutes: int | None = Field(
        default=None, gt=0, description="Meeting length; defaults to the user's preference"
    )
    date_from: str | None = Field(default=None, description="First ISO date to search")
    date_to: str | None = Field(default=None, description="Last ISO date to search (inclusive)")
    count: int = Field(default=3, ge=1, le=10, description="How many options to return")


@registry.tool(
    name=ToolName.FIND_AVAILABLE_TIMES,
    description=(
        "Find open times on the user's calendar that respect their working hours, "
        "buffers and no-meeting days. Defaults to the next 7 days."
    ),
    category=_CATEGORY,
    params_model=FindAvailableTimesParams,
)
async def find_available_times(
    duration_minutes: int | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    count: int = 3,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    engine = SchedulingEngine()
    rules = await engine.rules_for(user_id, context.workspace_id, context.timezone)
    offers = await engine.find_available_times(
        user_id,
        rules,
        duration_minutes=duration_minutes,
        date_from=date_from,
        date_to=date_to,
        count=count,
    )
    return ToolResult(
        data={
            "slots": [dump(s) for s in offers],
            "count": len(offers),
            "rules": {
                "buffer": rules.buffer_minutes,
                "workingHours": f"{rules.working_hours_start}-{rules.working_hours_end}",
                "timezone": rules.timezone,
            },
        }
    )


# -- schedule_meeting ----------------------------------------------------------


class ScheduleMeetingParams(ToolParams):
    title: str = Field(description="Meeting title")
    duration_minutes: int | None = Field(default=None, gt=0, description="Meeting length")
    attendee_emails: list[str] = Field(default_factory=list, description="Attendee emails")
    date_from: str | None = Field(default=None, description="First ISO date to search")
    date_to: str | None = Field(default=None, description="Last ISO date to search (inclusive)")
    location: str | None = Field(default=None, description="Optional location")
    thread_id: str | None = Field(default=None, description="Thread the request came from")


@registry.tool(
    name=ToolName.SCHEDULE_MEETING,
    description=(
        "Find the earliest open slot and stage a meeting for the user's approval. "
        "Returns the proposed time and alternatives."
    ),
    category=_CATEGORY,
    params_model=ScheduleMeetingParams,
)
async def schedule_meeting(
    title: str,
    duration_minutes: int | None = None,
    attendee_emails: list[str] | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    location: str | None = None,
    thread_id: str | None = None,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    engine = SchedulingEngine()
    rules = await engine.rules_for(user_id, context.workspace_id, context.timezone)
    outcome = await engine.schedule_meeting(
        user_id,
        rules,
        title=title,
        duration_minutes=duration_minutes,
        attendees=attendee_emails,
        date_from=date_from,
        date_to=date_to,
        location=location,
        thread_id=thread_id,
    )
    return ToolResult(data=dump(outcome))


# -- timebox_email_task --------------------------------------------------------


class TimeboxEmailTaskParams(ToolParams):
    task_title: str = Field(description="Title of the task to block time for")
    thread_id: str | None = Field(default=None, description="Thread the task came from")
    estimated_minutes: int | None = Field(default=None, gt=0, description="Defaults to 60")
    deadline: str | None = Field(
        default=None, description="ISO date to finish before; defaults to 3 days from now"
    )


@registry.tool(
    name=ToolName.TIMEBOX_EMAIL_TASK,
    description=(
        "Turn an email into a task and reserve one focus block for it before the "
        "deadline. Both are staged together for the user's approval."
    ),
    category=_CATEGORY,
    params_model=TimeboxEmailTaskParams,
)
async def timebox_email_task(
    task_title: str,
    thread_id: str | None = None,
    estimated_minutes: int | None = None,
    deadline: str | None = None,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    engine = SchedulingEngine()
    rules = await engine.rules_for(user_id, context.workspace_id, context.timezone)
    outcome = await engine.timebox_task(
        user_id,
        rules,
        task_title=task_title,
        thread_id=thread_id,
        estimated_minutes=estimated_minutes,
        deadline=deadline,
    )
    return ToolResult(data=dump(outcome))


# -- get_daily_briefing --------------------------------------------------------


@registry.tool(
    name=ToolName.GET_DAILY_BRIEFING,
    description=(
        "Today's briefing: meeting count and free hours, inbox stats, meeting prep "
        "notes and urgent unread threads."
    ),
    category=_CATEGORY,
)
async def get_daily_briefing(context: RequestContext | None = None) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    engine = SchedulingEngine()
    rules = await engine.rules_for(user_id, context.workspace_id, context.timezone)
    briefing = await generate_daily_briefing(
        user_id,
        context.timezone,
        rules=rules,
        workspace=WorkspaceStore.get(),
        actions=PendingActionStore.get(),
    )
    return ToolResult(data=dump(briefing))
