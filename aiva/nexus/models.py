"""Data models for the scheduling, classification and briefing engine.

All models accept snake_case or camelCase input and serialise to camelCase
with ``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from datetime import datetime, time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- Scheduling ----------------------------------------------------------------


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":", 1)
    return time(int(hours), int(minutes))


class SchedulingRules(CamelModel):
    """Resolved scheduling rules. Immutable; re-resolved per request.

    ``no_meeting_days`` uses 0 = Sunday ... 6 = Saturday.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    buffer_minutes: int = Field(default=15, ge=0)
    working_hours_start: str = "09:00"
    working_hours_end: str = "17:00"
    no_meeting_days: tuple[int, ...] = ()
    default_meeting_duration: int = Field(default=30, gt=0)
    timezone: str = "America/New_York"
    default_video_link: str | None = None

    @field_validator("working_hours_start", "working_hours_end")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        _parse_hhmm(value)
        return value

    @field_validator("no_meeting_days")
    @classmethod
    def _check_weekdays(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if any(day < 0 or day > 6 for day in value):
            msg = "noMeetingDays entries must be weekday indices 0-6"
            raise ValueError(msg)
        return value

    @property
    def start_time(self) -> time:
        return _parse_hhmm(self.working_hours_start)

    @property
    def end_time(self) -> time:
        return _parse_hhmm(self.working_hours_end)

    @property
    def workday_hours(self) -> float:
        """Length of the configured working-hour window, in hours."""
        start, end = self.start_time, self.end_time
        minutes = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
        return max(0, minutes) / 60


class FreeBusySlot(CamelModel):
    start: datetime
    end: datetime
    is_busy: bool
    event_title: str | None = None

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60


class ProposedSlot(CamelModel):
    start: datetime
    end: datetime


# -- Classification ------------------------------------------------------------


class EmailIntent(StrEnum):
    MEETING_REQUEST = "meeting_request"
    TASK_ACTION = "task_action"
    NEWSLETTER = "newsletter"
    GENERAL_INQUIRY = "general_inquiry"
    SCHEDULING_CONFIRMATION = "scheduling_confirmation"
    RESCHEDULE_REQUEST = "reschedule_request"


class SuggestedActionType(StrEnum):
    SEND_SCHEDULING_EMAIL = "send_scheduling_email"
    CREATE_CALENDAR_EVENT = "create_calendar_event"
    TIMEBOX_TASK = "timebox_task"
    AUTO_REPLY = "auto_reply"


class Participant(CamelModel):
    name: str = ""
    email: str = ""


class MeetingEntities(CamelModel):
    participants: list[Participant] = Field(default_factory=list)
    suggested_timeframe: str | None = None
    duration: int | None = None
    format: str | None = None
    location: str | None = None
    subject: str | None = None


class TaskEntities(CamelModel):
    title: str = ""
    deadline: str | None = None
    estimated_minutes: int | None = None


class SuggestedAction(CamelModel):
    type: SuggestedActionType
    label: str = ""
    description: str = ""


class EmailClassification(CamelModel):
    intent: EmailIntent
    confidence: float = Field(ge=0.0, le=1.0)
    meeting_entities: MeetingEntities | None = None
    task_entities: TaskEntities | None = None
    suggested_actions: list[SuggestedAction] = Field(default_factory=list)


# -- Briefing ------------------------------------------------------------------


class MeetingPrep(CamelModel):
    event_title: str
    start_time: str
    attendees: list[str] = Field(default_factory=list)
    related_thread_ids: list[str] = Field(default_factory=list)
    context_summary: str


class TriageAction(CamelModel):
    thread_id: str
    action: str = "flag_urgent"
    reason: str


class FocusBlock(CamelModel):
    event_id: str
    title: str
    start_time: str
    end_time: str
    task_id: str


class CalendarDensity(CamelModel):
    total_meetings: int
    total_hours: float
    free_hours: float


class InboxSummary(CamelModel):
    unread: int
    urgent: int
    needs_reply: int
    auto_handled: int


class DailyBriefing(CamelModel):
    date: str
    meeting_preps: list[MeetingPrep] = Field(default_factory=list)
    triage_actions: list[TriageAction] = Field(default_factory=list)
    focus_blocks: list[FocusBlock] = Field(default_factory=list)
    calendar_density: CalendarDensity
    inbox_summary: InboxSummary


def dump(model: BaseModel) -> dict[str, Any]:
    """JSON-ready camelCase dict for tool and HTTP payloads."""
    return model.model_dump(mode="json", by_alias=True)
