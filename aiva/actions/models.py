"""Pending action data model.

``details`` is a discriminated union keyed by ``type``; each variant holds
exactly what its executor needs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import Field, computed_field

from aiva.nexus.models import CamelModel, ProposedSlot


class PendingActionType(StrEnum):
    CREATE_CALENDAR_EVENT = "create_calendar_event"
    TIMEBOX_TASK = "timebox_task"
    SEND_SCHEDULING_EMAIL = "send_scheduling_email"
    CREATE_TASK = "create_task"


class ActionStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EventDraft(CamelModel):
    """A calendar event that has not been written yet. Times are ISO strings."""

    title: str
    start_time: str
    end_time: str
    attendees: list[str] = Field(default_factory=list)
    location: str | None = None
    conference_url: str | None = None


class TaskDraft(CamelModel):
    title: str
    description: str | None = None
    priority: str = "medium"
    deadline: str | None = None
    estimated_minutes: int | None = None
    source_thread_id: str | None = None


class CreateCalendarEventDetails(CamelModel):
    type: Literal["create_calendar_event"] = PendingActionType.CREATE_CALENDAR_EVENT
    calendar_event: EventDraft
    proposed_slots: list[ProposedSlot] = Field(default_factory=list)
    thread_id: str | None = None


class TimeboxTaskDetails(CamelModel):
    type: Literal["timebox_task"] = PendingActionType.TIMEBOX_TASK
    task: TaskDraft
    calendar_event: EventDraft
    thread_id: str | None = None


class SendSchedulingEmailDetails(CamelModel):
    type: Literal["send_scheduling_email"] = PendingActionType.SEND_SCHEDULING_EMAIL
    thread_id: str
    draft_text: str
    calendar_event: EventDraft | None = None
    proposed_slots: list[ProposedSlot] = Field(default_factory=list)


class CreateTaskDetails(CamelModel):
    type: Literal["create_task"] = PendingActionType.CREATE_TASK
    task: TaskDraft


ActionDetails = Annotated[
    CreateCalendarEventDetails | TimeboxTaskDetails | SendSchedulingEmailDetails | CreateTaskDetails,
    Field(discriminator="type"),
]


class PendingAction(CamelModel):
    """A staged, human-approvable effect.

    Transitions only ``pending -> approved`` or ``pending -> rejected``.
    """

    id: str
    user_id: str
    status: ActionStatus = ActionStatus.PENDING
    summary: str
    details: ActionDetails
    source_thread_id: str | None = None
    audit_reason: str = ""
    created_at: str
    executed_at: str | None = None

    @computed_field
    @property
    def type(self) -> PendingActionType:
        return PendingActionType(self.details.type)

    @property
    def is_pending(self) -> bool:
        return self.status == ActionStatus.PENDING


@dataclass
class ExecutionResult:
    success: bool
    error: str | None = None
