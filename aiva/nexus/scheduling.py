"""Tool-level scheduling: meetings, time blocks and scheduling replies.

Each operation searches the free/busy timeline and stages a pending action.
Nothing is written to the calendar here.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import Field

from aiva.actions.manager import PendingActionManager
from aiva.actions.models import (
    CreateCalendarEventDetails,
    EventDraft,
    SendSchedulingEmailDetails,
    TaskDraft,
    TimeboxTaskDetails,
)
from aiva.config import settings
from aiva.llm.client import complete_text
from aiva.llm.prompt import resolve_timezone
from aiva.nexus.freebusy import find_available_slots, load_free_busy
from aiva.nexus.models import CamelModel, ProposedSlot, SchedulingRules
from aiva.nexus.rules import default_rules_from_settings, resolve_rules
from aiva.timeutil import parse_date, to_utc_iso
from aiva.tone.store import ToneStore
from aiva.workspace.store import WorkspaceStore

if TYPE_CHECKING:
    from aiva.config import Settings

logger = logging.getLogger(__name__)

MEETING_SEARCH_DAYS = 7
TIMEBOX_DEADLINE_DAYS = 3
DEFAULT_TIMEBOX_MINUTES = 60
OFFER_COUNT = 3


class SchedulingOutcome(CamelModel):
    """Structured result of a scheduling operation. Never an exception."""

    success: bool
    message: str
    pending_action_id: str | None = None
    chosen_slot: ProposedSlot | None = None
    proposed_slots: list[ProposedSlot] = Field(default_factory=list)
    draft_reply: str | None = None


def format_slot(slot: ProposedSlot, tz_name: str) -> str:
    """e.g. ``Monday, March 2 at 10:45 AM``."""
    start = slot.start.astimezone(resolve_timezone(tz_name))
    clock = start.strftime("%I:%M %p").lstrip("0")
    return f"{start.strftime('%A, %B')} {start.day} at {clock}"


def _event_draft(
    title: str,
    slot: ProposedSlot,
    *,
    attendees: list[str] | None = None,
    location: str | None = None,
    conference_url: str | None = None,
) -> EventDraft:
    return EventDraft(
        title=title,
        start_time=to_utc_iso(slot.start),
        end_time=to_utc_iso(slot.end),
        attendees=attendees or [],
        location=location,
        conference_url=conference_url,
    )


class SchedulingEngine:
    """Resolves rules, searches for time and stages the result for approval."""

    def __init__(
        self,
        workspace: WorkspaceStore | None = None,
        manager: PendingActionManager | None = None,
        tone: ToneStore | None = None,
        config: Settings | None = None,
    ) -> None:
        self._workspace = workspace or WorkspaceStore.get()
        self._manager = manager or PendingActionManager(workspace=self._workspace)
        self._tone = tone or ToneStore.get()
        self._config = config or settings

    async def rules_for(self, user_id: str, workspace_id: str, timezone: str | None) -> SchedulingRules:
        defaults = default_rules_from_settings(
            self._config, timezone=resolve_timezone(timezone).key
        )
        return await resolve_rules(self._workspace, user_id, workspace_id, defaults)

    def _window(
        self,
        rules: SchedulingRules,
        now: datetime,
        date_from: str | None,
        date_to: str | None,
        default_days: int,
    ) -> tuple[date, date]:
        """Search window ``[start, end)`` in local dates.

        An explicit *date_to* is inclusive; the default end is exclusive.
        """
        today = now.astimezone(resolve_timezone(rules.timezone)).date()
        start = parse_date(date_from) if date_from else today
        end = parse_date(date_to) + timedelta(days=1) if date_to else today + timedelta(days=default_days)
        return max(start, today), end

    async def find_available_times(
        self,
        user_id: str,
        rules: SchedulingRules,
        *,
        duration_minutes: int | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        count: int = OFFER_COUNT,
        now: datetime | None = None,
    ) -> list[ProposedSlot]:
        now = now or datetime.now(resolve_timezone(rules.timezone))
        start, end = self._window(rules, now, date_from, date_to, MEETING_SEARCH_DAYS)
        slots = await load_free_busy(self._workspace, user_id, start, end, rules)
        return find_available_slots(
            slots,
            duration_minutes or rules.default_meeting_duration,
            count=count,
            earliest=now,
        )

    async def schedule_meeting(
        self,
        user_id: str,
        rules: SchedulingRules,
        *,
        title: str,
        duration_minutes: int | None = None,
        attendees: list[str] | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        location: str | None = None,
        thread_id: str | None = None,
        now: datetime | None = None,
    ) -> SchedulingOutcome:
        """Stage a ``create_calendar_event`` action at the earliest free slot."""
        attendees = attendees or []
        offers = await self.find_available_times(
            user_id,
            rules,
            duration_minutes=duration_minutes,
            date_from=date_from,
            date_to=date_to,
            now=now,
        )
        if not offers:
            return SchedulingOutcome(
                success=False,
                message="No available time slots found in the requested range. "
                "Try a wider date range.",
            )

        chosen = offers[0]
        details = CreateCalendarEventDetails(
            calendar_event=_event_draft(
                title,
                chosen,
                attendees=attendees,
                location=location,
                conference_url=rules.default_video_link,
            ),
            proposed_slots=offers,
            thread_id=thread_id,
        )
        summary = f'Schedule "{title}"' + (f" with {', '.join(attendees)}" if attendees else "")
        action = await self._manager.create_pending_action(
            user_id,
            details,
            summary=summary,
            audit_reason=await self._audit_reason("Meeting requested", user_id, thread_id),
            source_thread_id=thread_id,
        )
        return SchedulingOutcome(
            success=True,
            message=f"Proposed {format_slot(chosen, rules.timezone)}. Awaiting approval.",
            pending_action_id=action.id,
            chosen_slot=chosen,
            proposed_slots=offers,
        )

    async def timebox_task(
        self,
        user_id: str,
        rules: SchedulingRules,
        *,
        task_title: str,
        thread_id: str | None = None,
        estimated_minutes: int | None = None,
        deadline: str | None = None,
        now: datetime | None = None,
    ) -> SchedulingOutcome:
        """Stage a task plus a linked focus block before *deadline*."""
        minutes = estimated_minutes or DEFAULT_TIMEBOX_MINUTES
        now = now or datetime.now(resolve_timezone(rules.timezone))
        today = now.astimezone(resolve_timezone(rules.timezone)).date()
        deadline_date = parse_date(deadline) if deadline else today + timedelta(days=TIMEBOX_DEADLINE_DAYS)

        slots = await load_free_busy(self._workspace, user_id, today, deadline_date, rules)
        offers = find_available_slots(slots, minutes, count=1, earliest=now)
        if not offers:
            return SchedulingOutcome(
                success=False,
                message=f"No {minutes}-minute block available before {deadline_date.isoformat()}.",
            )

        slot = offers[0]
        details = TimeboxTaskDetails(
            task=TaskDraft(
                title=task_title,
                deadline=deadline_date.isoformat(),
                estimated_minutes=minutes,
                source_thread_id=thread_id,
            ),
            calendar_event=_event_draft(f"Focus: {task_title}", slot),
            thread_id=thread_id,
        )
        action = await self._manager.create_pending_action(
            user_id,
            details,
            summary=f'Time-block "{task_title}" ({minutes}min)',
            audit_reason="Task extracted from email and time-blocked for focus work",
            source_thread_id=thread_id,
        )
        return SchedulingOutcome(
            success=True,
            message=f"Proposed a {minutes}-minute focus block {format_slot(slot, rules.timezone)}.",
            pending_action_id=action.id,
            chosen_slot=slot,
            proposed_slots=offers,
        )

    async def propose_scheduling_reply(
        self,
        user_id: str,
        rules: SchedulingRules,
        *,
        thread_id: str,
        title: str,
        user_name: str = "",
        duration_minutes: int | None = None,
        attendees: list[str] | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        meeting_format: str | None = None,
        location: str | None = None,
        now: datetime | None = None,
    ) -> SchedulingOutcome:
        """Draft a reply offering up to three times and stage it for sending."""
        thread = await self._workspace.get_thread(user_id, thread_id)
        if thread is None:
            return SchedulingOutcome(success=False, message="Thread not found")

        attendees = attendees or []
        offers = await self.find_available_times(
            user_id,
            rules,
            duration_minutes=duration_minutes,
            date_from=date_from,
            date_to=date_to,
            now=now,
        )
        if not offers:
            return SchedulingOutcome(
                success=False,
                message="No available time slots found in the requested range.",
            )

        slots_text = "\n".join(
            f"{i}. {format_slot(slot, rules.timezone)}" for i, slot in enumerate(offers, start=1)
        )
        calibrated = await self._tone.get_profile(user_id) is not None
        prompt_lines = [
            f"Draft a polite scheduling reply for {user_name or 'the user'}. "
            f"The user wants to meet with {', '.join(attendees) or 'the sender'} about \"{title}\".",
            "",
            "Available times:",
            slots_text,
            "",
            f"Format: {meeting_format or 'video call'}",
        ]
        if location:
            prompt_lines.append(f"Location: {location}")
        if rules.default_video_link:
            prompt_lines.append(f"Include video link: {rules.default_video_link}")
        prompt_lines.append(
            "Write only the email body, no subject line. Be warm but concise. "
            f"Match the user's {'calibrated' if calibrated else 'professional'} tone."
        )

        draft = await complete_text("\n".join(prompt_lines), temperature=0.5, max_tokens=500)
        if not draft.strip():
            draft = (
                f"Hi,\n\nI'd love to set up a meeting about \"{title}\". "
                f"Would any of these times work?\n\n{slots_text}\n\nLooking forward to it!"
            )

        details = SendSchedulingEmailDetails(
            thread_id=thread_id,
            draft_text=draft,
            calendar_event=_event_draft(
                title,
                offers[0],
                attendees=attendees,
                location=location,
                conference_url=rules.default_video_link,
            ),
            proposed_slots=offers,
        )
        summary = f'Schedule "{title}"' + (f" with {', '.join(attendees)}" if attendees else "")
        action = await self._manager.create_pending_action(
            user_id,
            details,
            summary=summary,
            audit_reason=await self._audit_reason("Meeting negotiation", user_id, thread_id),
            source_thread_id=thread_id,
        )
        return SchedulingOutcome(
            success=True,
            message="Drafted a scheduling reply. Awaiting approval.",
            pending_action_id=action.id,
            chosen_slot=offers[0],
            proposed_slots=offers,
            draft_reply=draft,
        )

    async def _audit_reason(self, prefix: str, user_id: str, thread_id: str | None) -> str:
        if not thread_id:
            return f"{prefix} in conversation"
        thread = await self._workspace.get_thread(user_id, thread_id)
        subject = (thread or {}).get("primary_subject") or thread_id
        return f"{prefix} from thread: {subject}"
