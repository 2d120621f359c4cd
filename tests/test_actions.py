"""Tests for the pending action manager and store."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import TypeAdapter

from aiva.actions.manager import ACTION_NOT_FOUND, ALREADY_PROCESSED, PendingActionManager
from aiva.actions.models import (
    ActionDetails,
    ActionStatus,
    CreateCalendarEventDetails,
    CreateTaskDetails,
    EventDraft,
    PendingActionType,
    SendSchedulingEmailDetails,
    TaskDraft,
    TimeboxTaskDetails,
)
from aiva.actions.store import PendingActionStore
from aiva.workspace.store import WorkspaceStore

pytestmark = pytest.mark.usefixtures("_no_turso")

USER = "user-1"


@pytest.fixture
def manager(actions: PendingActionStore, workspace: WorkspaceStore) -> PendingActionManager:
    return PendingActionManager(actions=actions, workspace=workspace)


def _event(title: str = "Coffee") -> EventDraft:
    return EventDraft(
        title=title,
        start_time="2026-03-02T15:00:00+00:00",
        end_time="2026-03-02T15:30:00+00:00",
        attendees=["dana@acme.com"],
    )


async def _stage(manager: PendingActionManager, details=None, **kwargs):
    return await manager.create_pending_action(
        USER,
        details or CreateCalendarEventDetails(calendar_event=_event(), thread_id="t1"),
        summary=kwargs.get("summary", 'Schedule "Coffee"'),
        audit_reason="Meeting requested in conversation",
        source_thread_id=kwargs.get("source_thread_id"),
    )


# -- Details union -----------------------------------------------------------


def test_details_discriminate_on_type() -> None:
    adapter = TypeAdapter(ActionDetails)
    details = adapter.validate_python(
        {"type": "create_task", "task": {"title": "Send invoice"}}
    )
    assert isinstance(details, CreateTaskDetails)

    with pytest.raises(ValueError):
        adapter.validate_python({"type": "wire_money", "amount": 10})


# -- Create / list -----------------------------------------------------------


async def test_created_action_is_pending_and_listed(manager, actions) -> None:
    action = await _stage(manager)

    assert action.status == ActionStatus.PENDING
    listed = await actions.list_pending(USER)
    assert [a.id for a in listed] == [action.id]
    assert isinstance(listed[0].details, CreateCalendarEventDetails)
    assert listed[0].details.calendar_event.attendees == ["dana@acme.com"]
    assert await actions.list_pending("someone-else") == []


# -- Execute -----------------------------------------------------------------


async def test_execute_creates_event_and_logs(manager, actions, workspace) -> None:
    action = await _stage(manager)

    result = await manager.execute_pending_action(USER, action.id)

    assert result.success
    events = await workspace.list_events(USER)
    assert events[0]["title"] == "Coffee"
    assert events[0]["created_by"] == "aiva"
    assert events[0]["description"] == "Scheduled by AIVA | Thread: t1"
    stored = await actions.get_for_user(USER, action.id)
    assert stored.status == ActionStatus.APPROVED
    assert stored.executed_at is not None
    logs = await actions.list_logs(USER)
    assert logs[0]["action_type"] == "create_calendar_event"


async def test_second_execute_is_already_processed(manager, workspace) -> None:
    action = await _stage(manager)

    first = await manager.execute_pending_action(USER, action.id)
    second = await manager.execute_pending_action(USER, action.id)

    assert first.success
    assert not second.success
    assert second.error == ALREADY_PROCESSED
    assert len(await workspace.list_events(USER)) == 1


async def test_concurrent_approvals_apply_once(manager, workspace) -> None:
    action = await _stage(manager)

    results = await asyncio.gather(
        manager.execute_pending_action(USER, action.id),
        manager.execute_pending_action(USER, action.id),
    )

    assert sorted(r.success for r in results) == [False, True]
    assert len(await workspace.list_events(USER)) == 1


async def test_unknown_or_foreign_action_not_found(manager) -> None:
    action = await _stage(manager)
    assert (await manager.execute_pending_action(USER, "missing")).error == ACTION_NOT_FOUND
    assert (await manager.execute_pending_action("intruder", action.id)).error == ACTION_NOT_FOUND


async def test_failed_effect_leaves_action_pending(manager, actions, workspace) -> None:
    action = await _stage(manager)

    with patch.object(workspace, "add_event", AsyncMock(side_effect=RuntimeError("calendar down"))):
        result = await manager.execute_pending_action(USER, action.id)

    assert not result.success
    assert result.error == "calendar down"
    assert (await actions.get_for_user(USER, action.id)).status == ActionStatus.PENDING
    assert await actions.list_logs(USER) == []

    retry = await manager.execute_pending_action(USER, action.id)
    assert retry.success


async def test_audit_log_failure_does_not_undo_success(manager, actions) -> None:
    action = await _stage(manager)
    with patch.object(actions, "add_log", AsyncMock(side_effect=RuntimeError("log down"))):
        result = await manager.execute_pending_action(USER, action.id)
    assert result.success


async def test_execute_timebox_links_task_and_focus_block(manager, workspace) -> None:
    details = TimeboxTaskDetails(
        task=TaskDraft(title="Write report", deadline="2026-03-05", source_thread_id="t9"),
        calendar_event=_event("Focus: Write report"),
        thread_id="t9",
    )
    action = await _stage(manager, details)

    assert (await manager.execute_pending_action(USER, action.id)).success

    tasks = await workspace.list_tasks(USER)
    events = await workspace.list_events(USER)
    assert tasks[0]["title"] == "Write report"
    assert tasks[0]["due_date"] == "2026-03-05"
    assert events[0]["task_id"] == tasks[0]["id"]
    assert events[0]["color"] == "blue"
    assert events[0]["title"] == "Focus: Write report"


async def test_execute_scheduling_email_creates_draft(manager, workspace) -> None:
    thread_id = await workspace.add_thread(
        USER, subject="Intro", last_message_at="2026-03-01T12:00:00+00:00"
    )
    details = SendSchedulingEmailDetails(thread_id=thread_id, draft_text="Does Monday work?")
    action = await _stage(manager, details)

    assert (await manager.execute_pending_action(USER, action.id)).success

    drafts = await workspace.list_drafts(thread_id)
    assert drafts[0]["content"] == "Does Monday work?"
    assert drafts[0]["confidence_score"] == 0.9
    assert drafts[0]["created_by"] == "aiva_nexus"


async def test_execute_create_task(manager, workspace) -> None:
    details = CreateTaskDetails(task=TaskDraft(title="Send invoice", priority="high"))
    action = await _stage(manager, details)
    assert action.type == PendingActionType.CREATE_TASK

    assert (await manager.execute_pending_action(USER, action.id)).success
    tasks = await workspace.list_tasks(USER)
    assert tasks[0]["priority"] == "high"


# -- Reject ------------------------------------------------------------------


async def test_reject_then_execute(manager, actions, workspace) -> None:
    action = await _stage(manager)

    assert (await manager.reject(USER, action.id)).success
    assert (await actions.get_for_user(USER, action.id)).status == ActionStatus.REJECTED
    assert (await manager.reject(USER, action.id)).error == ALREADY_PROCESSED

    result = await manager.execute_pending_action(USER, action.id)
    assert result.error == ALREADY_PROCESSED
    assert await workspace.list_events(USER) == []
    assert await actions.list_pending(USER) == []


async def test_scheduling_email_for_foreign_thread_stays_pending(manager, workspace) -> None:
    thread_id = await workspace.add_thread(
        "someone-else", subject="Private", last_message_at="2026-03-01T12:00:00+00:00"
    )
    details = SendSchedulingEmailDetails(thread_id=thread_id, draft_text="Injected")
    action = await _stage(manager, details)

    result = await manager.execute_pending_action(USER, action.id)

    assert not result.success
    assert await workspace.list_drafts(thread_id) == []
    assert (await manager.list_pending(USER))[0].id == action.id
