"""Pending action manager: the approval boundary for every autonomous effect.

Nothing the conversation loop proposes is applied directly. Tools stage a
``PendingAction``; only ``execute_pending_action`` applies it, once.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from aiva.actions.models import (
    ActionStatus,
    CreateCalendarEventDetails,
    CreateTaskDetails,
    ExecutionResult,
    PendingAction,
    SendSchedulingEmailDetails,
    TimeboxTaskDetails,
)
from aiva.actions.store import PendingActionStore
from aiva.timeutil import utc_now_iso
from aiva.workspace.store import WorkspaceStore

if TYPE_CHECKING:
    from aiva.actions.models import ActionDetails

logger = logging.getLogger(__name__)

ACTION_NOT_FOUND = "Action not found"
ALREADY_PROCESSED = "Action already processed"

ASSISTANT_CREATOR = "aiva"
DRAFT_CREATOR = "aiva_nexus"
SCHEDULING_DRAFT_CONFIDENCE = 0.9


class PendingActionManager:
    """Create, list, approve and reject staged actions for a user."""

    def __init__(
        self,
        actions: PendingActionStore | None = None,
        workspace: WorkspaceStore | None = None,
    ) -> None:
        self._actions = actions or PendingActionStore.get()
        self._workspace = workspace or WorkspaceStore.get()

    async def create_pending_action(
        self,
        user_id: str,
        details: ActionDetails,
        *,
        summary: str,
        audit_reason: str,
        source_thread_id: str | None = None,
    ) -> PendingAction:
        """Persist a new action with status ``pending``."""
        action = PendingAction(
            id=uuid.uuid4().hex,
            user_id=user_id,
            summary=summary,
            details=details,
            source_thread_id=source_thread_id,
            audit_reason=audit_reason,
            created_at=utc_now_iso(),
        )
        await self._actions.insert(action)
        logger.info("Staged %s action %s: %s", action.type, action.id, summary)
        return action

    async def list_pending(self, user_id: str, limit: int = 20) -> list[PendingAction]:
        return await self._actions.list_pending(user_id, limit=limit)

    async def reject(self, user_id: str, action_id: str) -> ExecutionResult:
        action = await self._actions.get_for_user(user_id, action_id)
        if action is None:
            return ExecutionResult(success=False, error=ACTION_NOT_FOUND)
        if not await self._actions.transition(user_id, action_id, ActionStatus.REJECTED):
            return ExecutionResult(success=False, error=ALREADY_PROCESSED)
        logger.info("Rejected action %s", action_id)
        return ExecutionResult(success=True)

    async def execute_pending_action(self, user_id: str, action_id: str) -> ExecutionResult:
        """Apply a pending action exactly once.

        The action is claimed with a conditional status update before its
        effect runs. A second call, concurrent or later, finds it already
        processed. If the effect raises, the claim is released and the
        action stays pending.
        """
        action = await self._actions.get_for_user(user_id, action_id)
        if action is None:
            return ExecutionResult(success=False, error=ACTION_NOT_FOUND)
        if not action.is_pending:
            return ExecutionResult(success=False, error=ALREADY_PROCESSED)

        if not await self._actions.transition(user_id, action_id, ActionStatus.APPROVED):
            return ExecutionResult(success=False, error=ALREADY_PROCESSED)

        try:
            await self._apply(user_id, action)
        except Exception as exc:
            logger.exception("Executing action %s failed; leaving it pending", action_id)
            await self._actions.release(user_id, action_id)
            return ExecutionResult(success=False, error=str(exc))

        try:
            await self._actions.add_log(
                user_id,
                str(action.type),
                action.summary,
                action.details.model_dump(mode="json", by_alias=True),
                source_thread_id=action.source_thread_id,
            )
        except Exception:
            logger.exception("Failed to write audit log for action %s", action_id)

        logger.info("Executed %s action %s", action.type, action_id)
        return ExecutionResult(success=True)

    # -- Effects ---------------------------------------------------------------

    async def _apply(self, user_id: str, action: PendingAction) -> None:
        details = action.details
        if isinstance(details, CreateCalendarEventDetails):
            event = details.calendar_event
            await self._workspace.add_event(
                user_id,
                event.title,
                event.start_time,
                event.end_time,
                location=event.location,
                description=f"Scheduled by AIVA | Thread: {details.thread_id or 'N/A'}",
                conference_url=event.conference_url,
                attendees=event.attendees,
                created_by=ASSISTANT_CREATOR,
                source_thread_id=action.source_thread_id,
            )
        elif isinstance(details, TimeboxTaskDetails):
            task = await self._workspace.add_task(
                user_id,
                details.task.title,
                description="From email thread",
                priority="medium",
                due_date=details.task.deadline,
                source_thread_id=details.task.source_thread_id,
            )
            await self._workspace.add_event(
                user_id,
                f"Focus: {details.task.title}",
                details.calendar_event.start_time,
                details.calendar_event.end_time,
                description=f"Time blocked by AIVA for task: {details.task.title}",
                color="blue",
                task_id=task["id"],
                created_by=ASSISTANT_CREATOR,
                source_thread_id=details.task.source_thread_id,
            )
        elif isinstance(details, SendSchedulingEmailDetails):
            await self._workspace.add_draft(
                user_id,
                details.thread_id,
                details.draft_text,
                confidence_score=SCHEDULING_DRAFT_CONFIDENCE,
                created_by=DRAFT_CREATOR,
            )
        elif isinstance(details, CreateTaskDetails):
            await self._workspace.add_task(
                user_id,
                details.task.title,
                description=details.task.description,
                priority=details.task.priority,
                due_date=details.task.deadline,
                source_thread_id=details.task.source_thread_id,
            )
