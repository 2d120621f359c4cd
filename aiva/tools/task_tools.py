"""Task tools: list tasks and propose new ones."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import Field

from aiva.actions.manager import PendingActionManager
from aiva.actions.models import CreateTaskDetails, TaskDraft
from aiva.context import resolve_user_id
from aiva.tools.base import NOT_AUTHENTICATED, ToolName, ToolParams, ToolResult
from aiva.tools.registry import registry
from aiva.workspace.store import WorkspaceStore

if TYPE_CHECKING:
    from aiva.context import RequestContext

logger = logging.getLogger(__name__)

_CATEGORY = "tasks"


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# -- list_tasks ----------------------------------------------------------------


class ListTasksParams(ToolParams):
    status: TaskStatus | None = Field(default=None, description="Filter by task status")
    priority: TaskPriority | None = Field(default=None, description="Filter by priority")


@registry.tool(
    name=ToolName.LIST_TASKS,
    description="List the user's tasks, optionally filtered by status or priority.",
    category=_CATEGORY,
    params_model=ListTasksParams,
)
async def list_tasks(
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    tasks = await WorkspaceStore.get().list_tasks(
        user_id,
        status=str(status) if status else None,
        priority=str(priority) if priority else None,
    )
    return ToolResult(data={"tasks": tasks, "count": len(tasks)})


# -- create_task ---------------------------------------------------------------


class CreateTaskParams(ToolParams):
    title: str = Field(description="The task title")
    description: str | None = Field(default=None, description="Optional task description")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    due_date: str | None = Field(default=None, description="ISO date of the deadline")


@registry.tool(
    name=ToolName.CREATE_TASK,
    description=(
        "Propose a new task for the user. The task is staged for approval, not "
        "created immediately; tell the user it is awaiting their approval."
    ),
    category=_CATEGORY,
    params_model=CreateTaskParams,
)
async def create_task(
    title: str,
    description: str | None = None,
    priority: TaskPriority = TaskPriority.MEDIUM,
    due_date: str | None = None,
    context: RequestContext | None = None,
) -> ToolResult:
    user_id = resolve_user_id(context)
    if user_id is None:
        return ToolResult(error=NOT_AUTHENTICATED)

    details = CreateTaskDetails(
        task=TaskDraft(
            title=title,
            description=description,
            priority=str(priority),
            deadline=due_date,
        )
    )
    action = await PendingActionManager().create_pending_action(
        user_id,
        details,
        summary=f'Create task "{title}"',
        audit_reason="Task requested in conversation",
    )
    return ToolResult(
        data={
            "pendingActionId": action.id,
            "status": str(action.status),
            "message": f'Task "{title}" is staged and awaiting approval.',
        }
    )
