"""Pending actions: staging, approval and execution of autonomous effects."""

from aiva.actions.manager import PendingActionManager
from aiva.actions.models import ActionStatus, ExecutionResult, PendingAction, PendingActionType
from aiva.actions.store import PendingActionStore

__all__ = [
    "ActionStatus",
    "ExecutionResult",
    "PendingAction",
    "PendingActionManager",
    "PendingActionStore",
    "PendingActionType",
]
