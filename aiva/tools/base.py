"""Base types for the tool-calling framework."""

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class ToolName(StrEnum):
    """The closed catalog of tools the model may call."""

    SEARCH_INBOX = "search_inbox"
    GET_THREAD_DETAIL = "get_thread_detail"
    GET_SHOPIFY_ORDERS = "get_shopify_orders"
    GET_CONTACT_INFO = "get_contact_info"
    LIST_TASKS = "list_tasks"
    CREATE_TASK = "create_task"
    GET_CALENDAR_EVENTS = "get_calendar_events"
    CLASSIFY_EMAIL_INTENT = "classify_email_intent"
    FIND_AVAILABLE_TIMES = "find_available_times"
    SCHEDULE_MEETING = "schedule_meeting"
    TIMEBOX_EMAIL_TASK = "timebox_email_task"
    CREATE_CALENDAR_EVENT = "create_calendar_event"
    GET_DAILY_BRIEFING = "get_daily_briefing"


NOT_AUTHENTICATED = "Not authenticated"


@dataclass
class ToolResult:
    """Result of a tool execution.

    Every tool returns one of these. The executor serializes it into the
    single string the orchestration loop feeds back to the model.
    """

    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_content(self) -> str:
        """Serialize for the tool-result message content."""
        if self.error:
            return json.dumps({"error": self.error})
        return json.dumps(self.data or {}, default=str)


class ToolParams(BaseModel):
    """Base class for tool parameter models.

    Subclass with Field() definitions. The JSON schema is auto-generated
    via model_json_schema() for the model-facing tool catalog.
    """
