"""Canonical conversation message schema and its persistence adapter.

In memory, every tool result is its own ``ChatMessage``. On disk, the
assistant's tool-call message is one row and the batch of tool results it
produced is a second row (role ``tool``) holding a JSON list. The two
functions at the bottom of this module are the only place that reshaping
happens.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant", "tool"]


class ToolCall(BaseModel):
    """A tool invocation requested by the model.

    ``arguments`` stays a raw JSON string until a handler needs it.
    """

    id: str
    name: str
    arguments: str = "{}"

    def parse_arguments(self) -> dict[str, Any]:
        """Decode the argument payload, defaulting to ``{}`` when malformed."""
        try:
            parsed = json.loads(self.arguments or "{}")
        except json.JSONDecodeError:
            logger.warning("Malformed arguments for tool call %s (%s)", self.id, self.name)
            return {}
        if not isinstance(parsed, dict):
            logger.warning("Non-object arguments for tool call %s (%s)", self.id, self.name)
            return {}
        return parsed


class ChatMessage(BaseModel):
    """A single conversation message in its canonical in-memory form."""

    role: Role
    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls, content: str | None, tool_calls: list[ToolCall] | None = None
    ) -> ChatMessage:
        return cls(role="assistant", content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool_result(cls, tool_call_id: str, name: str, content: str) -> ChatMessage:
        return cls(role="tool", content=content, tool_call_id=tool_call_id, name=name)


# -- Persistence adapter -------------------------------------------------------


def to_row_fields(
    message: ChatMessage, tool_results: list[ChatMessage] | None = None
) -> dict[str, Any]:
    """Serialize a message (or a batch of tool results) into row fields.

    Pass ``tool_results`` to build the single batched ``tool`` row; the
    ``message`` argument is then ignored apart from its role.
    """
    if tool_results is not None:
        batch = [
            {"tool_call_id": r.tool_call_id, "name": r.name, "content": r.content}
            for r in tool_results
        ]
        return {
            "role": "tool",
            "content": None,
            "tool_calls": None,
            "tool_results": json.dumps(batch),
        }

    tool_calls = (
        json.dumps([tc.model_dump() for tc in message.tool_calls])
        if message.tool_calls
        else None
    )
    return {
        "role": message.role,
        "content": message.content,
        "tool_calls": tool_calls,
        "tool_results": None,
    }


def from_rows(rows: list[dict[str, Any]]) -> list[ChatMessage]:
    """Rebuild canonical messages from persisted rows (oldest first).

    Batched tool rows expand into one message per result. Tool results at
    the head of the window, whose originating tool call fell outside it,
    are dropped, as is anything before the first user message.
    """
    messages: list[ChatMessage] = []
    for row in rows:
        role = row["role"]
        if role == "tool":
            for item in json.loads(row.get("tool_results") or "[]"):
                messages.append(
                    ChatMessage.tool_result(
                        tool_call_id=item.get("tool_call_id", ""),
                        name=item.get("name", ""),
                        content=item.get("content") or "",
                    )
                )
            continue

        tool_calls = [ToolCall(**tc) for tc in json.loads(row.get("tool_calls") or "[]")]
        messages.append(ChatMessage(role=role, content=row.get("content"), tool_calls=tool_calls))

    while messages and messages[0].role != "user":
        messages.pop(0)
    return messages
