"""Conversation orchestrator: the bounded tool-calling loop.

One user turn: persist the query, load recent history, then alternate model
calls and tool calls until the model answers or the iteration ceiling is
reached. Tool calls within a turn run one at a time, in the order given.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from aiva.assistant.models import (
    FALLBACK_ANSWER,
    AssistantAnswer,
    OrchestrateRequest,
    OrchestrateResponse,
)
from aiva.assistant.sessions import SessionStore
from aiva.config import settings
from aiva.context import RequestContext, resolve_user_id
from aiva.llm.client import call_model, complete_text
from aiva.llm.messages import ChatMessage
from aiva.llm.parsing import parse_json_object
from aiva.llm.prompt import build_system_prompt
from aiva.tools import registry

if TYPE_CHECKING:
    from aiva.config import Settings
    from aiva.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

_TITLE_PROMPT = (
    "Write a short title (at most 6 words) for a conversation that starts with the "
    "message below. Reply with the title only, no quotes.\n\nMessage: {query}"
)
_MAX_TITLE_CHARS = 80


def parse_answer(text: str) -> AssistantAnswer:
    """Read the model's final text as the answer shape.

    Anything that is not a valid answer object becomes the text summary.
    """
    data = parse_json_object(text)
    if data is not None:
        try:
            return AssistantAnswer.model_validate(data)
        except ValidationError:
            logger.debug("Final answer JSON did not match the answer shape")
    return AssistantAnswer(text_summary=text)


class Orchestrator:
    """Runs one user turn against the model and the tool catalog."""

    def __init__(
        self,
        sessions: SessionStore | None = None,
        tools: ToolRegistry | None = None,
        config: Settings | None = None,
    ) -> None:
        self._sessions = sessions or SessionStore.get()
        self._tools = tools or registry
        self._config = config or settings

    async def orchestrate(
        self, request: OrchestrateRequest, context: RequestContext
    ) -> OrchestrateResponse:
        """Answer *request* for the caller in *context*.

        Raises ``SessionNotFoundError`` for a session the caller does not own.
        Model errors propagate.
        """
        user_id = resolve_user_id(context)
        if user_id is None:
            raise PermissionError("Not authenticated")

        is_new = request.session_id is None
        if is_new:
            session_id = await self._sessions.create_session(user_id)
        else:
            session_id = request.session_id
            await self._sessions.require_session(user_id, session_id)

        turn_context = RequestContext(
            user_id=user_id,
            timezone=request.timezone or context.timezone,
            session_id=session_id,
            workspace_id=context.workspace_id,
            metadata=dict(context.metadata),
        )

        await self._sessions.append(session_id, ChatMessage.user(request.query))
        history = await self._sessions.load_history(
            session_id, self._config.conversation_history_limit
        )
        messages = [ChatMessage.system(build_system_prompt(turn_context.timezone)), *history]
        schemas = self._tools.get_schemas()
        tools_used: list[str] = []

        for iteration in range(self._config.max_orchestration_iterations):
            response = await call_model(messages, tools=schemas, temperature=0.3, max_tokens=2048)
            if not response.tool_calls:
                final_text = response.content or ""
                break

            logger.info(
                "Session %s iteration %d: %d tool call(s)",
                session_id, iteration + 1, len(response.tool_calls),
            )
            assistant_message = ChatMessage.assistant(response.content, response.tool_calls)
            messages.append(assistant_message)

            results: list[ChatMessage] = []
            for call in response.tool_calls:
                tools_used.append(call.name)
                output = await self._tools.dispatch(
                    call.name, call.parse_arguments(), turn_context
                )
                result = ChatMessage.tool_result(call.id, call.name, output)
                messages.append(result)
                results.append(result)

            await self._sessions.append_tool_exchange(session_id, assistant_message, results)
        else:
            logger.warning(
                "Session %s hit the %d-iteration ceiling without an answer",
                session_id, self._config.max_orchestration_iterations,
            )
            final_text = FALLBACK_ANSWER

        answer = parse_answer(final_text)
        await self._sessions.append(session_id, ChatMessage.assistant(final_text))

        if is_new:
            await self._generate_title(session_id, request.query)

        return OrchestrateResponse(
            text_summary=answer.text_summary,
            widgets=answer.widgets,
            citations=answer.citations,
            session_id=session_id,
            tools_used=tools_used,
        )

    async def _generate_title(self, session_id: str, query: str) -> None:
        """Best-effort title for a new session. Failures are logged only."""
        try:
            title = await complete_text(
                _TITLE_PROMPT.format(query=query[:500]), temperature=0.3, max_tokens=30
            )
            title = title.strip().strip("\"'").strip()
            if title:
                await self._sessions.set_title(session_id, title[:_MAX_TITLE_CHARS])
        except Exception:
            logger.exception("Title generation failed for session %s (non-fatal)", session_id)
