"""Async language-model client.

Chat completion and streaming go through Anthropic; embeddings go through
OpenAI. Callers speak the canonical ``ChatMessage`` schema; the conversion
to Anthropic content blocks lives in ``to_anthropic_messages()``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import anthropic

from aiva.config import settings
from aiva.llm.messages import ChatMessage, ToolCall
from aiva.llm.models import ModelManager, ModelRole

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

ResponseFormat = Literal["text", "json"]

_JSON_INSTRUCTION = "Respond with a single valid JSON object and nothing else."

_client: anthropic.AsyncAnthropic | None = None
_embedding_client: AsyncOpenAI | None = None


@dataclass
class ModelResponse:
    """Text content and/or tool-call requests returned by the model."""

    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _client


def _get_embedding_client() -> AsyncOpenAI:
    """Return a lazily-initialised AsyncOpenAI singleton."""
    global _embedding_client  # noqa: PLW0603
    if _embedding_client is None:
        from openai import AsyncOpenAI

        _embedding_client = AsyncOpenAI(api_key=settings.openai_api_key)
    return _embedding_client


# -- Message adapter -----------------------------------------------------------


def _is_tool_result_turn(message: dict[str, Any]) -> bool:
    content = message.get("content")
    return (
        message["role"] == "user"
        and isinstance(content, list)
        and bool(content)
        and content[0].get("type") == "tool_result"
    )


def to_anthropic_messages(
    messages: list[ChatMessage],
) -> tuple[str | None, list[dict[str, Any]]]:
    """Convert canonical messages into Anthropic's ``(system, messages)`` pair.

    System messages are lifted into the system prompt. Consecutive tool
    results are folded into one user turn of ``tool_result`` blocks.
    """
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    for msg in messages:
        if msg.role == "system":
            if msg.content:
                system_parts.append(msg.content)
            continue

        if msg.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id or "",
                "content": msg.content or "",
            }
            if converted and _is_tool_result_turn(converted[-1]):
                converted[-1]["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
            continue

        if msg.role == "assistant":
            if msg.tool_calls:
                blocks: list[dict[str, Any]] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for call in msg.tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": call.id,
                        "name": call.name,
                        "input": call.parse_arguments(),
                    })
                converted.append({"role": "assistant", "content": blocks})
            elif msg.content:
                converted.append({"role": "assistant", "content": msg.content})
            continue

        # Plain user text; merge back-to-back user turns
        text = msg.content or ""
        if converted and converted[-1]["role"] == "user" and isinstance(
            converted[-1]["content"], str
        ):
            converted[-1]["content"] += f"\n\n{text}"
        else:
            converted.append({"role": "user", "content": text})

    system = "\n\n".join(system_parts) if system_parts else None
    return system, converted


def _parse_response(response: Any) -> ModelResponse:
    """Pull text and tool_use blocks out of an Anthropic message."""
    texts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in response.content:
        if block.type == "text":
            texts.append(block.text)
        elif block.type == "tool_use":
            tool_calls.append(
                ToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input or {}))
            )
    content = "".join(texts) if texts else None
    return ModelResponse(
        content=content,
        tool_calls=tool_calls,
        stop_reason=getattr(response, "stop_reason", None),
    )


# -- Calls ---------------------------------------------------------------------


async def call_model(
    messages: list[ChatMessage],
    *,
    tools: list[dict[str, Any]] | None = None,
    model: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 1024,
    response_format: ResponseFormat = "text",
) -> ModelResponse:
    """Single model call returning text content and/or tool-call requests.

    Errors from the API propagate to the caller.
    """
    client = _get_client()
    system, api_messages = to_anthropic_messages(messages)

    if response_format == "json":
        system = f"{system}\n\n{_JSON_INSTRUCTION}" if system else _JSON_INSTRUCTION

    kwargs: dict[str, Any] = {
        "model": model or ModelManager.get().model_for(ModelRole.CHAT),
        "max_tokens": max_tokens,
        "temperature": temperature,
        "messages": api_messages,
    }
    if system is not None:
        kwargs["system"] = system
    if tools:
        kwargs["tools"] = tools

    response = await client.messages.create(**kwargs)
    return _parse_response(response)


async def complete_text(
    prompt: str,
    *,
    system: str | None = None,
    model: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 1024,
    response_format: ResponseFormat = "text",
) -> str:
    """Single-shot call with no tools and no history.

    Use this for isolated jobs (classification, titles, tone scoring).
    Defaults to the utility model.
    """
    messages = [ChatMessage.user(prompt)]
    if system:
        messages.insert(0, ChatMessage.system(system))
    response = await call_model(
        messages,
        model=model or ModelManager.get().model_for(ModelRole.UTILITY),
        temperature=temperature,
        max_tokens=max_tokens,
        response_format=response_format,
    )
    return response.content or ""


async def stream_text(
    messages: list[ChatMessage],
    *,
    model: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 1024,
) -> AsyncIterator[str]:
    """Stream text deltas for live rewriting. No tools."""
    client = _get_client()
    system, api_messages = to_anthropic_messages(messages)
    kwargs: dict[str, Any] = {
        "model": model or ModelManager.get().model_for(ModelRole.CHAT),
        "max_tokens": max_tokens,
        "temperature": temperature,
        "messages": api_messages,
    }
    if system is not None:
        kwargs["system"] = system

    async with client.messages.stream(**kwargs) as stream:
        async for text in stream.text_stream:
            yield text


async def generate_embedding(text: str) -> list[float]:
    """Embed text for style retrieval.

    Returns a zero vector when no OpenAI key is configured, so exemplars
    can still be stored in environments without embeddings.
    """
    if not settings.openai_api_key:
        logger.debug("OPENAI_API_KEY not set; storing zero embedding")
        return [0.0] * settings.embedding_dimensions

    client = _get_embedding_client()
    result = await client.embeddings.create(model=settings.embedding_model, input=text)
    return list(result.data[0].embedding)
