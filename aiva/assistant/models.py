"""Request and response models for the orchestration endpoint."""

from typing import Any

from pydantic import Field

from aiva.nexus.models import CamelModel

FALLBACK_ANSWER = (
    "I wasn't able to finish working through that request. "
    "Please try again or rephrase it."
)


class OrchestrateRequest(CamelModel):
    query: str = Field(min_length=1)
    session_id: str | None = None
    timezone: str | None = None


class AssistantAnswer(CamelModel):
    """The structured answer shape the model is asked to produce."""

    text_summary: str
    widgets: list[dict[str, Any]] = Field(default_factory=list)
    citations: list[dict[str, Any]] = Field(default_factory=list)


class OrchestrateResponse(AssistantAnswer):
    session_id: str
    tools_used: list[str] = Field(default_factory=list)
