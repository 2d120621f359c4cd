"""Email intent classification.

The classifier reports the model's confidence as-is and never filters.
Consumers decide what to surface with ``is_actionable``.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from aiva.llm.client import complete_text
from aiva.llm.parsing import parse_json_object
from aiva.nexus.models import EmailClassification, EmailIntent

logger = logging.getLogger(__name__)

BODY_PREVIEW_CHARS = 1000

_PROMPT = """\
Classify this email and extract entities. Return valid JSON only.

Subject: {subject}
From: {sender}
Body (first {limit} chars): {body}

Return JSON:
{{
  "intent": "meeting_request" | "task_action" | "newsletter" | "general_inquiry" | \
"scheduling_confirmation" | "reschedule_request",
  "confidence": 0.0-1.0,
  "meetingEntities": {{"participants": [{{"name": "", "email": ""}}], \
"suggestedTimeframe": "", "duration": null, "format": "call" | "video" | "in_person" | "coffee", \
"location": "", "subject": ""}} or null,
  "taskEntities": {{"title": "", "deadline": "", "estimatedMinutes": null}} or null,
  "suggestedActions": [{{"type": "send_scheduling_email" | "create_calendar_event" | \
"timebox_task" | "auto_reply", "label": "", "description": ""}}]
}}

Short acknowledgements ("thanks", "sounds good") carry no action: give them low confidence."""


def default_classification() -> EmailClassification:
    return EmailClassification(intent=EmailIntent.GENERAL_INQUIRY, confidence=0.5)


def build_prompt(subject: str, body: str, sender_email: str) -> str:
    return _PROMPT.format(
        subject=subject,
        sender=sender_email,
        limit=BODY_PREVIEW_CHARS,
        body=body[:BODY_PREVIEW_CHARS],
    )


def parse_classification(text: str | None) -> EmailClassification:
    """Validate the model's JSON; anything malformed yields the safe default."""
    data = parse_json_object(text)
    if data is None:
        logger.warning("Classifier returned no JSON object; using default")
        return default_classification()
    try:
        return EmailClassification.model_validate(data)
    except ValidationError as exc:
        logger.warning("Classifier output failed validation (%d errors); using default",
                       exc.error_count())
        return default_classification()


async def classify_email_intent(subject: str, body: str, sender_email: str) -> EmailClassification:
    """Classify one message. Model errors propagate; bad output does not."""
    raw = await complete_text(
        build_prompt(subject, body, sender_email),
        temperature=0.1,
        max_tokens=800,
        response_format="json",
    )
    return parse_classification(raw)


def is_actionable(classification: EmailClassification, threshold: float) -> bool:
    """Whether a consumer should offer action affordances for this result."""
    return classification.confidence >= threshold
