"""System prompt assembly for the orchestration loop."""

import logging
import zoneinfo
from datetime import datetime

from aiva.config import settings

logger = logging.getLogger(__name__)

_POLICY = """\
You are AIVA, an executive assistant with access to the user's real inbox, \
calendar, tasks, contacts and store orders through tools.

Rules:
- Always use tools to look up facts. Never invent emails, events, orders or people.
- Keep context across turns: earlier messages in this conversation still apply.
- Scheduling, time-blocking and task creation are staged as pending actions \
the user approves later. Say that the action is proposed, not done.
- If a tool returns an error, explain it plainly or try a different tool.

Response format. Reply with a single JSON object:
{
  "textSummary": "Conversational answer that references the real data you found.",
  "widgets": [{"type": "CALENDAR_CARD" | "SHOPIFY_CARD" | "ACTION_CARD" | \
"EMAIL_SUMMARY_CARD", "data": {}}],
  "citations": [{"id": "cite_1", "source": "gmail" | "slack" | "shopify", \
"snippet": "Short excerpt"}]
}
Only include widgets and citations backed by tool results."""


def resolve_timezone(name: str | None) -> zoneinfo.ZoneInfo:
    """Return the named zone, falling back to the configured default."""
    if name:
        try:
            return zoneinfo.ZoneInfo(name)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, using %s", name, settings.default_timezone)
    return zoneinfo.ZoneInfo(settings.default_timezone)


def build_system_prompt(timezone: str | None = None, now: datetime | None = None) -> str:
    """Assemble the fixed policy plus the current time in the caller's zone."""
    tz = resolve_timezone(timezone)
    current = (now or datetime.now(tz)).astimezone(tz)
    time_text = (
        f"Current time: {current.strftime('%A, %B %d, %Y %I:%M %p %Z')} ({tz.key}). "
        f"Today's date is {current.date().isoformat()}."
    )
    return f"{_POLICY}\n\n---\n\n{time_text}"
