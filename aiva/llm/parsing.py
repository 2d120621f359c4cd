"""Lenient JSON extraction from model output."""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def parse_json_object(text: str | None) -> dict[str, Any] | None:
    """Parse a JSON object from model text.

    Accepts bare JSON or JSON wrapped in markdown fences / prose. Returns
    None when no object can be recovered.
    """
    if not text:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Try to extract JSON from markdown fences or surrounding prose
        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            return None
        try:
            data = json.loads(text[start:end])
        except json.JSONDecodeError:
            logger.debug("Failed to parse JSON from model output")
            return None

    if not isinstance(data, dict):
        return None
    return data
