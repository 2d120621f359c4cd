"""Which Claude model serves each kind of call."""

import logging
from enum import StrEnum

from aiva.config import settings

logger = logging.getLogger(__name__)

MODEL_MAP: dict[str, str] = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
    "opus": "claude-opus-4-6-20250612",
}

FRIENDLY_NAMES: dict[str, str] = {v: k for k, v in MODEL_MAP.items()}


class ModelRole(StrEnum):
    """CHAT runs the orchestration loop and draft rewrites. UTILITY handles
    short structured jobs: classification, titles, tone scoring."""

    CHAT = "chat"
    UTILITY = "utility"


_FALLBACKS = {ModelRole.CHAT: "sonnet", ModelRole.UTILITY: "haiku"}


def friendly(model_id: str) -> str:
    """Return the friendly name for a model ID, or the ID itself."""
    return FRIENDLY_NAMES.get(model_id, model_id)


def _configured(role: ModelRole) -> str:
    if role is ModelRole.CHAT:
        return settings.default_chat_model
    return settings.default_utility_model


def _resolve(role: ModelRole) -> str:
    """Friendly name or full id from settings; unknown values fall back."""
    value = _configured(role)
    if value in MODEL_MAP:
        return MODEL_MAP[value]
    if value in FRIENDLY_NAMES:
        return value
    fallback = MODEL_MAP[_FALLBACKS[role]]
    logger.warning("Unknown %s model %r, using %s", role, value, friendly(fallback))
    return fallback


class ModelManager:
    """Resolves the model for each role once per process."""

    _instance: "ModelManager | None" = None

    def __init__(self) -> None:
        self._models = {role: _resolve(role) for role in ModelRole}
        logger.info(
            "Models: %s",
            ", ".join(f"{role}={friendly(m)}" for role, m in self._models.items()),
        )

    @classmethod
    def get(cls) -> "ModelManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    def model_for(self, role: ModelRole) -> str:
        return self._models[role]
