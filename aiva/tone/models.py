"""Tone profile data models."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DIMENSIONS = ("formality", "length", "warmth", "certainty")

MIN_SCORE = 1.0
MAX_SCORE = 10.0


def clamp(value: float, low: float = MIN_SCORE, high: float = MAX_SCORE) -> float:
    return min(high, max(low, value))


class ToneProfile(BaseModel):
    """Four-dimension style vector for one user.

    Every dimension is clamped to [1, 10] on construction and on assignment.
    """

    model_config = ConfigDict(validate_assignment=True)

    formality: float = 5.0
    length: float = 5.0
    warmth: float = 5.0
    certainty: float = 5.0
    vocabulary_quirks: list[str] = Field(default_factory=list)
    synced_at: str | None = None
    updated_at: str | None = None

    @field_validator(*DIMENSIONS)
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp(float(value))

    def dimensions(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in DIMENSIONS}


class BatchScores(BaseModel):
    """Model-assigned scores for one batch of sent messages."""

    formality: float
    length: float
    warmth: float
    certainty: float


class ToneDeltas(BaseModel):
    """Directional per-dimension shifts estimated from a user's edit."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    formality_delta: float = 0.0
    length_delta: float = 0.0
    warmth_delta: float = 0.0
    certainty_delta: float = 0.0
    added_quirk: str | None = None

    def for_dimension(self, name: str) -> float:
        return getattr(self, f"{name}_delta")


class Exemplar(BaseModel):
    content: str
    embedding: list[float] = Field(default_factory=list)
    category: str = "general"
    channel: str = "email"
