"""Tone profile learning: historical sync and delta feedback."""

from aiva.tone.engine import process_delta_feedback, run_historical_sync
from aiva.tone.models import ToneProfile
from aiva.tone.store import ToneStore

__all__ = [
    "ToneProfile",
    "ToneStore",
    "process_delta_feedback",
    "run_historical_sync",
]
