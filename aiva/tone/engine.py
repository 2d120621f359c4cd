"""Tone profile learning.

Two entry points, both run outside any request:

- ``run_historical_sync`` calibrates a profile from a user's sent mail.
- ``process_delta_feedback`` nudges it whenever the user edits a draft.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from aiva.llm.client import complete_text, generate_embedding
from aiva.llm.parsing import parse_json_object
from aiva.timeutil import utc_now_iso
from aiva.tone.models import DIMENSIONS, BatchScores, Exemplar, ToneDeltas, ToneProfile, clamp
from aiva.tone.store import ToneStore
from aiva.tone.text import levenshtein_ratio, sanitize_samples

if TYPE_CHECKING:
    from collections.abc import Coroutine

logger = logging.getLogger(__name__)

BATCH_SIZE = 10
EXEMPLAR_COUNT = 10
TRIVIAL_EDIT_RATIO = 0.05
REWRITE_RATIO = 0.80
DAMPING = 0.3
MAX_QUIRKS = 20

_background_tasks: set[asyncio.Task] = set()

_SCORE_PROMPT = """\
Analyze these email excerpts and score the writer's style on each dimension (1-10).
Return JSON: {{"formality": <1-10>, "length": <1-10>, "warmth": <1-10>, "certainty": <1-10>}}

Emails:
{emails}"""

_DELTA_PROMPT = """\
Analyze the difference between the Original Draft and the User's Final Edit. \
How did the user alter the tone?
Return JSON: {{"formalityDelta": <float>, "warmthDelta": <float>, "lengthDelta": <float>, \
"certaintyDelta": <float>, "addedQuirk": "<string or null>"}}

Original Draft:
{original}

User's Final Edit:
{final}"""


# -- Aggregation -------------------------------------------------------------


def aggregate_scores(scores: list[BatchScores]) -> ToneProfile:
    """Per-dimension median across batches."""
    return ToneProfile(
        **{name: statistics.median(getattr(s, name) for s in scores) for name in DIMENSIONS}
    )


def apply_deltas(profile: ToneProfile, deltas: ToneDeltas) -> ToneProfile:
    """Damped update: ``clamp(old + delta * 0.3, 1, 10)`` per dimension."""
    updated = profile.model_copy(deep=True)
    for name in DIMENSIONS:
        value = getattr(profile, name) + deltas.for_dimension(name) * DAMPING
        setattr(updated, name, clamp(value))

    quirk = (deltas.added_quirk or "").strip()
    if quirk and quirk not in updated.vocabulary_quirks:
        updated.vocabulary_quirks = [*updated.vocabulary_quirks, quirk][-MAX_QUIRKS:]
    updated.updated_at = utc_now_iso()
    return updated


# -- Historical sync ---------------------------------------------------------


async def _score_batch(batch: list[str]) -> BatchScores | None:
    emails = "\n\n".join(f"---Email {i}---\n{text}" for i, text in enumerate(batch, start=1))
    raw = await complete_text(
        _SCORE_PROMPT.format(emails=emails),
        temperature=0.1,
        max_tokens=200,
        response_format="json",
    )
    data = parse_json_object(raw)
    if data is None:
        return None
    try:
        return BatchScores.model_validate(data)
    except ValidationError:
        return None


async def run_historical_sync(
    user_id: str,
    sent_messages: list[str],
    store: ToneStore | None = None,
) -> ToneProfile | None:
    """Calibrate a user's profile from their sent mail.

    Batches that fail to score are skipped. Returns None, persisting
    nothing, when no batch could be scored.
    """
    store = store or ToneStore.get()
    samples = sanitize_samples(sent_messages)

    scores: list[BatchScores] = []
    for start in range(0, len(samples), BATCH_SIZE):
        batch = samples[start : start + BATCH_SIZE]
        try:
            result = await _score_batch(batch)
        except Exception:
            logger.exception("Tone scoring failed for batch at %d (skipped)", start)
            continue
        if result is None:
            logger.warning("Unparseable tone scores for batch at %d (skipped)", start)
            continue
        scores.append(result)

    if not scores:
        logger.info("Historical sync for %s scored no batches; profile unchanged", user_id)
        return None

    profile = aggregate_scores(scores)
    existing = await store.get_profile(user_id)
    if existing is not None:
        profile.vocabulary_quirks = existing.vocabulary_quirks
    now = utc_now_iso()
    profile.synced_at = now
    profile.updated_at = now
    await store.save_profile(user_id, profile)
    logger.info(
        "Historical sync for %s: %d samples, %d/%d batches scored",
        user_id, len(samples), len(scores), -(-len(samples) // BATCH_SIZE),
    )

    stored = 0
    for text in samples[:EXEMPLAR_COUNT]:
        try:
            embedding = await generate_embedding(text)
            await store.add_exemplar(user_id, Exemplar(content=text, embedding=embedding))
            stored += 1
        except Exception:
            logger.exception("Failed to store exemplar for %s (skipped)", user_id)
    logger.info("Stored %d exemplars for %s", stored, user_id)

    return profile


# -- Delta feedback ----------------------------------------------------------


async def process_delta_feedback(
    user_id: str,
    original_draft: str,
    final_text: str,
    store: ToneStore | None = None,
) -> ToneProfile | None:
    """Learn from a user's edit of an assistant draft.

    Returns the updated profile, or None when the profile was not adjusted.
    """
    store = store or ToneStore.get()
    ratio = await asyncio.to_thread(levenshtein_ratio, original_draft, final_text)

    if ratio < TRIVIAL_EDIT_RATIO:
        logger.debug("Edit ratio %.3f for %s: trivial, ignored", ratio, user_id)
        return None

    if ratio > REWRITE_RATIO:
        embedding = await generate_embedding(final_text)
        await store.add_exemplar(
            user_id, Exemplar(content=final_text, embedding=embedding, category="user_rewrite")
        )
        logger.info("Edit ratio %.3f for %s: stored rewrite exemplar", ratio, user_id)
        return None

    raw = await complete_text(
        _DELTA_PROMPT.format(original=original_draft, final=final_text),
        temperature=0.1,
        max_tokens=200,
        response_format="json",
    )
    data = parse_json_object(raw)
    if data is None:
        logger.warning("Unparseable tone deltas for %s; profile unchanged", user_id)
        return None
    try:
        deltas = ToneDeltas.model_validate(data)
    except ValidationError:
        logger.warning("Invalid tone deltas for %s; profile unchanged", user_id)
        return None

    current = await store.get_profile(user_id)
    if current is None:
        logger.info("No tone profile for %s yet; edit not applied", user_id)
        return None

    updated = apply_deltas(current, deltas)
    await store.save_profile(user_id, updated)
    logger.info("Edit ratio %.3f for %s: profile adjusted", ratio, user_id)
    return updated


# -- Fire-and-forget ---------------------------------------------------------


async def _run_detached(name: str, coro: Coroutine[Any, Any, Any]) -> None:
    try:
        await coro
    except Exception:
        logger.exception("%s failed (non-fatal)", name)


def _spawn(name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
    task = asyncio.create_task(_run_detached(name, coro))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def spawn_historical_sync(user_id: str, sent_messages: list[str]) -> asyncio.Task:
    """Start a historical sync detached from the caller."""
    return _spawn("Historical sync", run_historical_sync(user_id, sent_messages))


def spawn_delta_feedback(user_id: str, original_draft: str, final_text: str) -> asyncio.Task:
    """Start delta feedback detached from the caller."""
    return _spawn("Delta feedback", process_delta_feedback(user_id, original_draft, final_text))
