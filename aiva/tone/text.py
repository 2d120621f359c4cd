"""Text helpers for tone learning: sanitising sent mail and edit distance."""

import re

MIN_SAMPLE_LENGTH = 20

_QUOTED_REPLY = re.compile(r"On\s+.*?wrote:[\s\S]*", re.IGNORECASE)
_SIGNATURE = re.compile(r"--\s*\n[\s\S]*")
_MARKUP = re.compile(r"<[^>]+>")
_QUOTED_LINE = re.compile(r"^>.*$", re.MULTILINE)
_BLANK_RUNS = re.compile(r"\n{3,}")


def sanitize_message(text: str) -> str:
    """Strip quoted replies, signatures, markup and quoted lines."""
    text = _QUOTED_REPLY.sub("", text)
    text = _SIGNATURE.sub("", text)
    text = _MARKUP.sub("", text)
    text = _QUOTED_LINE.sub("", text)
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def sanitize_samples(messages: list[str]) -> list[str]:
    """Sanitise and drop anything shorter than ``MIN_SAMPLE_LENGTH``."""
    cleaned = (sanitize_message(m) for m in messages)
    return [m for m in cleaned if len(m) >= MIN_SAMPLE_LENGTH]


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def levenshtein_ratio(a: str, b: str) -> float:
    """Edit distance divided by the length of the longer string (0 if equal)."""
    if a == b:
        return 0.0
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return levenshtein_distance(a, b) / longest
