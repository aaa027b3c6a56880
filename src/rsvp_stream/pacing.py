"""
Dwell-time calculation for RSVP playback.

Each token is shown for a base interval derived from the reading rate, scaled
by the largest applicable multiplier of the active pause profile (sentence or
clause ending, long word, number, paragraph end). Sentence and clause endings
are additionally held for a minimum number of milliseconds so that very high
rates stay readable.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping

from .errors import ConfigurationError
from .models import Token

SENTENCE_END_CHARS = ".!?"
CLAUSE_END_CHARS = ",;:"
LONG_WORD_THRESHOLD = 8
MS_PER_MINUTE = 60_000
MIN_WPM = 50
MAX_WPM = 1500

LETTER_OR_DIGIT_RE = re.compile(r"[^\W_]", re.UNICODE)
DIGIT_RE = re.compile(r"\d")


@dataclass(frozen=True, slots=True)
class PauseProfile:
    """Named set of dwell multipliers and minimum pauses."""

    name: str
    sentence: float
    comma: float
    paragraph: float
    long_word: float
    number: float
    min_sentence_ms: int
    min_comma_ms: int


PAUSE_PROFILES: Mapping[str, PauseProfile] = {
    "relaxed": PauseProfile(
        name="Relaxed",
        sentence=4.0,
        comma=2.0,
        paragraph=4.0,
        long_word=1.5,
        number=2.0,
        min_sentence_ms=400,
        min_comma_ms=200,
    ),
    "normal": PauseProfile(
        name="Normal",
        sentence=3.0,
        comma=1.5,
        paragraph=3.0,
        long_word=1.3,
        number=1.5,
        min_sentence_ms=300,
        min_comma_ms=150,
    ),
    "speed": PauseProfile(
        name="Speed",
        sentence=1.5,
        comma=1.2,
        paragraph=1.5,
        long_word=1.1,
        number=1.2,
        min_sentence_ms=150,
        min_comma_ms=80,
    ),
}

DEFAULT_PROFILE = "normal"


def get_profile(name: str) -> PauseProfile:
    """Return the pause profile registered under ``name``."""
    normalized = (name or "").lower().strip()
    try:
        return PAUSE_PROFILES[normalized]
    except KeyError:
        known = ", ".join(sorted(PAUSE_PROFILES))
        raise ConfigurationError(
            f"Unknown pause profile '{name}' (expected one of: {known})."
        ) from None


def base_interval_ms(wpm: float | None) -> int | None:
    """
    Milliseconds per token at ``wpm`` words per minute.

    Returns None when the rate is unset or not positive, which callers treat
    as "do not schedule".

    Examples:
        >>> base_interval_ms(300)
        200
        >>> base_interval_ms(0) is None
        True
    """
    if wpm is None or wpm <= 0:
        return None
    return max(1, math.floor(MS_PER_MINUTE / wpm))


def clamp_wpm(wpm: float, minimum: int = MIN_WPM, maximum: int = MAX_WPM) -> int:
    """Clamp a user supplied rate into the supported range."""
    return int(max(minimum, min(maximum, wpm)))


def is_sentence_end(text: str) -> bool:
    return text.endswith(tuple(SENTENCE_END_CHARS))


def is_clause_end(text: str) -> bool:
    return text.endswith(tuple(CLAUSE_END_CHARS))


def pause_multiplier(token: Token, profile: PauseProfile) -> float:
    """Return the largest applicable multiplier for ``token``."""
    text = token.text
    multiplier = 1.0

    if is_sentence_end(text):
        multiplier = max(multiplier, profile.sentence)
    elif is_clause_end(text):
        multiplier = max(multiplier, profile.comma)

    if len(LETTER_OR_DIGIT_RE.findall(text)) > LONG_WORD_THRESHOLD:
        multiplier = max(multiplier, profile.long_word)

    if DIGIT_RE.search(text):
        multiplier = max(multiplier, profile.number)

    if token.is_paragraph_end:
        multiplier = max(multiplier, profile.paragraph)

    return multiplier


def dwell_ms(
    token: Token, profile: PauseProfile, base_interval: int | None
) -> int | None:
    """
    Display duration of ``token`` in milliseconds, or None when unschedulable.

    Examples:
        >>> dwell_ms(Token("Hello."), PAUSE_PROFILES["normal"], 200)
        600
        >>> dwell_ms(Token("cat"), PAUSE_PROFILES["normal"], 200)
        200
    """
    if base_interval is None:
        return None

    dwell = math.floor(base_interval * pause_multiplier(token, profile))

    if is_sentence_end(token.text):
        dwell = max(dwell, profile.min_sentence_ms)
    elif is_clause_end(token.text):
        dwell = max(dwell, profile.min_comma_ms)

    return int(dwell)


def estimate_reading_time_ms(
    tokens: Iterable[Token], profile: PauseProfile, wpm: float
) -> int | None:
    """Total dwell time for ``tokens``; None when the rate is invalid."""
    base = base_interval_ms(wpm)
    if base is None:
        return None
    total = 0
    for token in tokens:
        total += dwell_ms(token, profile, base) or 0
    return total


def profile_table() -> Dict[str, Dict[str, float]]:
    """Profiles as plain dictionaries, keyed by their lookup name."""
    return {
        key: {
            "sentence": profile.sentence,
            "comma": profile.comma,
            "paragraph": profile.paragraph,
            "long_word": profile.long_word,
            "number": profile.number,
            "min_sentence_ms": profile.min_sentence_ms,
            "min_comma_ms": profile.min_comma_ms,
        }
        for key, profile in PAUSE_PROFILES.items()
    }
