from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


@dataclass(frozen=True, slots=True)
class Token:
    """A word-like unit with its trailing punctuation attached."""

    text: str
    is_paragraph_end: bool = False


@dataclass(frozen=True, slots=True)
class PageText:
    """Raw text returned by a page text provider."""

    text: str
    layout_ok: bool = True


@dataclass(frozen=True, slots=True)
class Page:
    """A loaded page and the tokens it contributes."""

    ordinal: int
    tokens: Tuple[Token, ...]
    load_latency_ms: float
    text: str = ""


@dataclass(frozen=True, slots=True)
class WordRange:
    """Inclusive index span of the aggregated sequence contributed by one page."""

    page_ordinal: int
    start_index: int
    end_index: int

    def __len__(self) -> int:
        return self.end_index - self.start_index + 1

    def __contains__(self, index: object) -> bool:
        return isinstance(index, int) and self.start_index <= index <= self.end_index


@dataclass(slots=True)
class PlaybackCursor:
    """Current position of the playback scheduler."""

    index: int = 0
    is_playing: bool = False
    loop_enabled: bool = False


class LoadState(str, Enum):
    NOT_REQUESTED = "not_requested"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"
