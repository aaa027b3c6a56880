from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, List, TypeVar

from .errors import ExtractionError
from .models import Token

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventStream(Generic[T]):
    """Typed observer list; subscribers are called in registration order."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def emit(self, payload: T) -> None:
        for callback in list(self._subscribers):
            try:
                callback(payload)
            except Exception:
                # Observer failures never propagate to the emitter.
                logger.exception("Subscriber of %s event failed.", self.name)

    def clear(self) -> None:
        self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)


@dataclass(frozen=True, slots=True)
class PageLoaded:
    ordinal: int
    total_pages: int
    token_count: int
    load_latency_ms: float


@dataclass(frozen=True, slots=True)
class WordsUpdated:
    available: int
    estimated_total: int


@dataclass(frozen=True, slots=True)
class PageFailed:
    ordinal: int
    error: ExtractionError


@dataclass(frozen=True, slots=True)
class LoadingComplete:
    loaded_pages: int
    failed_pages: int
    total_tokens: int


@dataclass(frozen=True, slots=True)
class AdvanceEvent:
    """What a renderer needs to draw the current token."""

    token: Token
    index: int
    total_estimate: int


@dataclass(frozen=True, slots=True)
class StarvedEvent:
    index: int
    available: int
