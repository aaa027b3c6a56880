"""
Foreground playback of a token sequence.

The scheduler is a small cooperative state machine (paused or playing) that
keeps exactly one one-shot timer armed while playing. Each timer fire advances
the cursor and re-arms with the dwell time of the new token. When the active
sequence comes from an :class:`~rsvp_stream.loader.IncrementalLoader` and the
cursor is close to the end of what has been loaded, the scheduler suspends on
``wait_for_content()`` instead of advancing and resumes from the same index.

Every public method that changes rate, profile, position, or sequence cancels
the pending timer first; a generation counter makes stale timers and starved
waits inert.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import replace
from typing import Any, Callable, Protocol, Sequence, Tuple, Union

from .config import PlaybackSettings
from .errors import ConfigurationError
from .events import AdvanceEvent, EventStream, StarvedEvent
from .loader import IncrementalLoader
from .models import PlaybackCursor, Token
from .pacing import PauseProfile, base_interval_ms, dwell_ms, get_profile

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


CallLater = Callable[[float, Callable[[], None]], TimerHandle]
SequenceSource = Union[Sequence[Token], IncrementalLoader]


class PlaybackScheduler:
    """Drives the playback cursor over a static or loader-backed sequence."""

    def __init__(
        self,
        settings: PlaybackSettings | None = None,
        *,
        call_later: CallLater | None = None,
    ) -> None:
        self._settings = replace(settings) if settings else PlaybackSettings()
        self._profile = get_profile(self._settings.profile)
        self._cursor = PlaybackCursor(loop_enabled=self._settings.loop)
        self._static: Tuple[Token, ...] = ()
        self._loader: IncrementalLoader | None = None

        self._call_later = call_later
        self._timer: TimerHandle | None = None
        self._pending_dwell_ms: int | None = None
        self._starve_task: asyncio.Future[Any] | None = None
        self._generation = 0

        self.advance: EventStream[AdvanceEvent] = EventStream("advance")
        self.starved: EventStream[StarvedEvent] = EventStream("starved")
        self.state_changed: EventStream[bool] = EventStream("state_changed")
        self.configuration_error: EventStream[ConfigurationError] = EventStream(
            "configuration_error"
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def settings(self) -> PlaybackSettings:
        return replace(self._settings)

    @property
    def profile(self) -> PauseProfile:
        return self._profile

    @property
    def cursor(self) -> PlaybackCursor:
        return replace(self._cursor)

    @property
    def index(self) -> int:
        return self._cursor.index

    @property
    def is_playing(self) -> bool:
        return self._cursor.is_playing

    @property
    def loop_enabled(self) -> bool:
        return self._cursor.loop_enabled

    @property
    def loader(self) -> IncrementalLoader | None:
        return self._loader

    @property
    def tokens(self) -> Sequence[Token]:
        if self._loader is not None:
            return self._loader.aggregated_sequence
        return self._static

    @property
    def current_token(self) -> Token | None:
        tokens = self.tokens
        if not tokens:
            return None
        return tokens[min(self._cursor.index, len(tokens) - 1)]

    @property
    def total_estimate(self) -> int:
        available = len(self.tokens)
        if self._loader is not None:
            return max(available, self._loader.estimated_total)
        return available

    @property
    def pending_dwell_ms(self) -> int | None:
        """Dwell of the armed timer, or None when no timer is armed."""
        return self._pending_dwell_ms if self._timer is not None else None

    @property
    def is_starved(self) -> bool:
        return self._starve_task is not None and not self._starve_task.done()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def attach_sequence(self, source: SequenceSource) -> None:
        """Switch to a new sequence and reset to its first token."""
        self._cancel_pending()
        if isinstance(source, IncrementalLoader):
            self._loader = source
            self._static = ()
        else:
            self._loader = None
            self._static = tuple(source)
        self._cursor.index = 0
        logger.debug("Attached sequence with %s tokens", len(self.tokens))
        self._emit_advance()
        if self._cursor.is_playing:
            self._schedule_current()

    def play(self) -> bool:
        """Start playback; returns False when the rate cannot be scheduled."""
        if self._cursor.is_playing:
            return True
        self._cancel_pending()
        if base_interval_ms(self._settings.wpm) is None:
            self._report_invalid_rate()
            return False
        self._set_playing(True)
        self._schedule_current()
        return self._cursor.is_playing

    def pause(self) -> None:
        self._cancel_pending()
        self._set_playing(False)

    def toggle(self) -> bool:
        if self._cursor.is_playing:
            self.pause()
        else:
            self.play()
        return self._cursor.is_playing

    def seek(self, target_index: int) -> int:
        """Move to ``target_index`` (clamped); restarts the timer when playing."""
        tokens = self.tokens
        self._cancel_pending()
        if tokens:
            self._cursor.index = max(0, min(len(tokens) - 1, target_index))
            self._emit_advance()
        if self._cursor.is_playing:
            self._schedule_current()
        return self._cursor.index

    def step_forward(self) -> int:
        return self.seek(self._cursor.index + 1)

    def step_back(self) -> int:
        return self.seek(self._cursor.index - 1)

    def restart(self) -> int:
        return self.seek(0)

    def set_rate(self, wpm: int) -> None:
        """Change the rate; takes effect from the current token when playing."""
        self._settings.wpm = wpm
        if self._cursor.is_playing:
            self._restart_current()

    def set_profile(self, name: str) -> None:
        profile = get_profile(name)
        self._settings.profile = name
        self._profile = profile
        if self._cursor.is_playing:
            self._restart_current()

    def set_loop(self, enabled: bool) -> None:
        self._settings.loop = enabled
        self._cursor.loop_enabled = enabled

    def close(self) -> None:
        self.pause()
        for stream in (
            self.advance,
            self.starved,
            self.state_changed,
            self.configuration_error,
        ):
            stream.clear()

    # ------------------------------------------------------------------
    # Timer chain
    # ------------------------------------------------------------------

    def _schedule_current(self) -> None:
        tokens = self.tokens
        if not tokens:
            if self._loader is not None:
                self._starve(self._schedule_current_or_stop)
            else:
                self._set_playing(False)
            return

        token = tokens[min(self._cursor.index, len(tokens) - 1)]
        dwell = dwell_ms(token, self._profile, base_interval_ms(self._settings.wpm))
        if dwell is None:
            self._report_invalid_rate()
            self._set_playing(False)
            return
        self._arm(dwell)

    def _schedule_current_or_stop(self) -> None:
        loader = self._loader
        if self.tokens:
            self._emit_advance()
            self._schedule_current()
        elif loader is not None and loader.needs_more(0) and loader.is_busy:
            self._starve(self._schedule_current_or_stop)
        else:
            self._set_playing(False)

    def _arm(self, dwell: int) -> None:
        call_later = self._call_later or asyncio.get_running_loop().call_later
        self._pending_dwell_ms = dwell
        self._timer = call_later(
            dwell / 1000.0, functools.partial(self._fire, self._generation)
        )

    def _fire(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._timer = None
        self._pending_dwell_ms = None
        if not self._cursor.is_playing:
            return
        if self._loader is not None and self._loader.needs_more(self._cursor.index):
            self._starve(self._resume_after_wait)
            return
        self._advance()

    def _resume_after_wait(self) -> None:
        loader = self._loader
        index = self._cursor.index
        at_tail = index >= len(self.tokens) - 1
        if (
            loader is not None
            and at_tail
            and loader.needs_more(index)
            and loader.is_busy
        ):
            self._starve(self._resume_after_wait)
            return
        self._advance()

    def _advance(self) -> None:
        tokens = self.tokens
        if self._cursor.index >= len(tokens) - 1:
            if not self._cursor.loop_enabled:
                self._set_playing(False)
                return
            self._cursor.index = 0
        else:
            self._cursor.index += 1
        self._emit_advance()
        self._schedule_current()

    def _starve(self, resume: Callable[[], None]) -> None:
        loader = self._loader
        if loader is None:
            resume()
            return
        logger.debug(
            "Starved at index %s with %s tokens available",
            self._cursor.index,
            len(loader.aggregated_sequence),
        )
        self.starved.emit(
            StarvedEvent(
                index=self._cursor.index, available=len(loader.aggregated_sequence)
            )
        )
        loader.start_background_loading()
        self._starve_task = asyncio.ensure_future(
            self._await_content(loader.wait_for_content(), self._generation, resume)
        )

    async def _await_content(
        self,
        waiter: asyncio.Future[None],
        generation: int,
        resume: Callable[[], None],
    ) -> None:
        await waiter
        if generation != self._generation or not self._cursor.is_playing:
            return
        self._starve_task = None
        resume()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _restart_current(self) -> None:
        self._cancel_pending()
        self._schedule_current()

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending_dwell_ms = None
        if self._starve_task is not None:
            self._starve_task.cancel()
            self._starve_task = None

    def _set_playing(self, playing: bool) -> None:
        if self._cursor.is_playing == playing:
            return
        self._cursor.is_playing = playing
        logger.debug(
            "Playback %s at index %s",
            "started" if playing else "paused",
            self._cursor.index,
        )
        self.state_changed.emit(playing)

    def _emit_advance(self) -> None:
        token = self.current_token
        if token is None:
            return
        self.advance.emit(
            AdvanceEvent(
                token=token,
                index=self._cursor.index,
                total_estimate=self.total_estimate,
            )
        )

    def _report_invalid_rate(self) -> None:
        error = ConfigurationError(
            "Reading rate must be a positive number of words per minute, "
            f"got {self._settings.wpm!r}."
        )
        logger.warning("%s", error)
        self.configuration_error.emit(error)
