"""
Incremental page loading.

The loader turns a paginated source into a growing token sequence. Pages are
fetched one at a time (at most one outstanding fetch per ordinal), tokenized,
and re-aggregated in ordinal order after every successful load. The
aggregated sequence and word-range index are rebuilt into fresh tuples and
published by swapping references, so readers always see a complete snapshot.

Consumers use :meth:`IncrementalLoader.needs_more` as a backpressure signal
and :meth:`IncrementalLoader.wait_for_content` to suspend until more content
arrives or loading goes idle.
"""

from __future__ import annotations

import asyncio
import bisect
import logging
import time
from collections import deque
from typing import Deque, Dict, List, Tuple

from .config import LoaderSettings
from .errors import ExtractionError, InitializationError
from .events import (
    EventStream,
    LoadingComplete,
    PageFailed,
    PageLoaded,
    WordsUpdated,
)
from .models import LoadState, Page, Token, WordRange
from .providers.base import PageTextProvider
from .tokenization import PARAGRAPH_SEPARATOR, tokenize_page

logger = logging.getLogger(__name__)


class IncrementalLoader:
    """Background producer of an index-stable, ordinal-ordered token sequence."""

    def __init__(
        self,
        provider: PageTextProvider,
        settings: LoaderSettings | None = None,
        *,
        name: str | None = None,
    ) -> None:
        self._provider = provider
        self._settings = settings or LoaderSettings()
        self.name = name or type(provider).__name__

        self._total_pages = 0
        self._states: Dict[int, LoadState] = {}
        self._pages: Dict[int, Page] = {}
        self._inflight: Dict[int, asyncio.Task[Page]] = {}
        self._waiters: Deque[asyncio.Future[None]] = deque()

        self._sequence: Tuple[Token, ...] = ()
        self._ranges: Tuple[WordRange, ...] = ()
        self._estimated_total = 0

        self._background_task: asyncio.Task[None] | None = None
        self._background_cursor = 1
        self._loading_complete = False
        self._closed = False

        self.page_loaded: EventStream[PageLoaded] = EventStream("page_loaded")
        self.words_updated: EventStream[WordsUpdated] = EventStream("words_updated")
        self.error: EventStream[PageFailed] = EventStream("error")
        self.loading_complete: EventStream[LoadingComplete] = EventStream(
            "loading_complete"
        )

    # ------------------------------------------------------------------
    # Snapshot accessors
    # ------------------------------------------------------------------

    @property
    def settings(self) -> LoaderSettings:
        return self._settings

    @property
    def total_pages(self) -> int:
        return self._total_pages

    @property
    def aggregated_sequence(self) -> Tuple[Token, ...]:
        return self._sequence

    @property
    def word_ranges(self) -> Tuple[WordRange, ...]:
        return self._ranges

    @property
    def estimated_total(self) -> int:
        """Advisory token total for progress display; never use it for indexing."""
        return self._estimated_total

    @property
    def loaded_pages(self) -> List[int]:
        return sorted(self._pages)

    @property
    def failed_pages(self) -> List[int]:
        return sorted(o for o, s in self._states.items() if s is LoadState.FAILED)

    @property
    def all_settled(self) -> bool:
        """True once every page is either loaded or failed."""
        return self._total_pages > 0 and all(
            state in (LoadState.LOADED, LoadState.FAILED)
            for state in self._states.values()
        )

    @property
    def is_background_loading(self) -> bool:
        return self._background_task is not None

    @property
    def is_busy(self) -> bool:
        return bool(self._inflight) or self.is_background_loading

    @property
    def loading_completed(self) -> bool:
        return self._loading_complete

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def full_text(self) -> str:
        return PARAGRAPH_SEPARATOR.join(
            self._pages[ordinal].text for ordinal in sorted(self._pages)
        )

    def load_state(self, ordinal: int) -> LoadState:
        return self._states.get(ordinal, LoadState.NOT_REQUESTED)

    def page_for_index(self, index: int) -> int | None:
        """Ordinal of the page that contributed token ``index``."""
        ranges = self._ranges
        starts = [r.start_index for r in ranges]
        pos = bisect.bisect_right(starts, index) - 1
        if pos >= 0 and index in ranges[pos]:
            return ranges[pos].page_ordinal
        return None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def init(self) -> int:
        """Open the source; raises InitializationError when it has no pages."""
        try:
            total = await self._provider.init()
        except InitializationError:
            raise
        except Exception as exc:
            raise InitializationError(f"Unable to open {self.name}: {exc}") from exc
        if not total or total <= 0:
            raise InitializationError(f"{self.name} has no pages.")

        self._total_pages = int(total)
        self._states = {o: LoadState.NOT_REQUESTED for o in range(1, total + 1)}
        self._estimated_total = total * self._settings.words_per_page_estimate
        logger.info(
            "Initialized %s with %s pages (~%s tokens)",
            self.name,
            total,
            self._estimated_total,
        )
        return self._total_pages

    async def load_page(self, ordinal: int) -> Page | None:
        """
        Load one page, joining an in-flight fetch for the same ordinal.

        Returns None for ordinals outside the document. Raises ExtractionError
        when the page cannot be extracted; the failure is also reported on the
        ``error`` stream.
        """
        if ordinal < 1 or ordinal > self._total_pages:
            return None
        if self._states[ordinal] is LoadState.LOADED:
            return self._pages[ordinal]

        task = self._inflight.get(ordinal)
        if task is None:
            self._states[ordinal] = LoadState.LOADING
            task = asyncio.get_running_loop().create_task(self._fetch(ordinal))
            task.add_done_callback(_consume_task_result)
            self._inflight[ordinal] = task
        # Shielded so that a cancelled caller does not abort the shared fetch.
        return await asyncio.shield(task)

    async def load_initial(self, count: int) -> Tuple[Token, ...]:
        """Sequentially load pages ``1..min(count, total_pages)``."""
        for ordinal in range(1, min(max(0, count), self._total_pages) + 1):
            try:
                await self.load_page(ordinal)
            except ExtractionError:
                logger.debug("Skipping page %s during initial load", ordinal)
        return self._sequence

    def start_background_loading(self) -> asyncio.Task[None] | None:
        """Start the background cycle; a no-op while running or after completion."""
        if self._closed or self._loading_complete:
            return None
        if self._background_task is not None:
            return self._background_task
        if self._total_pages <= 0:
            raise InitializationError("Loader used before init().")
        self._background_task = asyncio.get_running_loop().create_task(
            self._background_cycle()
        )
        return self._background_task

    def needs_more(self, consumer_index: int) -> bool:
        """True when the consumer is near the end and pages are still outstanding."""
        if self._total_pages <= 0 or self.all_settled:
            return False
        remaining = len(self._sequence) - self._settings.lookahead_tokens
        return consumer_index >= remaining

    def wait_for_content(self) -> asyncio.Future[None]:
        """
        Return a future that resolves at the next page load or once loading
        goes idle. Already resolved when nothing is in flight.
        """
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        if self._closed or not self.is_busy:
            waiter.set_result(None)
        else:
            self._waiters.append(waiter)
        return waiter

    def close(self) -> None:
        """
        Discard the loader. In-flight fetches run to completion but their
        results are dropped.
        """
        if self._closed:
            return
        self._closed = True
        if self._background_task is not None:
            self._background_task.cancel()
            self._background_task = None
        self._release_waiters()
        for stream in (
            self.page_loaded,
            self.words_updated,
            self.error,
            self.loading_complete,
        ):
            stream.clear()
        logger.debug("Closed loader for %s", self.name)

    async def aclose(self) -> None:
        self.close()
        await self._provider.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fetch(self, ordinal: int) -> Page:
        started = time.perf_counter()
        try:
            page_text = await self._provider.fetch_page(ordinal)
            tokens = tuple(tokenize_page(page_text.text))
        except asyncio.CancelledError:
            self._inflight.pop(ordinal, None)
            if not self._closed:
                self._states[ordinal] = LoadState.NOT_REQUESTED
            raise
        except Exception as exc:
            self._inflight.pop(ordinal, None)
            if isinstance(exc, ExtractionError):
                error = exc
            else:
                error = ExtractionError(
                    ordinal, f"Page {ordinal} extraction failed: {exc}"
                )
                error.__cause__ = exc
            if not self._closed:
                self._states[ordinal] = LoadState.FAILED
                logger.warning(
                    "Failed to load page %s of %s: %s", ordinal, self.name, error
                )
                self.error.emit(PageFailed(ordinal=ordinal, error=error))
                if not self.is_busy:
                    self._release_waiters()
            raise error

        latency_ms = (time.perf_counter() - started) * 1000.0
        page = Page(
            ordinal=ordinal,
            tokens=tokens,
            load_latency_ms=latency_ms,
            text=page_text.text,
        )
        self._inflight.pop(ordinal, None)
        if self._closed:
            return page

        self._pages[ordinal] = page
        self._states[ordinal] = LoadState.LOADED
        self._rebuild()
        logger.info(
            "Loaded page %s/%s of %s (%s tokens, %.1f ms)",
            ordinal,
            self._total_pages,
            self.name,
            len(tokens),
            latency_ms,
        )
        self.page_loaded.emit(
            PageLoaded(
                ordinal=ordinal,
                total_pages=self._total_pages,
                token_count=len(tokens),
                load_latency_ms=latency_ms,
            )
        )
        self.words_updated.emit(
            WordsUpdated(
                available=len(self._sequence), estimated_total=self._estimated_total
            )
        )
        self._release_waiters()
        return page

    def _rebuild(self) -> None:
        tokens: List[Token] = []
        ranges: List[WordRange] = []
        for ordinal in sorted(self._pages):
            page_tokens = self._pages[ordinal].tokens
            if not page_tokens:
                continue
            start = len(tokens)
            tokens.extend(page_tokens)
            ranges.append(WordRange(ordinal, start, len(tokens) - 1))

        self._sequence = tuple(tokens)
        self._ranges = tuple(ranges)
        loaded = len(self._pages)
        if loaded:
            # ceil(tokens / loaded * total) without float rounding
            self._estimated_total = -(-len(tokens) * self._total_pages // loaded)

    async def _background_cycle(self) -> None:
        logger.info("Background loading started for %s", self.name)
        try:
            while not self._closed:
                ordinal = self._next_unsettled()
                if ordinal is None:
                    break
                try:
                    await self.load_page(ordinal)
                    delay_ms = self._settings.background_yield_ms
                except ExtractionError:
                    delay_ms = self._settings.failure_backoff_ms
                await asyncio.sleep(delay_ms / 1000.0)
        finally:
            self._background_task = None

        if self._closed or self._loading_complete:
            return
        self._loading_complete = True
        logger.info(
            "Background loading finished for %s: %s loaded, %s failed",
            self.name,
            len(self._pages),
            len(self.failed_pages),
        )
        self.loading_complete.emit(
            LoadingComplete(
                loaded_pages=len(self._pages),
                failed_pages=len(self.failed_pages),
                total_tokens=len(self._sequence),
            )
        )
        self._release_waiters()

    def _next_unsettled(self) -> int | None:
        for ordinal in range(self._background_cursor, self._total_pages + 1):
            if self._states[ordinal] in (LoadState.NOT_REQUESTED, LoadState.LOADING):
                self._background_cursor = ordinal
                return ordinal
        self._background_cursor = self._total_pages + 1
        return None

    def _release_waiters(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)


def _consume_task_result(task: asyncio.Task[Page]) -> None:
    # Failures are already on the error stream; mark the exception retrieved.
    if not task.cancelled():
        task.exception()
