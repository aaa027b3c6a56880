from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Any, Dict, List, Mapping, Protocol

from .config import ReaderConfig
from .events import LoadingComplete
from .loader import IncrementalLoader
from .providers.base import PageTextProvider
from .scheduler import CallLater, PlaybackScheduler
from .tokenization import tokenize

logger = logging.getLogger(__name__)


class DocumentCache(Protocol):
    """Persistence collaborator for fully loaded documents."""

    def save(self, name: str, text: str, metadata: Mapping[str, Any]) -> None:
        ...

    def find_by_fingerprint(self, fingerprint: str) -> Dict[str, Any] | None:
        ...

    def recent(self, limit: int) -> List[Dict[str, Any]]:
        ...


def content_fingerprint(text: str) -> str:
    """SHA-256 hex digest used to recognise previously cached documents."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ReaderSession:
    """
    Owns the playback scheduler and, for paginated documents, the active
    loader. Activating a new text or document discards the previous loader;
    its late results are ignored.
    """

    def __init__(
        self,
        config: ReaderConfig | None = None,
        *,
        cache: DocumentCache | None = None,
        call_later: CallLater | None = None,
    ) -> None:
        self.config = config or ReaderConfig()
        self.cache = cache
        self.scheduler = PlaybackScheduler(
            self.config.playback_settings(), call_later=call_later
        )
        self._loader: IncrementalLoader | None = None
        self._document_name: str | None = None

    @property
    def loader(self) -> IncrementalLoader | None:
        return self._loader

    @property
    def document_name(self) -> str | None:
        return self._document_name

    def set_text(self, text: str) -> None:
        """Activate a static text."""
        self._discard_loader()
        self._document_name = None
        tokens = tokenize(text)
        logger.info("Activated text with %s tokens", len(tokens))
        self.scheduler.attach_sequence(tokens)

    async def open_document(
        self,
        provider: PageTextProvider,
        *,
        name: str | None = None,
        quick_start: bool = True,
    ) -> IncrementalLoader:
        """
        Activate a paginated document.

        Raises InitializationError when the source cannot be opened; the
        previously active text or document stays in place in that case.
        """
        loader = IncrementalLoader(provider, self.config.loader, name=name)
        await loader.init()

        self._discard_loader()
        self._loader = loader
        self._document_name = name or loader.name

        if quick_start:
            await loader.load_initial(self.config.loader.initial_pages)
        else:
            await loader.load_initial(loader.total_pages)

        if self._loader is not loader:
            # Another document was activated while this one was loading.
            return loader

        self.scheduler.attach_sequence(loader)
        if self.cache is not None:
            loader.loading_complete.subscribe(
                lambda event: self._cache_document(loader, event)
            )
        loader.start_background_loading()
        return loader

    def play(self) -> bool:
        return self.scheduler.play()

    def pause(self) -> None:
        self.scheduler.pause()

    async def wait_until_finished(self) -> None:
        """Wait until playback stops (end of content, pause, or invalid rate)."""
        if not self.scheduler.is_playing:
            return
        finished: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def _on_state(playing: bool) -> None:
            if not playing and not finished.done():
                finished.set_result(None)

        unsubscribe = self.scheduler.state_changed.subscribe(_on_state)
        try:
            await finished
        finally:
            unsubscribe()

    def close(self) -> None:
        """Stop playback and discard the active loader without closing its source."""
        self.scheduler.close()
        self._discard_loader()

    async def aclose(self) -> None:
        self.scheduler.close()
        loader, self._loader = self._loader, None
        if loader is not None:
            await loader.aclose()

    def _discard_loader(self) -> None:
        if self._loader is not None:
            logger.info("Discarding loader for %s", self._loader.name)
            self._loader.close()
            self._loader = None

    def _cache_document(
        self, loader: IncrementalLoader, event: LoadingComplete
    ) -> None:
        if self.cache is None or loader is not self._loader:
            return
        name = self._document_name or loader.name
        text = loader.full_text
        try:
            self.cache.save(
                name,
                text,
                {
                    "fingerprint": content_fingerprint(text),
                    "total_pages": loader.total_pages,
                    "word_count": event.total_tokens,
                    "failed_pages": loader.failed_pages,
                },
            )
        except Exception as exc:
            logger.warning("Failed to cache document %s: %s", name, exc)
        else:
            logger.info("Cached document %s (%s tokens)", name, event.total_tokens)
