"""PDF page text extraction using pdfplumber."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import pdfplumber

from ..errors import ExtractionError, InitializationError
from ..models import PageText
from .base import PageTextProvider

logger = logging.getLogger(__name__)


class PdfPageProvider(PageTextProvider):
    """
    Serves the text layer of each PDF page.

    pdfplumber is synchronous, so extraction runs in a worker thread; a lock
    keeps one extraction at a time on the shared document handle. Pages
    without a text layer (scans) come back empty with ``layout_ok=False``.
    """

    def __init__(self, pdf_path: Path) -> None:
        self._path = Path(pdf_path)
        self._pdf: Any = None
        self._lock = asyncio.Lock()

    async def init(self) -> int:
        if not self._path.exists():
            raise InitializationError(f"PDF file not found: {self._path}")
        try:
            self._pdf = await asyncio.to_thread(pdfplumber.open, str(self._path))
        except Exception as exc:
            raise InitializationError(
                f"Failed to open PDF {self._path}: {exc}"
            ) from exc
        page_count = len(self._pdf.pages)
        logger.info("Opened PDF %s with %s pages", self._path, page_count)
        return page_count

    async def fetch_page(self, ordinal: int) -> PageText:
        if self._pdf is None:
            raise ExtractionError(ordinal, "Provider used before init().")
        if ordinal < 1 or ordinal > len(self._pdf.pages):
            raise ExtractionError(ordinal, f"Page {ordinal} is out of range.")
        async with self._lock:
            try:
                text = await asyncio.to_thread(self._extract, ordinal)
            except Exception as exc:
                raise ExtractionError(
                    ordinal, f"Failed to extract page {ordinal}: {exc}"
                ) from exc
        if not text.strip():
            logger.debug("Page %s of %s has no text layer", ordinal, self._path)
            return PageText(text="", layout_ok=False)
        return PageText(text=text)

    def _extract(self, ordinal: int) -> str:
        page = self._pdf.pages[ordinal - 1]
        return page.extract_text() or ""

    async def close(self) -> None:
        if self._pdf is not None:
            pdf, self._pdf = self._pdf, None
            await asyncio.to_thread(pdf.close)
