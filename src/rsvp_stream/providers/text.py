from __future__ import annotations

from pathlib import Path
from typing import List

from ..errors import ExtractionError, InitializationError
from ..models import PageText
from ..tokenization import PARAGRAPH_SEPARATOR, split_paragraphs
from .base import PageTextProvider

FORM_FEED = "\f"


class TextPageProvider(PageTextProvider):
    """
    Serves an in-memory text as pages.

    Form feeds are honoured as explicit page breaks. Without them, whole
    paragraphs are packed into pages of roughly ``words_per_page`` words.
    """

    def __init__(self, text: str, words_per_page: int = 250) -> None:
        self._text = text
        self._words_per_page = max(1, words_per_page)
        self._pages: List[str] | None = None

    @classmethod
    def from_path(cls, path: Path, words_per_page: int = 250) -> "TextPageProvider":
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise InitializationError(f"Unable to read text file: {path}") from exc
        return cls(text, words_per_page=words_per_page)

    async def init(self) -> int:
        self._pages = paginate_text(self._text, self._words_per_page)
        return len(self._pages)

    async def fetch_page(self, ordinal: int) -> PageText:
        if self._pages is None:
            raise ExtractionError(ordinal, "Provider used before init().")
        if ordinal < 1 or ordinal > len(self._pages):
            raise ExtractionError(ordinal, f"Page {ordinal} is out of range.")
        return PageText(text=self._pages[ordinal - 1])


def paginate_text(text: str, words_per_page: int) -> List[str]:
    """Split text into pages; empty or whitespace-only text has no pages."""
    if FORM_FEED in text:
        return [page.strip() for page in text.split(FORM_FEED) if page.strip()]

    pages: List[str] = []
    current: List[str] = []
    current_words = 0
    for paragraph in split_paragraphs(text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        words = len(paragraph.split())
        if current and current_words + words > words_per_page:
            pages.append(PARAGRAPH_SEPARATOR.join(current))
            current, current_words = [], 0
        current.append(paragraph)
        current_words += words
    if current:
        pages.append(PARAGRAPH_SEPARATOR.join(current))
    return pages
