from __future__ import annotations

from pathlib import Path

from .base import PageTextProvider
from .epub import EpubPageProvider
from .pdf import PdfPageProvider
from .text import TextPageProvider

__all__ = [
    "PageTextProvider",
    "EpubPageProvider",
    "PdfPageProvider",
    "TextPageProvider",
    "provider_for_path",
]


def provider_for_path(path: Path, words_per_page: int = 250) -> PageTextProvider:
    """Pick a provider for ``path`` by its suffix."""
    suffix = path.suffix.lower()
    if suffix == ".pdf":
        return PdfPageProvider(path)
    if suffix == ".epub":
        return EpubPageProvider(path)
    return TextPageProvider.from_path(path, words_per_page=words_per_page)
