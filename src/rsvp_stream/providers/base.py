from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import PageText


class PageTextProvider(ABC):
    """Paginated text source consumed by the incremental loader."""

    @abstractmethod
    async def init(self) -> int:
        """Open the source and return its total page count."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_page(self, ordinal: int) -> PageText:
        """Return the text of page ``ordinal`` (1-based)."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release resources held by the provider."""
