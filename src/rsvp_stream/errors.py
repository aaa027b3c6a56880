from __future__ import annotations


class ReaderError(RuntimeError):
    """Base class for errors raised by the reading pipeline."""


class ExtractionError(ReaderError):
    """Raised when the text of a single page cannot be obtained."""

    def __init__(self, ordinal: int, message: str | None = None) -> None:
        self.ordinal = ordinal
        super().__init__(message or f"Unable to extract text for page {ordinal}.")


class InitializationError(ReaderError):
    """Raised when a paginated source cannot be opened at all."""


class ConfigurationError(ReaderError):
    """Raised for invalid reading rates, profiles, or configuration files."""
