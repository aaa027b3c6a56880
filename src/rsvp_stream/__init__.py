"""
rsvp_stream plays text one word at a time, loading paginated documents
incrementally while playback is already running.
"""

from __future__ import annotations

from .config import ReaderConfig, config_from_dict, config_from_yaml, load_config
from .errors import (
    ConfigurationError,
    ExtractionError,
    InitializationError,
    ReaderError,
)
from .loader import IncrementalLoader
from .models import Token, WordRange
from .pacing import PAUSE_PROFILES, dwell_ms, get_profile
from .scheduler import PlaybackScheduler
from .session import DocumentCache, ReaderSession, content_fingerprint
from .tokenization import tokenize

__all__ = [
    "ReaderConfig",
    "config_from_dict",
    "config_from_yaml",
    "load_config",
    "ReaderError",
    "ExtractionError",
    "InitializationError",
    "ConfigurationError",
    "IncrementalLoader",
    "PlaybackScheduler",
    "ReaderSession",
    "DocumentCache",
    "content_fingerprint",
    "Token",
    "WordRange",
    "PAUSE_PROFILES",
    "dwell_ms",
    "get_profile",
    "tokenize",
]

__version__ = "0.1.0"
