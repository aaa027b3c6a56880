from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import yaml

from .errors import ConfigurationError
from .pacing import DEFAULT_PROFILE, MAX_WPM, MIN_WPM, clamp_wpm


@dataclass(slots=True)
class LoaderSettings:
    """Configuration block for incremental page loading."""

    initial_pages: int = 3
    lookahead_tokens: int = 10
    background_yield_ms: float = 50.0
    failure_backoff_ms: float = 100.0
    words_per_page_estimate: int = 250


@dataclass(slots=True)
class PlaybackSettings:
    """Rate, pause profile, and looping used by the playback scheduler."""

    wpm: int = 300
    profile: str = DEFAULT_PROFILE
    loop: bool = False


@dataclass(slots=True)
class ReaderConfig:
    """Configuration options for a reading session."""

    wpm: int = 300
    profile: str = DEFAULT_PROFILE
    loop: bool = False
    min_wpm: int = MIN_WPM
    max_wpm: int = MAX_WPM
    loader: LoaderSettings = field(default_factory=LoaderSettings)

    def to_dict(self) -> dict[str, Any]:
        """Return a mutable dictionary representation of the configuration."""
        return dict(asdict(self))

    def playback_settings(self) -> PlaybackSettings:
        """Playback settings with the rate clamped to the configured range."""
        return PlaybackSettings(
            wpm=clamp_wpm(self.wpm, self.min_wpm, self.max_wpm),
            profile=self.profile,
            loop=self.loop,
        )


def _build_kwargs(data: Mapping[str, Any]) -> dict[str, Any]:
    allowed = {field.name for field in fields(ReaderConfig)}
    kwargs = {key: data[key] for key in data if key in allowed}
    if "loader" in data:
        loader_value = data["loader"]
        if isinstance(loader_value, LoaderSettings):
            kwargs["loader"] = loader_value
        elif isinstance(loader_value, Mapping):
            kwargs["loader"] = _build_loader_settings(loader_value)
        else:
            raise ConfigurationError("'loader' must be a mapping.")
    return kwargs


def _build_loader_settings(data: Mapping[str, Any]) -> LoaderSettings:
    loader_allowed = {field.name for field in fields(LoaderSettings)}
    filtered = {key: data[key] for key in data if key in loader_allowed}
    return LoaderSettings(**filtered)


def config_from_dict(data: Mapping[str, Any] | None) -> ReaderConfig:
    """Build a ReaderConfig from a dictionary-like input."""
    if data is None:
        return ReaderConfig()
    return ReaderConfig(**_build_kwargs(data))


def config_from_yaml(path: str | Path) -> ReaderConfig:
    """Load configuration from a YAML file."""
    contents = Path(path).read_text(encoding="utf-8")
    try:
        parsed = yaml.safe_load(contents) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid configuration YAML: {path}") from exc
    if not isinstance(parsed, MutableMapping):
        raise ConfigurationError("Configuration YAML must define a mapping.")
    return config_from_dict(parsed)


def load_config(path: str | Path | None = None) -> ReaderConfig:
    """Load configuration from YAML when provided, otherwise return defaults."""
    if path is None:
        return ReaderConfig()
    return config_from_yaml(path)
