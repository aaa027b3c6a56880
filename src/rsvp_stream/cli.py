from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Tuple, TypedDict

import typer
import yaml

from .config import ReaderConfig, load_config
from .errors import ConfigurationError, InitializationError
from .events import AdvanceEvent
from .loader import IncrementalLoader
from .models import Token
from .pacing import (
    base_interval_ms,
    dwell_ms,
    estimate_reading_time_ms,
    get_profile,
    profile_table,
)
from .providers import provider_for_path
from .session import ReaderSession

app = typer.Typer(help="RSVP stream reader CLI.", no_args_is_help=True)

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class TokenPayload(TypedDict):
    index: int
    text: str
    paragraph_end: bool


class TimingPayload(TypedDict):
    index: int
    text: str
    dwell_ms: int


@app.callback()
def configure_logging(
    log_level: str = typer.Option(
        "WARNING", "--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)."
    ),
) -> None:
    """RSVP stream reader CLI."""
    level = log_level.upper()
    if level not in LOG_LEVELS:
        raise typer.BadParameter(
            f"Unknown log level {log_level!r}.", param_hint="--log-level"
        )
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def tokenize(
    input_path: Path = typer.Option(
        ..., exists=True, readable=True, dir_okay=False, file_okay=True
    ),
    config: Path | None = typer.Option(None, "--config", "-c"),
) -> None:
    """Tokenize a document and emit the tokens as JSON."""
    cfg = _load_config(config)
    tokens, failed = _read_document(input_path, cfg)
    payload: List[TokenPayload] = [
        {"index": idx, "text": token.text, "paragraph_end": token.is_paragraph_end}
        for idx, token in enumerate(tokens)
    ]
    typer.echo(
        json.dumps(
            {"count": len(payload), "failed_pages": failed, "tokens": payload},
            indent=2,
            ensure_ascii=False,
        )
    )


@app.command()
def timings(
    input_path: Path = typer.Option(
        ..., exists=True, readable=True, dir_okay=False, file_okay=True
    ),
    config: Path | None = typer.Option(None, "--config", "-c"),
    wpm: int | None = typer.Option(None, "--wpm", help="Reading rate override."),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Pause profile (relaxed, normal, speed)."
    ),
) -> None:
    """Emit the dwell time of every token plus the total reading time as JSON."""
    cfg = _load_config(config)
    _apply_playback_overrides(cfg, wpm, profile, None)
    settings = cfg.playback_settings()
    pause_profile = get_profile(settings.profile)
    base = base_interval_ms(settings.wpm)
    tokens, _ = _read_document(input_path, cfg)

    total = estimate_reading_time_ms(tokens, pause_profile, settings.wpm)
    rows: List[TimingPayload] = []
    for idx, token in enumerate(tokens):
        dwell = dwell_ms(token, pause_profile, base) or 0
        rows.append({"index": idx, "text": token.text, "dwell_ms": dwell})
    typer.echo(
        json.dumps(
            {
                "wpm": settings.wpm,
                "profile": pause_profile.name,
                "base_interval_ms": base,
                "total_ms": total,
                "tokens": rows,
            },
            indent=2,
            ensure_ascii=False,
        )
    )


@app.command()
def play(
    input_path: Path = typer.Option(
        ..., exists=True, readable=True, dir_okay=False, file_okay=True
    ),
    config: Path | None = typer.Option(None, "--config", "-c"),
    wpm: int | None = typer.Option(None, "--wpm", help="Reading rate override."),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Pause profile (relaxed, normal, speed)."
    ),
    loop: bool | None = typer.Option(
        None, "--loop/--no-loop", help="Restart from the first token at the end."
    ),
    quick_start: bool = typer.Option(
        True,
        "--quick-start/--full-load",
        help="Start after the first pages instead of loading the whole document.",
    ),
) -> None:
    """Render the document one token per line at the configured pace."""
    cfg = _load_config(config)
    _apply_playback_overrides(cfg, wpm, profile, loop)
    try:
        asyncio.run(_play(input_path, cfg, quick_start))
    except InitializationError as exc:
        raise typer.BadParameter(str(exc), param_hint="--input-path") from exc
    except KeyboardInterrupt:
        typer.echo("Stopped.", err=True)


@app.command()
def profiles() -> None:
    """List the pause profiles as JSON."""
    typer.echo(json.dumps(profile_table(), indent=2))


@app.command("print-config")
def print_config(
    config: Path | None = typer.Option(None, "--config", "-c"),
) -> None:
    """Print the effective configuration (defaults when no file is given) as YAML."""
    cfg = _load_config(config)
    typer.echo(yaml.safe_dump(cfg.to_dict(), sort_keys=False))


def main() -> None:
    app()


def _load_config(path: Path | None) -> ReaderConfig:
    try:
        return load_config(path)
    except (ConfigurationError, OSError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc


def _apply_playback_overrides(
    config: ReaderConfig,
    wpm: int | None,
    profile: str | None,
    loop: bool | None,
) -> None:
    if wpm is not None:
        if wpm <= 0:
            raise typer.BadParameter("Rate must be positive.", param_hint="--wpm")
        config.wpm = wpm
    if profile is not None:
        try:
            get_profile(profile)
        except ConfigurationError as exc:
            raise typer.BadParameter(str(exc), param_hint="--profile") from exc
        config.profile = profile.strip().lower()
    if loop is not None:
        config.loop = loop


def _read_document(
    input_path: Path, config: ReaderConfig
) -> Tuple[List[Token], List[int]]:
    try:
        return asyncio.run(_load_all_tokens(input_path, config))
    except InitializationError as exc:
        raise typer.BadParameter(str(exc), param_hint="--input-path") from exc


async def _load_all_tokens(
    input_path: Path, config: ReaderConfig
) -> Tuple[List[Token], List[int]]:
    provider = provider_for_path(
        input_path, words_per_page=config.loader.words_per_page_estimate
    )
    loader = IncrementalLoader(provider, config.loader, name=input_path.name)
    try:
        await loader.init()
        tokens = await loader.load_initial(loader.total_pages)
        return list(tokens), loader.failed_pages
    finally:
        await loader.aclose()


async def _play(input_path: Path, config: ReaderConfig, quick_start: bool) -> None:
    session = ReaderSession(config)

    def _render(event: AdvanceEvent) -> None:
        typer.echo(event.token.text)
        if event.token.is_paragraph_end:
            typer.echo("")

    session.scheduler.advance.subscribe(_render)
    try:
        provider = provider_for_path(
            input_path, words_per_page=config.loader.words_per_page_estimate
        )
        await session.open_document(
            provider, name=input_path.name, quick_start=quick_start
        )
        if not session.play():
            raise typer.BadParameter("Rate must be positive.", param_hint="--wpm")
        await session.wait_until_finished()
    finally:
        await session.aclose()


if __name__ == "__main__":
    main()
