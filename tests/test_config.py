from pathlib import Path

import pytest

from rsvp_stream.config import (
    LoaderSettings,
    ReaderConfig,
    config_from_dict,
    config_from_yaml,
    load_config,
)
from rsvp_stream.errors import ConfigurationError


def test_defaults_match_reader_behaviour():
    cfg = load_config(None)

    assert cfg.wpm == 300
    assert cfg.profile == "normal"
    assert cfg.loop is False
    assert cfg.loader == LoaderSettings()
    assert cfg.loader.initial_pages == 3
    assert cfg.loader.lookahead_tokens == 10
    assert cfg.loader.words_per_page_estimate == 250


def test_config_from_dict_builds_nested_loader_settings():
    cfg = config_from_dict(
        {"wpm": 450, "profile": "speed", "loader": {"initial_pages": 1}, "bogus": 1}
    )

    assert cfg.wpm == 450
    assert cfg.profile == "speed"
    assert cfg.loader.initial_pages == 1
    assert cfg.loader.lookahead_tokens == 10


def test_config_from_dict_rejects_non_mapping_loader():
    with pytest.raises(ConfigurationError):
        config_from_dict({"loader": [1, 2]})


def test_config_from_yaml_reads_file(tmp_path: Path):
    path = tmp_path / "reader.yaml"
    path.write_text(
        "wpm: 600\nloop: true\nloader:\n  background_yield_ms: 0\n", encoding="utf-8"
    )

    cfg = config_from_yaml(path)

    assert cfg.wpm == 600
    assert cfg.loop is True
    assert cfg.loader.background_yield_ms == 0


@pytest.mark.parametrize("contents", ["- just\n- a list\n", "wpm: [unclosed\n"])
def test_config_from_yaml_rejects_bad_documents(tmp_path: Path, contents: str):
    path = tmp_path / "bad.yaml"
    path.write_text(contents, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        config_from_yaml(path)


def test_empty_yaml_gives_defaults(tmp_path: Path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert config_from_yaml(path) == ReaderConfig()


def test_playback_settings_clamp_rate():
    """Rates outside the configured range are pulled back into it."""
    assert ReaderConfig(wpm=5).playback_settings().wpm == 50
    assert ReaderConfig(wpm=9000).playback_settings().wpm == 1500
    assert ReaderConfig(wpm=900, max_wpm=800).playback_settings().wpm == 800


def test_to_dict_round_trips_through_config_from_dict():
    cfg = ReaderConfig(wpm=320, loader=LoaderSettings(initial_pages=5))
    assert config_from_dict(cfg.to_dict()) == cfg
