from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from companion_core.lexicons.json_loader import clear_lexicon_cache, freeze_words, load_lexicon  # noqa: E402
from companion_core.moderation.moderator import ModerationConfig  # noqa: E402


DEFAULTS = {"words": ["alpha"], "nested": {"keep": 1, "replace": 2}}


@pytest.fixture(autouse=True)
def _fresh_cache():
    clear_lexicon_cache()
    yield
    clear_lexicon_cache()


def test_missing_file_returns_a_copy_of_defaults(tmp_path: Path) -> None:
    loaded = load_lexicon("absent.json", DEFAULTS, data_dir=tmp_path)
    loaded["nested"]["keep"] = 99

    assert load_lexicon("absent.json", DEFAULTS, data_dir=tmp_path) == DEFAULTS


def test_json_file_is_deep_merged_over_defaults(tmp_path: Path) -> None:
    (tmp_path / "custom.json").write_text(json.dumps({"nested": {"replace": 5}, "extra": True}), encoding="utf-8")

    loaded = load_lexicon("custom.json", DEFAULTS, data_dir=tmp_path)

    assert loaded == {"words": ["alpha"], "nested": {"keep": 1, "replace": 5}, "extra": True}


def test_edited_file_is_picked_up_by_mtime(tmp_path: Path) -> None:
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({"words": ["beta"]}), encoding="utf-8")
    assert load_lexicon("custom.json", DEFAULTS, data_dir=tmp_path)["words"] == ["beta"]

    path.write_text(json.dumps({"words": ["gamma"]}), encoding="utf-8")
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    assert load_lexicon("custom.json", DEFAULTS, data_dir=tmp_path)["words"] == ["gamma"]


def test_broken_json_falls_back_to_defaults(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="companion_core.lexicons"):
        loaded = load_lexicon("broken.json", DEFAULTS, data_dir=tmp_path)

    assert loaded == DEFAULTS
    assert "Failed to parse lexicon JSON" in caplog.text


def test_freeze_words_normalizes_lists() -> None:
    assert freeze_words([" Foo", "foo", "", None, "Bar"]) == ("foo", "bar")
    assert freeze_words("not a list") == ()


def test_lexicon_dir_env_overrides_moderation_words(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "moderation.json").write_text(json.dumps({"banned_words": ["Qwerty"]}), encoding="utf-8")
    monkeypatch.setenv("COMPANION_LEXICON_DIR", str(tmp_path))

    config = ModerationConfig.from_lexicon()

    assert config.banned_words == ("qwerty",)
    assert "politics" in config.sensitive_topics
