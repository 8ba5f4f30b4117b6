from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from companion_core.config import Settings  # noqa: E402
from companion_core.context.manager import ContextConfig  # noqa: E402
from companion_core.memory.manager import MemoryConfig  # noqa: E402
from companion_core.moderation.moderator import ModerationConfig  # noqa: E402
from companion_core.personality.manager import PersonalityConfig  # noqa: E402
from companion_core.storage import InMemoryConversationStore, SqliteConversationStore, build_store  # noqa: E402


_ENV_KEYS = (
    "STORE_BACKEND",
    "SQLITE_PATH",
    "GEMINI_API_KEY",
    "CONTEXT_MAX_WINDOW",
    "MEMORY_MAX_ITEMS",
    "PERSONALITY_DECAY_RATE",
    "MODERATION_BANNED_WORDS",
    "MODERATION_MAX_MESSAGE_LENGTH",
    "GENERATION_TIMEOUT_SECONDS",
    "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults_validate(clean_env: pytest.MonkeyPatch) -> None:
    settings = Settings.from_env()

    settings.validate()
    assert settings.store_backend == "memory"
    assert settings.context_max_window == 10
    assert settings.memory_max_items == 100
    assert settings.generation_enabled is False
    assert settings.log_level == "INFO"


def test_environment_feeds_analyzer_configs(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("CONTEXT_MAX_WINDOW", "6")
    clean_env.setenv("MEMORY_MAX_ITEMS", "20")
    clean_env.setenv("PERSONALITY_DECAY_RATE", "0.25")
    clean_env.setenv("MODERATION_BANNED_WORDS", "Foo, bar ,foo")
    clean_env.setenv("MODERATION_MAX_MESSAGE_LENGTH", "not-a-number")
    settings = Settings.from_env()

    assert ContextConfig.from_settings(settings).max_context_window == 6
    assert MemoryConfig.from_settings(settings).max_memories == 20
    assert PersonalityConfig.from_settings(settings).decay_rate == 0.25
    moderation = ModerationConfig.from_settings(settings)
    assert moderation.banned_words == ("foo", "bar")
    assert moderation.max_message_length == 1000


def test_single_fields_can_be_overridden() -> None:
    config = ContextConfig.from_settings(object(), topic_change_threshold=0.5)

    assert config.topic_change_threshold == 0.5
    assert config.max_context_window == 10


@pytest.mark.parametrize(
    ("key", "value", "message"),
    [
        ("STORE_BACKEND", "postgres", "STORE_BACKEND"),
        ("CONTEXT_MAX_WINDOW", "1", "CONTEXT_MAX_WINDOW"),
        ("PERSONALITY_DECAY_RATE", "1.5", "PERSONALITY_DECAY_RATE"),
        ("GENERATION_TIMEOUT_SECONDS", "0", "GENERATION_TIMEOUT_SECONDS"),
    ],
)
def test_validate_rejects_bad_values(clean_env: pytest.MonkeyPatch, key: str, value: str, message: str) -> None:
    clean_env.setenv(key, value)

    with pytest.raises(ValueError, match=message):
        Settings.from_env().validate()


def test_store_factory_follows_backend(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    assert isinstance(build_store(Settings.from_env()), InMemoryConversationStore)

    clean_env.setenv("STORE_BACKEND", "sqlite")
    clean_env.setenv("SQLITE_PATH", str(tmp_path / "db" / "companion.db"))
    store = build_store(Settings.from_env())
    assert isinstance(store, SqliteConversationStore)
    assert store.db_path == tmp_path / "db" / "companion.db"
