from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"﻿{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, aliases: tuple[str, ...] = ()) -> float:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


def _env_list(name: str, aliases: tuple[str, ...] = ()) -> tuple[str, ...]:
    raw = (_env_lookup(name, aliases) or "").strip()
    if not raw:
        return ()
    result: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip()
        if value and value not in result:
            result.append(value)
    return tuple(result)


@dataclass(slots=True)
class Settings:
    store_backend: str
    sqlite_path: Path

    gemini_api_key: str
    gemini_base_url: str
    gemini_model: str
    gemini_temperature: float
    gemini_max_output_tokens: int
    generation_timeout_seconds: float
    generation_max_attempts: int
    generation_rate_limit_requests: int
    generation_rate_limit_window_seconds: float

    context_max_window: int
    context_retention_hours: float
    context_topic_change_threshold: float
    context_max_topic_distance: float

    memory_max_items: int
    memory_min_importance: float

    personality_decay_rate: float
    personality_boost_rate: float

    moderation_max_message_length: int
    moderation_toxicity_threshold: float
    moderation_profanity_threshold: float
    moderation_banned_words: tuple[str, ...]
    moderation_warning_words: tuple[str, ...]
    moderation_sensitive_topics: tuple[str, ...]

    recommendation_limit: int
    lexicon_dir: Path | None
    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        lexicon_dir = _env_str("COMPANION_LEXICON_DIR", "")
        return cls(
            store_backend=_env_str("STORE_BACKEND", "memory").lower(),
            sqlite_path=Path(_env_str("SQLITE_PATH", "./data/companion.db")).expanduser(),
            gemini_api_key=_env_str("GEMINI_API_KEY", ""),
            gemini_base_url=_env_str("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"),
            gemini_model=_env_str("GEMINI_MODEL", "gemini-2.5-flash"),
            gemini_temperature=_env_float("GEMINI_TEMPERATURE", 0.9),
            gemini_max_output_tokens=_env_int("GEMINI_MAX_OUTPUT_TOKENS", 1024),
            generation_timeout_seconds=_env_float("GENERATION_TIMEOUT_SECONDS", 30.0),
            generation_max_attempts=_env_int("GENERATION_MAX_ATTEMPTS", 2),
            generation_rate_limit_requests=_env_int("GENERATION_RATE_LIMIT_REQUESTS", 60),
            generation_rate_limit_window_seconds=_env_float("GENERATION_RATE_LIMIT_WINDOW_SECONDS", 60.0),
            context_max_window=_env_int("CONTEXT_MAX_WINDOW", 10),
            context_retention_hours=_env_float("CONTEXT_RETENTION_HOURS", 24.0),
            context_topic_change_threshold=_env_float("CONTEXT_TOPIC_CHANGE_THRESHOLD", 0.7),
            context_max_topic_distance=_env_float("CONTEXT_MAX_TOPIC_DISTANCE", 0.8),
            memory_max_items=_env_int("MEMORY_MAX_ITEMS", 100),
            memory_min_importance=_env_float("MEMORY_MIN_IMPORTANCE", 0.3),
            personality_decay_rate=_env_float("PERSONALITY_DECAY_RATE", 0.1),
            personality_boost_rate=_env_float("PERSONALITY_BOOST_RATE", 0.2),
            moderation_max_message_length=_env_int("MODERATION_MAX_MESSAGE_LENGTH", 1000),
            moderation_toxicity_threshold=_env_float("MODERATION_TOXICITY_THRESHOLD", 0.8),
            moderation_profanity_threshold=_env_float("MODERATION_PROFANITY_THRESHOLD", 0.7),
            moderation_banned_words=_env_list("MODERATION_BANNED_WORDS"),
            moderation_warning_words=_env_list("MODERATION_WARNING_WORDS"),
            moderation_sensitive_topics=_env_list("MODERATION_SENSITIVE_TOPICS"),
            recommendation_limit=_env_int("RECOMMENDATION_LIMIT", 5),
            lexicon_dir=Path(lexicon_dir).expanduser() if lexicon_dir else None,
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def generation_enabled(self) -> bool:
        return bool(self.gemini_api_key)

    def validate(self) -> None:
        if self.store_backend not in {"memory", "sqlite"}:
            raise ValueError("STORE_BACKEND must be 'memory' or 'sqlite'")
        if self.gemini_api_key == "put_your_gemini_api_key_here":
            raise ValueError("GEMINI_API_KEY is still placeholder")
        if self.generation_timeout_seconds <= 0:
            raise ValueError("GENERATION_TIMEOUT_SECONDS must be > 0")
        if self.generation_max_attempts < 1:
            raise ValueError("GENERATION_MAX_ATTEMPTS must be >= 1")
        if self.generation_rate_limit_requests < 1:
            raise ValueError("GENERATION_RATE_LIMIT_REQUESTS must be >= 1")
        if self.generation_rate_limit_window_seconds <= 0:
            raise ValueError("GENERATION_RATE_LIMIT_WINDOW_SECONDS must be > 0")
        if self.gemini_max_output_tokens < 0:
            raise ValueError("GEMINI_MAX_OUTPUT_TOKENS must be >= 0 (0 disables explicit cap)")

        if self.context_max_window < 2:
            raise ValueError("CONTEXT_MAX_WINDOW must be >= 2")
        if self.context_retention_hours <= 0:
            raise ValueError("CONTEXT_RETENTION_HOURS must be > 0")
        for name, value in (
            ("CONTEXT_TOPIC_CHANGE_THRESHOLD", self.context_topic_change_threshold),
            ("CONTEXT_MAX_TOPIC_DISTANCE", self.context_max_topic_distance),
            ("MEMORY_MIN_IMPORTANCE", self.memory_min_importance),
            ("PERSONALITY_DECAY_RATE", self.personality_decay_rate),
            ("MODERATION_TOXICITY_THRESHOLD", self.moderation_toxicity_threshold),
            ("MODERATION_PROFANITY_THRESHOLD", self.moderation_profanity_threshold),
        ):
            if value < 0.0 or value > 1.0:
                raise ValueError(f"{name} must be in [0, 1]")

        if self.memory_max_items < 1:
            raise ValueError("MEMORY_MAX_ITEMS must be >= 1")
        if self.personality_boost_rate < 0.0:
            raise ValueError("PERSONALITY_BOOST_RATE must be >= 0")
        if self.moderation_max_message_length < 1:
            raise ValueError("MODERATION_MAX_MESSAGE_LENGTH must be >= 1")
        if self.recommendation_limit < 1:
            raise ValueError("RECOMMENDATION_LIMIT must be >= 1")
