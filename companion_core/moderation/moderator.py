from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Iterable

from ..common import Clock, clamp, utcnow
from ..errors import ValidationError
from ..lexicons.json_loader import freeze_words, load_lexicon
from ..models import ModerationIssues, ModerationVerdict

logger = logging.getLogger("companion_core.moderation")

HISTORY_LIMIT = 500
TOXICITY_WEIGHT = 0.4
PROFANITY_WEIGHT = 0.3
SENSITIVE_WEIGHT = 0.2
BANNED_WEIGHT = 0.1

_DEFAULTS: dict[str, Any] = {
    "banned_words": [],
    "warning_words": [],
    "sensitive_topics": ["politics", "religion", "violence", "drugs", "adult content", "discrimination"],
    "toxic_indicators": ["hate", "angry", "stupid", "idiot", "dumb", "kill", "die"],
}


def _merge_words(*groups: Iterable[str]) -> tuple[str, ...]:
    result: list[str] = []
    for group in groups:
        for word in freeze_words(list(group)):
            if word not in result:
                result.append(word)
    return tuple(result)


@dataclass(slots=True)
class ModerationConfig:
    profanity_threshold: float = 0.7
    toxicity_threshold: float = 0.8
    max_message_length: int = 1000
    banned_words: tuple[str, ...] = ()
    warning_words: tuple[str, ...] = ()
    sensitive_topics: tuple[str, ...] = ()
    toxic_indicators: tuple[str, ...] = ()

    @classmethod
    def from_lexicon(cls, filename: str = "moderation.json", **overrides: Any) -> "ModerationConfig":
        raw = load_lexicon(filename, _DEFAULTS)
        base = cls(
            banned_words=freeze_words(raw.get("banned_words")),
            warning_words=freeze_words(raw.get("warning_words")),
            sensitive_topics=freeze_words(raw.get("sensitive_topics")),
            toxic_indicators=freeze_words(raw.get("toxic_indicators")),
        )
        return base.merged(**overrides)

    @classmethod
    def from_settings(cls, settings: object, **overrides: Any) -> "ModerationConfig":
        base = cls.from_lexicon()
        base = replace(
            base,
            profanity_threshold=float(getattr(settings, "moderation_profanity_threshold", base.profanity_threshold)),
            toxicity_threshold=float(getattr(settings, "moderation_toxicity_threshold", base.toxicity_threshold)),
            max_message_length=int(getattr(settings, "moderation_max_message_length", base.max_message_length)),
            banned_words=_merge_words(base.banned_words, getattr(settings, "moderation_banned_words", ())),
            warning_words=_merge_words(base.warning_words, getattr(settings, "moderation_warning_words", ())),
            sensitive_topics=_merge_words(base.sensitive_topics, getattr(settings, "moderation_sensitive_topics", ())),
        )
        return base.merged(**overrides)

    def merged(self, **overrides: Any) -> "ModerationConfig":
        known = {item.name for item in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValidationError(f"unknown moderation settings: {', '.join(unknown)}")
        updates: dict[str, Any] = {}
        for key, value in overrides.items():
            if key in {"banned_words", "warning_words", "sensitive_topics", "toxic_indicators"}:
                updates[key] = freeze_words(list(value or ()))
            else:
                updates[key] = value
        return replace(self, **updates)


@dataclass(slots=True)
class ModerationRecord:
    timestamp: datetime
    content: str
    verdict: ModerationVerdict


@dataclass(slots=True)
class ModerationStats:
    total_moderated: int = 0
    blocked_count: int = 0
    average_score: float = 0.0
    common_issues: dict[str, int] = field(default_factory=dict)


class ContentModerator:
    def __init__(self, config: ModerationConfig | None = None, *, clock: Clock = utcnow) -> None:
        self.config = config or ModerationConfig.from_lexicon()
        self.clock = clock
        self.history: deque[ModerationRecord] = deque(maxlen=HISTORY_LIMIT)

    def update_config(self, **changes: Any) -> None:
        self.config = self.config.merged(**changes)

    def extend_rules(
        self,
        *,
        banned: Iterable[str] = (),
        warning: Iterable[str] = (),
        sensitive: Iterable[str] = (),
    ) -> None:
        self.config = replace(
            self.config,
            banned_words=_merge_words(self.config.banned_words, banned),
            warning_words=_merge_words(self.config.warning_words, warning),
            sensitive_topics=_merge_words(self.config.sensitive_topics, sensitive),
        )

    def moderate_content(self, content: str) -> ModerationVerdict:
        text = content or ""
        issues = ModerationIssues()
        warnings: list[str] = []
        allowed = True
        filtered = text

        if len(text) > self.config.max_message_length:
            allowed = False
            issues.length = True
            warnings.append(f"Message exceeds maximum length of {self.config.max_message_length} characters")

        words = text.lower().split()
        banned = self.detect_banned_words(words)
        if banned:
            allowed = False
            issues.banned_words = banned
            warnings.append("Message contains banned words")
            filtered = self.filter_banned_words(text)

        sensitive = self.detect_sensitive_topics(text)
        if sensitive:
            issues.sensitive_topics = True
            warnings.append(f"Message contains sensitive topics: {', '.join(sensitive)}")

        toxicity = self.calculate_toxicity_score(words)
        if toxicity > self.config.toxicity_threshold:
            allowed = False
            issues.toxicity = True
            warnings.append("Message contains toxic content")

        profanity = self.calculate_profanity_score(words)
        if profanity > self.config.profanity_threshold:
            issues.profanity = True
            warnings.append("Message contains potentially inappropriate language")

        score = (
            toxicity * TOXICITY_WEIGHT
            + profanity * PROFANITY_WEIGHT
            + (1.0 if sensitive else 0.0) * SENSITIVE_WEIGHT
            + min(len(banned) / 5.0, 1.0) * BANNED_WEIGHT
        )
        verdict = ModerationVerdict(
            is_allowed=allowed,
            warnings=warnings,
            filtered_content=filtered,
            moderation_score=clamp(score, 0.0, 1.0),
            detected_issues=issues,
        )
        self.history.append(ModerationRecord(self.clock(), text, verdict))
        if not allowed:
            logger.info("Moderation blocked message: %s", "; ".join(warnings))
        elif warnings:
            logger.info("Moderation warning: %s", "; ".join(warnings))
        return verdict

    def detect_banned_words(self, words: list[str]) -> list[str]:
        return [banned for banned in self.config.banned_words if any(banned in word for word in words)]

    def filter_banned_words(self, content: str) -> str:
        filtered = content
        for word in self.config.banned_words:
            filtered = re.sub(re.escape(word), "*" * len(word), filtered, flags=re.IGNORECASE)
        return filtered

    def detect_sensitive_topics(self, content: str) -> list[str]:
        lowered = (content or "").lower()
        return [topic for topic in self.config.sensitive_topics if topic in lowered]

    def calculate_toxicity_score(self, words: list[str]) -> float:
        if not words:
            return 0.0
        toxic = sum(1 for word in words if any(indicator in word for indicator in self.config.toxic_indicators))
        return toxic / len(words)

    def calculate_profanity_score(self, words: list[str]) -> float:
        if not words:
            return 0.0
        hits = sum(1 for warning in self.config.warning_words if any(warning in word for word in words))
        return min(hits / len(words), 1.0)

    def get_moderation_stats(self) -> ModerationStats:
        stats = ModerationStats(total_moderated=len(self.history))
        if not self.history:
            return stats
        stats.blocked_count = sum(1 for record in self.history if not record.verdict.is_allowed)
        stats.average_score = sum(record.verdict.moderation_score for record in self.history) / len(self.history)
        for record in self.history:
            for issue, count in record.verdict.detected_issues.counts().items():
                stats.common_issues[issue] = stats.common_issues.get(issue, 0) + count
        return stats
