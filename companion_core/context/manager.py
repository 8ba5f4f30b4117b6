from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, fields, replace
from datetime import timedelta
from typing import Any, Iterable

from ..common import Clock, clamp, split_words, tokenize, utcnow
from ..lexicons.json_loader import freeze_words, load_lexicon
from ..models import ContinuityReport, Turn

logger = logging.getLogger("companion_core.context")

GAP_MINUTES = 30
TOPIC_DECAY = 0.8
RECENT_TURNS = 5

_DEFAULTS: dict[str, Any] = {
    "topics": {
        "personal": {
            "keywords": ["i", "me", "my", "mine", "feel", "think", "want", "need"],
            "weight": 1.0,
        },
        "relationships": {
            "keywords": ["family", "friend", "love", "relationship", "together", "us", "we"],
            "weight": 0.9,
        },
        "activities": {
            "keywords": ["do", "play", "work", "study", "learn", "create", "make"],
            "weight": 0.7,
        },
        "emotions": {
            "keywords": ["happy", "sad", "angry", "excited", "worried", "scared", "love", "hate"],
            "weight": 0.8,
        },
        "preferences": {
            "keywords": ["like", "dislike", "prefer", "favorite", "enjoy", "hate"],
            "weight": 0.6,
        },
    }
}


@dataclass(frozen=True)
class TopicKeywords:
    name: str
    keywords: tuple[str, ...]
    weight: float


def load_context_topics(filename: str = "context_topics.json") -> tuple[TopicKeywords, ...]:
    raw = load_lexicon(filename, _DEFAULTS)
    result: list[TopicKeywords] = []
    for name, entry in (raw.get("topics") or {}).items():
        if not isinstance(entry, dict):
            continue
        keywords = freeze_words(entry.get("keywords"))
        if keywords:
            result.append(TopicKeywords(str(name), keywords, float(entry.get("weight", 1.0))))
    return tuple(result)


@dataclass(slots=True)
class ContextConfig:
    max_context_window: int = 10
    relevance_threshold: float = 0.6
    context_retention_hours: float = 24.0
    topic_change_threshold: float = 0.7
    max_topic_distance: float = 0.8

    @classmethod
    def from_settings(cls, settings: object, **overrides: Any) -> "ContextConfig":
        defaults = cls()
        base = cls(
            max_context_window=int(getattr(settings, "context_max_window", defaults.max_context_window)),
            relevance_threshold=defaults.relevance_threshold,
            context_retention_hours=float(
                getattr(settings, "context_retention_hours", defaults.context_retention_hours)
            ),
            topic_change_threshold=float(
                getattr(settings, "context_topic_change_threshold", defaults.topic_change_threshold)
            ),
            max_topic_distance=float(getattr(settings, "context_max_topic_distance", defaults.max_topic_distance)),
        )
        return base.merged(**overrides)

    def merged(self, **overrides: Any) -> "ContextConfig":
        known = {item.name for item in fields(self)}
        return replace(self, **{key: value for key, value in overrides.items() if key in known})


def calculate_topic_distance(first: dict[str, float], second: dict[str, float]) -> float:
    """Distance of two topic maps as sum(|a-b|) / sum(max(a, b)) over their keys.

    Identical maps score 0 and maps with no shared key score 1.
    Two empty maps have no evidence of shared context and report 1.
    """
    distance = 0.0
    total_weight = 0.0
    for topic in set(first) | set(second):
        a = max(0.0, first.get(topic, 0.0))
        b = max(0.0, second.get(topic, 0.0))
        weight = max(a, b)
        if weight <= 0:
            continue
        distance += abs(a - b)
        total_weight += weight
    if total_weight <= 0:
        return 1.0
    return clamp(distance / total_weight, 0.0, 1.0)


class ContextManager:
    def __init__(
        self,
        config: ContextConfig | None = None,
        *,
        topics: tuple[TopicKeywords, ...] | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.config = config or ContextConfig()
        self.topics = topics if topics is not None else load_context_topics()
        self.clock = clock
        self.active_context: deque[Turn] = deque(maxlen=max(1, int(self.config.max_context_window)))
        self.current_topics: dict[str, float] = {}

    def restore(self, turns: Iterable[Turn]) -> None:
        """Refill the window from persisted turns, oldest first."""
        self.active_context.clear()
        self.current_topics.clear()
        for turn in sorted((t for t in turns if not t.deleted), key=lambda t: t.timestamp):
            self.add_message(turn)

    def add_message(self, turn: Turn) -> None:
        self.active_context.append(turn)
        self.update_current_topics(self.analyze_topics(turn.content))

    def remove_message(self, turn_id: str) -> bool:
        kept = [turn for turn in self.active_context if turn.id != turn_id]
        if len(kept) == len(self.active_context):
            return False
        self.active_context.clear()
        self.active_context.extend(kept)
        return True

    def analyze_topics(self, text: str) -> dict[str, float]:
        words = split_words(text)
        result: dict[str, float] = {}
        for topic in self.topics:
            score = 0.0
            matches = 0
            for keyword in topic.keywords:
                count = sum(1 for word in words if keyword in word)
                if count:
                    score += count * topic.weight
                    matches += 1
            if matches:
                result[topic.name] = score / len(topic.keywords)
        return result

    def update_current_topics(self, new_topics: dict[str, float]) -> None:
        for name in list(self.current_topics):
            self.current_topics[name] *= TOPIC_DECAY
        for name, score in new_topics.items():
            self.current_topics[name] = self.current_topics.get(name, 0.0) + score

    def calculate_topic_distance(self, first: dict[str, float], second: dict[str, float]) -> float:
        return calculate_topic_distance(first, second)

    def analyze_context_continuity(self) -> ContinuityReport:
        gaps: list[str] = []
        topic_shifts: list[str] = []
        is_coherent = True

        turns = list(self.active_context)
        for previous, current in zip(turns, turns[1:]):
            elapsed = current.timestamp - previous.timestamp
            if elapsed > timedelta(minutes=GAP_MINUTES):
                gaps.append(f"Time gap of {round(elapsed.total_seconds() / 60)} minutes detected")
                is_coherent = False

            previous_topics = self.analyze_topics(previous.content)
            current_topics = self.analyze_topics(current.content)
            distance = calculate_topic_distance(previous_topics, current_topics)
            if distance > self.config.topic_change_threshold:
                topic_shifts.append(
                    f"Topic shift from {_top_names(previous_topics)} to {_top_names(current_topics)}"
                )
            if distance > self.config.max_topic_distance:
                is_coherent = False

        return ContinuityReport(is_coherent=is_coherent, gaps=gaps, topic_shifts=topic_shifts)

    def get_relevant_context(self, query: str) -> list[Turn]:
        """Last few turns plus older window turns that share words and topics with `query`."""
        turns = list(self.active_context)
        recent = turns[-RECENT_TURNS:]
        older = turns[:-RECENT_TURNS]
        query_tokens = tokenize(query)
        query_topics = self.analyze_topics(query)

        ranked: list[tuple[float, Turn]] = []
        for turn in older:
            if not query_tokens & tokenize(turn.content):
                continue
            distance = calculate_topic_distance(query_topics, self.analyze_topics(turn.content))
            if distance < self.config.topic_change_threshold:
                ranked.append((distance, turn))
        ranked.sort(key=lambda item: item[0])
        return recent + [turn for _, turn in ranked]

    def get_context_summary(self) -> str:
        if not self.active_context:
            return "No active context."

        top = sorted(self.current_topics.items(), key=lambda item: item[1], reverse=True)[:3]
        topics_line = ", ".join(f"{name} ({round(score * 100)}%)" for name, score in top)
        recent = list(self.active_context)[-3:]
        lines = [f"{turn.role}: {_clip(turn.content)}" for turn in recent]
        return f"Current topics: {topics_line}\n\nRecent messages:\n" + "\n".join(lines)

    def get_active_context(self) -> list[Turn]:
        return list(self.active_context)

    def prune_old_context(self) -> int:
        cutoff = self.clock() - timedelta(hours=self.config.context_retention_hours)
        kept = [turn for turn in self.active_context if turn.timestamp > cutoff]
        removed = len(self.active_context) - len(kept)
        if removed:
            self.active_context.clear()
            self.active_context.extend(kept)
            logger.debug("Pruned %s context turns older than %s", removed, cutoff.isoformat())
        return removed


def _top_names(topics: dict[str, float]) -> str:
    ranked = sorted(topics.items(), key=lambda item: item[1], reverse=True)[:2]
    return "/".join(name for name, _ in ranked) or "none"


def _clip(content: str, limit: int = 100) -> str:
    return content[:limit] + ("..." if len(content) > limit else "")
