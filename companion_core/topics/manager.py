from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from ..common import Clock, clamp, hours_between, utcnow
from ..lexicons.json_loader import freeze_words, load_lexicon
from ..models import Topic, TopicTransition

logger = logging.getLogger("companion_core.topics")

CONTEXT_HISTORY_LIMIT = 5

_DEFAULTS: dict[str, Any] = {
    "extraction_patterns": [
        r"\b(?:talk about|discuss|regarding|concerning)\s+(\w+)\b",
        r"\b(?:interested in|like|love|enjoy)\s+(\w+)\b",
        r"\b(?:think|feel|believe)\s+(?:about|that)\s+(\w+)\b",
    ],
    "transition_phrases": {
        "forced": ["let's talk about", "can we discuss", "changing the subject", "moving on to"],
        "suggested": ["speaking of", "that reminds me of", "on a related note", "by the way"],
    },
}


@dataclass(frozen=True)
class TopicRules:
    extraction_patterns: tuple[re.Pattern[str], ...]
    forced_phrases: tuple[str, ...]
    suggested_phrases: tuple[str, ...]


def load_topic_rules(filename: str = "topics.json") -> TopicRules:
    raw = load_lexicon(filename, _DEFAULTS)
    patterns: list[re.Pattern[str]] = []
    for item in raw.get("extraction_patterns") or []:
        try:
            compiled = re.compile(str(item), re.IGNORECASE)
        except re.error as exc:
            logger.warning("Skipping invalid topic pattern %r: %s", item, exc)
            continue
        if compiled.groups < 1:
            logger.warning("Topic pattern %r has no capture group; skipping", item)
            continue
        patterns.append(compiled)
    phrases = raw.get("transition_phrases") or {}
    return TopicRules(
        extraction_patterns=tuple(patterns),
        forced_phrases=freeze_words(phrases.get("forced")),
        suggested_phrases=freeze_words(phrases.get("suggested")),
    )


@dataclass(slots=True)
class TopicSuggestion:
    from_topic: str
    to_topic: str
    confidence: float


@dataclass(slots=True)
class TopicSummary:
    current_topic: str | None
    recent_topics: list[str]
    topic_stats: list[dict[str, Any]] = field(default_factory=list)
    suggested_transitions: list[TopicSuggestion] = field(default_factory=list)


class TopicManager:
    """Named topics of one conversation, the current topic and an append-only transition log."""

    def __init__(self, rules: TopicRules | None = None, *, clock: Clock = utcnow) -> None:
        self.rules = rules or load_topic_rules()
        self.clock = clock
        self.topics: dict[str, Topic] = {}
        self.current_topic: str | None = None
        self.topic_history: list[str] = []
        self.transitions: list[TopicTransition] = []
        self._dirty: set[str] = set()
        self._pending_transitions: list[TopicTransition] = []

    def restore(self, topics: Iterable[Topic], transitions: Iterable[TopicTransition] = ()) -> None:
        self.topics = {topic.name: topic for topic in topics}
        self.transitions = sorted(transitions, key=lambda item: item.timestamp)
        self.topic_history = []
        if self.transitions:
            self.topic_history.append(self.transitions[0].from_topic)
            self.topic_history.extend(item.to_topic for item in self.transitions)
        elif self.topics:
            latest = max(self.topics.values(), key=lambda item: item.last_discussed)
            self.topic_history.append(latest.name)
        self.current_topic = self.topic_history[-1] if self.topic_history else None
        self._dirty.clear()
        self._pending_transitions.clear()

    # -- detection ---------------------------------------------------------

    def extract_keywords(self, content: str) -> list[str]:
        found: list[str] = []
        for sentence in re.split(r"[.!?]+", (content or "").lower()):
            for pattern in self.rules.extraction_patterns:
                match = pattern.search(sentence)
                if match and match.group(1) and match.group(1) not in found:
                    found.append(match.group(1))
        return found

    def detect_topics(self, content: str) -> list[str]:
        lowered = (content or "").lower()
        found = [name for name in self.topics if name.lower() in lowered]
        for keyword in self.extract_keywords(content):
            if keyword not in found:
                found.append(keyword)
        return found

    def select_dominant_topic(self, candidates: list[str], content: str, now: datetime | None = None) -> str:
        if len(candidates) == 1:
            return candidates[0]
        current = now or self.clock()
        best_name = candidates[0]
        best_score: float | None = None
        for name in candidates:
            score = 2.0 * len(re.findall(rf"\b{re.escape(name)}\b", content or "", flags=re.IGNORECASE))
            known = self.topics.get(name)
            if known is not None:
                score += 0.5 * known.frequency
                score -= min(0.1 * max(0.0, hours_between(known.last_discussed, current)), 5.0)
                if known.sentiment > 0:
                    score += 1.0
            if best_score is None or score > best_score:
                best_name, best_score = name, score
        return best_name

    def determine_transition_kind(self, content: str) -> str:
        lowered = (content or "").lower()
        if any(phrase in lowered for phrase in self.rules.forced_phrases):
            return "forced"
        if any(phrase in lowered for phrase in self.rules.suggested_phrases):
            return "suggested"
        return "natural"

    # -- mutation ----------------------------------------------------------

    def update_topic(self, content: str, sentiment: float = 0.0) -> str | None:
        """Detect topics in `content`, move the current topic and update stats.

        Returns the dominant topic, or None when nothing was detected.
        """
        detected = self.detect_topics(content)
        if not detected:
            return None

        now = self._monotonic_now()
        dominant = self.select_dominant_topic(detected, content, now)
        if self.current_topic and dominant != self.current_topic:
            transition = TopicTransition(
                from_topic=self.current_topic,
                to_topic=dominant,
                timestamp=now,
                kind=self.determine_transition_kind(content),
                context=content,
            )
            self.transitions.append(transition)
            self._pending_transitions.append(transition)
            logger.debug("Topic transition %s -> %s (%s)", transition.from_topic, dominant, transition.kind)

        self._update_stats(dominant, clamp(float(sentiment), -1.0, 1.0), content, now)

        if dominant != self.current_topic:
            self.topic_history.append(dominant)
            self.current_topic = dominant
        return dominant

    def _monotonic_now(self) -> datetime:
        now = self.clock()
        if self.transitions and now < self.transitions[-1].timestamp:
            return self.transitions[-1].timestamp
        return now

    def _update_stats(self, name: str, sentiment: float, context: str, now: datetime) -> None:
        existing = self.topics.get(name)
        if existing is None:
            existing = Topic(name=name, last_discussed=now, frequency=1, sentiment=sentiment)
            existing.context_history.append(context)
            self.topics[name] = existing
        else:
            existing.frequency += 1
            existing.duration += max(0.0, (now - existing.last_discussed).total_seconds())
            existing.sentiment = clamp(
                (existing.sentiment * (existing.frequency - 1) + sentiment) / existing.frequency,
                -1.0,
                1.0,
            )
            existing.last_discussed = now
            history = deque(existing.context_history, maxlen=CONTEXT_HISTORY_LIMIT)
            history.append(context)
            existing.context_history = list(history)
        self._update_related_topics(existing, context)
        self._dirty.add(name)

    def _update_related_topics(self, topic: Topic, context: str) -> None:
        lowered = (context or "").lower()
        for other in self.topics:
            if other != topic.name and other.lower() in lowered:
                topic.related_topics.add(other)

    def take_changes(self) -> tuple[list[Topic], list[TopicTransition]]:
        """Topics touched and transitions logged since the last call."""
        topics = [self.topics[name] for name in sorted(self._dirty) if name in self.topics]
        transitions = list(self._pending_transitions)
        self._dirty.clear()
        self._pending_transitions.clear()
        return topics, transitions

    # -- reads -------------------------------------------------------------

    def suggest_topic_transitions(self, from_topic: str) -> list[TopicSuggestion]:
        source = self.topics.get(from_topic)
        if source is None:
            return []
        now = self.clock()
        suggestions: list[TopicSuggestion] = []
        for name, candidate in self.topics.items():
            if name == from_topic:
                continue
            confidence = 0.0
            if name in source.related_topics:
                confidence += 0.3
            if candidate.sentiment > 0:
                confidence += 0.2
            if hours_between(candidate.last_discussed, now) > 24:
                confidence += 0.2
            confidence += min(candidate.frequency * 0.1, 0.3)
            if confidence > 0.3:
                suggestions.append(TopicSuggestion(from_topic, name, confidence))
        suggestions.sort(key=lambda item: item.confidence, reverse=True)
        return suggestions[:3]

    def get_topic_summary(self) -> TopicSummary:
        stats = sorted(self.topics.values(), key=lambda item: item.frequency, reverse=True)[:5]
        return TopicSummary(
            current_topic=self.current_topic,
            recent_topics=self.topic_history[-5:],
            topic_stats=[
                {
                    "topic": item.name,
                    "frequency": item.frequency,
                    "duration": item.duration,
                    "sentiment": item.sentiment,
                }
                for item in stats
            ],
            suggested_transitions=self.suggest_topic_transitions(self.current_topic) if self.current_topic else [],
        )
