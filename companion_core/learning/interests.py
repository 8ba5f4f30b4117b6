from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from ..common import Clock, clamp, utcnow
from ..lexicons.json_loader import freeze_words, load_lexicon
from ..models import Interest, Preference

logger = logging.getLogger("companion_core.learning")

NEW_INTEREST_CONFIDENCE = 0.3
CONFIDENCE_STEP = 0.1
PREFERENCE_HIT = 0.3
PREFERENCE_FLOOR = 0.3
PREFERENCE_CONTEXT_LIMIT = 5
HISTORY_LIMIT = 100
SUGGESTION_LIMIT = 5

_DEFAULTS: dict[str, Any] = {
    "interest_categories": {
        "activities": ["sports", "reading", "gaming", "cooking", "travel", "music", "art"],
        "entertainment": ["movies", "books", "shows", "games", "music", "artists"],
        "topics": ["technology", "science", "politics", "culture", "fashion", "food"],
        "social": ["family", "friends", "dating", "socializing", "community"],
        "lifestyle": ["health", "fitness", "food", "fashion", "home", "work"],
    },
    "preference_types": {
        "communication": {
            "direct": ["straightforward", "straight-forward", "straight forward", "direct", "exactly", "precisely"],
            "indirect": ["maybe", "perhaps", "possibly", "kind of", "sort of"],
            "formal": ["proper", "formal", "respectful", "professional"],
            "casual": ["casual", "relaxed", "chill", "easygoing", "easy-going"],
            "detailed": ["detail", "details", "detailed", "thorough", "in depth", "explain"],
            "brief": ["brief", "short", "quick", "concise", "tl;dr"],
        },
        "interaction": {
            "frequent": ["often", "every day", "daily", "frequently", "all the time"],
            "occasional": ["sometimes", "occasionally", "now and then", "once in a while"],
            "deep": ["deep", "deeply", "meaningful", "profound"],
            "light": ["light", "lighthearted", "simple", "easy"],
            "serious": ["serious", "important", "crucial", "significant"],
            "playful": ["playful", "silly", "tease", "teasing", "goofy"],
        },
        "content": {
            "intellectual": ["idea", "ideas", "theory", "philosophy", "concept"],
            "emotional": ["feel", "feelings", "emotion", "emotional", "heart"],
            "practical": ["practical", "useful", "how to", "tips", "advice"],
            "creative": ["creative", "imagine", "story", "design", "invent"],
            "social": ["people", "party", "together", "social", "hang out"],
            "technical": ["code", "technical", "software", "algorithm", "engineering"],
        },
        "style": {
            "humor": ["fun", "funny", "joke", "jokes", "lol", "haha", "😄", "😂"],
            "sarcasm": ["sarcasm", "sarcastic", "yeah right", "sure thing"],
            "empathy": ["understand", "empathy", "compassion", "support"],
            "logic": ["logic", "logical", "reason", "therefore", "evidence"],
            "enthusiasm": ["awesome", "amazing", "excited", "love it"],
            "calmness": ["calm", "peaceful", "quiet", "relax"],
        },
    },
}


@dataclass(frozen=True)
class InterestLexicon:
    categories: dict[str, tuple[str, ...]]
    preference_indicators: dict[str, dict[str, re.Pattern[str]]]

    @property
    def all_topics(self) -> tuple[str, ...]:
        seen: list[str] = []
        for topics in self.categories.values():
            for topic in topics:
                if topic not in seen:
                    seen.append(topic)
        return tuple(seen)


def _indicator_pattern(words: tuple[str, ...]) -> re.Pattern[str] | None:
    parts: list[str] = []
    for word in words:
        escaped = re.escape(word)
        prefix = r"\b" if re.match(r"\w", word) else ""
        suffix = r"\b" if re.search(r"\w$", word) else ""
        parts.append(f"{prefix}{escaped}{suffix}")
    if not parts:
        return None
    return re.compile("|".join(parts), re.IGNORECASE)


def load_interest_lexicon(filename: str = "interests.json") -> InterestLexicon:
    raw = load_lexicon(filename, _DEFAULTS)
    categories = {
        str(name): freeze_words(words)
        for name, words in (raw.get("interest_categories") or {}).items()
        if freeze_words(words)
    }
    indicators: dict[str, dict[str, re.Pattern[str]]] = {}
    for category, values in (raw.get("preference_types") or {}).items():
        if not isinstance(values, dict):
            continue
        compiled: dict[str, re.Pattern[str]] = {}
        for value, words in values.items():
            pattern = _indicator_pattern(freeze_words(words))
            if pattern is not None:
                compiled[str(value)] = pattern
        if compiled:
            indicators[str(category)] = compiled
    return InterestLexicon(categories=categories, preference_indicators=indicators)


@dataclass(slots=True)
class InteractionRecord:
    timestamp: datetime
    topic: str
    sentiment: float
    context: str


@dataclass(slots=True)
class InterestSummary:
    top_interests: list[dict[str, Any]] = field(default_factory=list)
    recent_preferences: list[dict[str, Any]] = field(default_factory=list)
    suggested_topics: list[str] = field(default_factory=list)


class InterestLearner:
    def __init__(self, lexicon: InterestLexicon | None = None, *, clock: Clock = utcnow) -> None:
        self.lexicon = lexicon or load_interest_lexicon()
        self.clock = clock
        self.interests: dict[str, Interest] = {}
        self.preferences: dict[str, Preference] = {}
        self.interaction_history: deque[InteractionRecord] = deque(maxlen=HISTORY_LIMIT)
        self.category_exploration: dict[str, int] = {}
        self._dirty_interests: set[str] = set()
        self._dirty_preferences: set[str] = set()

    def restore(self, interests: Iterable[Interest] = (), preferences: Iterable[Preference] = ()) -> None:
        self.interests = {item.topic: item for item in interests}
        self.preferences = {item.key: item for item in preferences}
        self._dirty_interests.clear()
        self._dirty_preferences.clear()

    def process_message(self, content: str, sentiment: float = 0.0) -> tuple[list[str], list[Preference]]:
        """Learn from one user message; returns the topics seen and the preferences touched."""
        value = clamp(float(sentiment), -1.0, 1.0)
        now = self.clock()
        topics = self.extract_topics(content)
        for topic in topics:
            self._update_interest(topic, value, content)
            self.interaction_history.append(InteractionRecord(now, topic, value, content))

        touched: list[Preference] = []
        for category, pref_value, confidence in self.infer_preferences(content):
            touched.append(self._update_preference(category, pref_value, confidence, content))
        return topics, touched

    def extract_topics(self, content: str) -> list[str]:
        lowered = (content or "").lower()
        return [topic for topic in self.lexicon.all_topics if topic in lowered]

    def infer_preferences(self, content: str) -> list[tuple[str, str, float]]:
        found: list[tuple[str, str, float]] = []
        for category, indicators in self.lexicon.preference_indicators.items():
            for value, pattern in indicators.items():
                matches = sum(1 for _ in pattern.finditer(content or ""))
                confidence = min(matches * PREFERENCE_HIT, 1.0)
                if confidence > PREFERENCE_FLOOR:
                    found.append((category, value, confidence))
        return found

    def _find_related(self, topic: str, context: str) -> set[str]:
        lowered = (context or "").lower()
        return {other for other in self.lexicon.all_topics if other != topic and other in lowered}

    def _update_interest(self, topic: str, sentiment: float, context: str) -> None:
        now = self.clock()
        existing = self.interests.get(topic)
        if existing is None:
            self.interests[topic] = Interest(
                topic=topic,
                sentiment=sentiment,
                confidence=NEW_INTEREST_CONFIDENCE,
                frequency=1,
                last_updated=now,
                related_topics=self._find_related(topic, context),
            )
        else:
            existing.sentiment = clamp(
                (existing.sentiment * existing.frequency + sentiment) / (existing.frequency + 1),
                -1.0,
                1.0,
            )
            existing.frequency += 1
            existing.confidence = min(existing.confidence + CONFIDENCE_STEP, 1.0)
            existing.last_updated = now
            existing.related_topics |= self._find_related(topic, context)
        self._dirty_interests.add(topic)

    def _update_preference(self, category: str, value: str, confidence: float, context: str) -> Preference:
        now = self.clock()
        key = f"{category}:{value}"
        existing = self.preferences.get(key)
        if existing is None:
            existing = Preference(category=category, value=value, strength=clamp(confidence, 0.0, 1.0), last_updated=now)
            existing.context.append(context)
            self.preferences[key] = existing
        else:
            existing.strength = clamp((existing.strength + confidence) / 2.0, 0.0, 1.0)
            existing.last_updated = now
            log = deque(existing.context, maxlen=PREFERENCE_CONTEXT_LIMIT)
            log.append(context)
            existing.context = list(log)
        self._dirty_preferences.add(key)
        return existing

    def take_changes(self) -> tuple[list[Interest], list[Preference]]:
        interests = [self.interests[name] for name in sorted(self._dirty_interests) if name in self.interests]
        preferences = [self.preferences[key] for key in sorted(self._dirty_preferences) if key in self.preferences]
        self._dirty_interests.clear()
        self._dirty_preferences.clear()
        return interests, preferences

    def get_suggested_topics(self) -> list[str]:
        suggestions: list[str] = []

        def _add(topic: str) -> None:
            if topic not in suggestions:
                suggestions.append(topic)

        top = sorted(self.interests.values(), key=lambda item: item.frequency, reverse=True)[:3]
        for interest in top:
            for topic in sorted(interest.related_topics):
                if topic not in self.interests:
                    _add(topic)

        exploration: dict[str, int] = {}
        for category, topics in self.lexicon.categories.items():
            explored = [topic for topic in topics if topic in self.interests]
            exploration[category] = len(explored)
            if len(explored) < 2:
                for topic in [topic for topic in topics if topic not in self.interests][:2]:
                    _add(topic)
        self.category_exploration = exploration
        return suggestions[:SUGGESTION_LIMIT]

    def get_interest_summary(self) -> InterestSummary:
        ranked = sorted(self.interests.values(), key=lambda item: item.frequency * item.confidence, reverse=True)[:5]
        recent = sorted(self.preferences.values(), key=lambda item: item.last_updated, reverse=True)[:3]
        return InterestSummary(
            top_interests=[{"topic": item.topic, "strength": item.frequency * item.confidence} for item in ranked],
            recent_preferences=[
                {"category": item.category, "value": item.value, "strength": item.strength} for item in recent
            ],
            suggested_topics=self.get_suggested_topics(),
        )
