from __future__ import annotations

import logging
import math
import random
import re
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any

from ..lexicons.json_loader import freeze_words, load_lexicon
from ..models import EmotionalTrend, EmotionReading

logger = logging.getLogger("companion_core.emotion")

NEUTRAL = "neutral"
KEYWORD_HIT_WEIGHT = 0.2
PATTERN_HIT_WEIGHT = 0.3

_DEFAULTS: dict[str, Any] = {
    "emotions": {
        "joy": {
            "keywords": [
                "happy",
                "excited",
                "delighted",
                "glad",
                "wonderful",
                "great",
                "love",
                "amazing",
                "thank you",
                "thanks",
            ],
            "patterns": [r"\b(ha|he){2,}h?\b", "😊|😄|😃|🥰|❤️"],
            "weight": 1.0,
        },
        "sadness": {
            "keywords": ["sad", "unhappy", "depressed", "down", "hurt", "disappointed"],
            "patterns": ["😢|😭|😔|💔", r"\bsigh\b"],
            "weight": 0.9,
        },
        "anger": {
            "keywords": ["angry", "mad", "furious", "annoyed", "frustrated", "hate"],
            "patterns": ["😠|😡|💢", r"\b(ugh|argh)\b"],
            "weight": 0.8,
        },
        "fear": {
            "keywords": ["scared", "afraid", "worried", "anxious", "nervous", "terrified"],
            "patterns": ["😨|😰|😱", r"\b(eek|yikes)\b"],
            "weight": 0.8,
        },
        "surprise": {
            "keywords": ["surprised", "shocked", "amazed", "wow", "unexpected"],
            "patterns": ["😮|😲|😱|😨", r"\b(whoa|wow)\b"],
            "weight": 0.7,
        },
        "disgust": {
            "keywords": ["disgusted", "gross", "ew", "yuck", "horrible"],
            "patterns": ["🤢|🤮", r"\b(ew|yuck)\b"],
            "weight": 0.7,
        },
        "trust": {
            "keywords": ["trust", "believe", "sure", "confident", "safe"],
            "patterns": ["🤝|👍|💪", r"\bcan rely\b|\bbelieve in\b"],
            "weight": 0.6,
        },
        "anticipation": {
            "keywords": ["excited", "looking forward", "cant wait", "hope", "eager"],
            "patterns": ["🤞|🙏", r"\bcan'?t wait\b|\bhope\b"],
            "weight": 0.6,
        },
    },
    "valence": {
        "joy": 1.0,
        "trust": 0.7,
        "anticipation": 0.5,
        "surprise": 0.2,
        "neutral": 0.0,
        "fear": -0.3,
        "disgust": -0.6,
        "anger": -0.8,
        "sadness": -0.9,
    },
    "arousal": {
        "anger": 1.0,
        "fear": 0.9,
        "joy": 0.8,
        "surprise": 0.8,
        "anticipation": 0.6,
        "disgust": 0.5,
        "sadness": 0.3,
        "trust": 0.2,
        "neutral": 0.0,
    },
    "responses": {
        "joy": [
            "I'm so happy to see you're feeling good!",
            "That's wonderful! Your happiness is contagious!",
            "I'm glad things are going well for you!",
        ],
        "sadness": [
            "I'm here for you if you want to talk about it.",
            "I'm sorry you're feeling down. Would you like to share what's bothering you?",
            "It's okay to feel sad sometimes. I'm here to listen.",
        ],
        "anger": [
            "I understand you're frustrated. Let's talk about it.",
            "Your feelings are valid. Would you like to explain what's making you angry?",
            "I'm here to listen if you want to vent.",
        ],
        "fear": [
            "It's okay to feel scared. I'm here with you.",
            "Would you like to talk about what's worrying you?",
            "You're not alone in this. Let's work through it together.",
        ],
        "surprise": [
            "That's quite unexpected! Tell me more about it.",
            "Wow! I'd love to hear more details.",
            "That's fascinating! How do you feel about it?",
        ],
        "disgust": [
            "That sounds really unpleasant. Do you want to talk it through?",
            "I can see why that bothered you.",
            "That doesn't sound okay at all. How are you handling it?",
        ],
        "trust": [
            "I really appreciate your openness.",
            "Thank you for sharing that with me.",
            "I value the trust you're showing.",
        ],
        "anticipation": [
            "That sounds exciting! Tell me more about your plans.",
            "I can feel your enthusiasm! What are you looking forward to most?",
            "It's great to have something to look forward to!",
        ],
        "neutral": [
            "How are you feeling about that?",
            "Would you like to share more?",
            "I'm interested in hearing your thoughts.",
        ],
    },
}


@dataclass(frozen=True)
class EmotionCategory:
    name: str
    keywords: tuple[re.Pattern[str], ...]
    patterns: tuple[re.Pattern[str], ...]
    weight: float


@dataclass(frozen=True)
class EmotionLexicon:
    categories: tuple[EmotionCategory, ...]
    valence: dict[str, float]
    arousal: dict[str, float]
    responses: dict[str, tuple[str, ...]]


def _compile(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        logger.warning("Skipping invalid emotion pattern %r: %s", pattern, exc)
        return None


def load_emotion_lexicon(filename: str = "emotion.json") -> EmotionLexicon:
    raw = load_lexicon(filename, _DEFAULTS)

    categories: list[EmotionCategory] = []
    for name, entry in (raw.get("emotions") or {}).items():
        if not isinstance(entry, dict):
            continue
        keywords = tuple(
            compiled
            for compiled in (_compile(rf"\b{re.escape(word)}\b") for word in freeze_words(entry.get("keywords")))
            if compiled is not None
        )
        patterns = tuple(
            compiled
            for compiled in (_compile(str(item)) for item in entry.get("patterns") or [])
            if compiled is not None
        )
        try:
            weight = float(entry.get("weight", 1.0))
        except (TypeError, ValueError):
            weight = 1.0
        categories.append(EmotionCategory(str(name), keywords, patterns, weight))

    responses = {
        str(name): tuple(str(line) for line in lines if str(line).strip())
        for name, lines in (raw.get("responses") or {}).items()
        if isinstance(lines, list)
    }
    return EmotionLexicon(
        categories=tuple(categories),
        valence={str(k): float(v) for k, v in (raw.get("valence") or {}).items()},
        arousal={str(k): float(v) for k, v in (raw.get("arousal") or {}).items()},
        responses=responses,
    )


class EmotionAnalyzer:
    """Lexicon scoring of user text plus a short rolling history for trend reads."""

    def __init__(
        self,
        lexicon: EmotionLexicon | None = None,
        *,
        history_limit: int = 10,
        rng: random.Random | None = None,
    ) -> None:
        self.lexicon = lexicon or load_emotion_lexicon()
        self.history: deque[EmotionReading] = deque(maxlen=max(1, int(history_limit)))
        self.rng = rng or random.Random()

    def score(self, text: str) -> list[tuple[str, float]]:
        """Scores for every category with at least one hit, highest first."""
        content = text or ""
        scores: list[tuple[str, float]] = []
        for category in self.lexicon.categories:
            value = 0.0
            for keyword in category.keywords:
                hits = len(keyword.findall(content))
                if hits:
                    value += hits * KEYWORD_HIT_WEIGHT * category.weight
            for pattern in category.patterns:
                hits = sum(1 for _ in pattern.finditer(content))
                if hits:
                    value += hits * PATTERN_HIT_WEIGHT * category.weight
            if value > 0:
                scores.append((category.name, value))
        scores.sort(key=lambda item: item[1], reverse=True)
        return scores

    def analyze(self, text: str, *, record: bool = True) -> EmotionReading:
        scores = self.score(text)
        if not scores:
            return EmotionReading(primary=NEUTRAL, intensity=0.0, valence=0.0, arousal=0.0)

        reading = EmotionReading(
            primary=scores[0][0],
            intensity=min(scores[0][1] / 2.0, 1.0),
            valence=self._weighted(scores, self.lexicon.valence),
            arousal=self._weighted(scores, self.lexicon.arousal),
            secondary=scores[1][0] if len(scores) > 1 else None,
        )
        if record:
            self.history.append(reading)
        return reading

    @staticmethod
    def _weighted(scores: list[tuple[str, float]], table: dict[str, float]) -> float:
        total = 0.0
        weight = 0.0
        for name, value in scores:
            if name in table:
                total += table[name] * value
                weight += value
        return total / weight if weight > 0 else 0.0

    def get_emotional_trend(self) -> EmotionalTrend:
        if not self.history:
            return EmotionalTrend(NEUTRAL, 0.0, 0.0, 1.0)

        count = len(self.history)
        average_valence = sum(item.valence for item in self.history) / count
        average_arousal = sum(item.arousal for item in self.history) / count
        variance = sum((item.valence - average_valence) ** 2 for item in self.history) / count
        dominant = Counter(item.primary for item in self.history).most_common(1)[0][0]
        return EmotionalTrend(
            dominant_emotion=dominant,
            average_valence=average_valence,
            average_arousal=average_arousal,
            stability=1.0 - min(math.sqrt(variance), 1.0),
        )

    def suggest_response(self, reading: EmotionReading) -> str:
        templates = self.lexicon.responses.get(reading.primary) or self.lexicon.responses.get(NEUTRAL) or ()
        if not templates:
            return ""
        return self.rng.choice(templates)

    def clear(self) -> None:
        self.history.clear()
