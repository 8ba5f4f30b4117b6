from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from ..lexicons.json_loader import freeze_words, load_lexicon

logger = logging.getLogger("companion_core.personality")

DEFAULT_TRAIT_CATALOG: tuple[dict[str, Any], ...] = (
    {"trait_key": "openness", "group": "core", "baseline": 75.0, "requires": ["interesting", "curious", "wonder", "explore", "learn"]},
    {"trait_key": "conscientiousness", "group": "core", "baseline": 65.0},
    {"trait_key": "extraversion", "group": "core", "baseline": 60.0},
    {"trait_key": "agreeableness", "group": "core", "baseline": 70.0},
    {"trait_key": "neuroticism", "group": "core", "baseline": 45.0},
    {"trait_key": "empathy", "group": "social", "baseline": 80.0, "requires": ["understand", "feel", "care", "sorry", "help"]},
    {"trait_key": "assertiveness", "group": "social", "baseline": 55.0, "requires": ["think", "believe", "sure", "definitely", "must"]},
    {"trait_key": "adaptability", "group": "social", "baseline": 70.0},
    {"trait_key": "independence", "group": "social", "baseline": 75.0},
    {"trait_key": "emotional_depth", "group": "emotional", "baseline": 75.0, "requires": ["deeply", "truly", "heartfelt", "meaningful", "profound"]},
    {"trait_key": "emotional_expression", "group": "emotional", "baseline": 65.0},
    {"trait_key": "emotional_stability", "group": "emotional", "baseline": 70.0},
    {"trait_key": "playfulness", "group": "behavioral", "baseline": 60.0, "requires": ["fun", "play", "enjoy", "laugh", "smile"]},
    {"trait_key": "intellect", "group": "behavioral", "baseline": 80.0, "requires": ["think", "analyze", "consider", "perspective", "understand"]},
    {"trait_key": "creativity", "group": "behavioral", "baseline": 75.0},
    {"trait_key": "nurturing", "group": "behavioral", "baseline": 85.0, "requires": ["help", "support", "care", "guide", "protect"]},
)

# Undirected edges; weights in [-1, 1].
DEFAULT_TRAIT_INTERACTIONS: tuple[tuple[str, str, float], ...] = (
    ("empathy", "emotional_depth", 0.5),
    ("assertiveness", "emotional_expression", 0.3),
    ("openness", "creativity", 0.4),
    ("neuroticism", "emotional_stability", -0.6),
    ("extraversion", "playfulness", 0.4),
)

_DEFAULTS: dict[str, Any] = {
    "traits": {row["trait_key"]: {"baseline": row["baseline"], "requires": list(row.get("requires") or [])} for row in DEFAULT_TRAIT_CATALOG},
    "interactions": [list(edge) for edge in DEFAULT_TRAIT_INTERACTIONS],
    "mood_words": {
        "positive": ["happy", "good", "great", "love", "wonderful"],
        "negative": ["sad", "bad", "angry", "upset", "frustrated"],
    },
    # Words a reply must avoid while the companion's mood is strongly positive / negative.
    "tone_conflicts": {
        "positive": ["sad", "angry", "upset", "frustrated", "annoyed"],
        "negative": ["happy", "excited", "wonderful", "great"],
    },
}


@dataclass(frozen=True)
class PersonalityRules:
    baselines: dict[str, float]
    neighbors: dict[str, tuple[tuple[str, float], ...]]
    required_patterns: dict[str, re.Pattern[str]]
    positive_mood_words: tuple[str, ...]
    negative_mood_words: tuple[str, ...]
    positive_tone_conflict: re.Pattern[str] | None
    negative_tone_conflict: re.Pattern[str] | None


def _word_pattern(words: tuple[str, ...]) -> re.Pattern[str] | None:
    if not words:
        return None
    return re.compile(r"\b(" + "|".join(re.escape(word) for word in words) + r")\b", re.IGNORECASE)


def _substring_pattern(words: tuple[str, ...]) -> re.Pattern[str] | None:
    if not words:
        return None
    return re.compile("(" + "|".join(re.escape(word) for word in words) + ")", re.IGNORECASE)


def load_personality_rules(filename: str = "personality.json") -> PersonalityRules:
    raw = load_lexicon(filename, _DEFAULTS)

    baselines: dict[str, float] = {}
    required: dict[str, re.Pattern[str]] = {}
    for name, entry in (raw.get("traits") or {}).items():
        if not isinstance(entry, dict):
            continue
        try:
            baselines[str(name)] = float(entry.get("baseline", 50.0))
        except (TypeError, ValueError):
            logger.warning("Trait %s has a non-numeric baseline; skipping", name)
            continue
        pattern = _word_pattern(freeze_words(entry.get("requires")))
        if pattern is not None:
            required[str(name)] = pattern

    adjacency: dict[str, list[tuple[str, float]]] = {}
    for edge in raw.get("interactions") or []:
        if not isinstance(edge, (list, tuple)) or len(edge) != 3:
            continue
        first, second, weight = str(edge[0]), str(edge[1]), float(edge[2])
        if first not in baselines or second not in baselines or first == second:
            logger.warning("Ignoring trait interaction %s <-> %s", first, second)
            continue
        weight = max(-1.0, min(1.0, weight))
        adjacency.setdefault(first, []).append((second, weight))
        adjacency.setdefault(second, []).append((first, weight))

    mood_words = raw.get("mood_words") or {}
    conflicts = raw.get("tone_conflicts") or {}
    return PersonalityRules(
        baselines=baselines,
        neighbors={name: tuple(edges) for name, edges in adjacency.items()},
        required_patterns=required,
        positive_mood_words=freeze_words(mood_words.get("positive")),
        negative_mood_words=freeze_words(mood_words.get("negative")),
        positive_tone_conflict=_substring_pattern(freeze_words(conflicts.get("positive"))),
        negative_tone_conflict=_substring_pattern(freeze_words(conflicts.get("negative"))),
    )
