from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Iterable, Sequence

from ..common import Clock, utcnow
from ..lexicons.json_loader import freeze_words, load_lexicon
from ..models import MediaFingerprint, MediaItem, Turn

logger = logging.getLogger("companion_core.recommendation")

EMBEDDING_DIMENSION = 384
HASH_SEED = 0x811C9DC5
CACHE_TTL = timedelta(hours=24)
CONTEXT_TURNS = 5
VOICE_TAGS = ("voice", "audio", "message")
VOICE_CATEGORY = "communication"

Embedder = Callable[[str], Sequence[float]]

_DEFAULTS: dict[str, Any] = {
    "categories": {
        "nature": ["tree", "flower", "sky", "beach", "mountain", "sunset"],
        "people": ["person", "face", "smile", "family", "friend"],
        "food": ["meal", "dish", "restaurant", "cooking", "food"],
        "travel": ["trip", "vacation", "journey", "destination", "travel"],
        "events": ["party", "celebration", "wedding", "birthday", "anniversary"],
        "pets": ["dog", "cat", "pet", "animal"],
        "art": ["drawing", "painting", "artwork", "creative"],
        "technology": ["computer", "phone", "device", "tech"],
    }
}


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _utf16_units(text: str) -> Iterable[int]:
    for char in text:
        code = ord(char)
        # Astral characters contribute their high surrogate only.
        yield 0xD800 + ((code - 0x10000) >> 10) if code > 0xFFFF else code


def text_hash(text: str) -> int:
    """Polynomial 31-hash over UTF-16 code units with 32-bit wraparound."""
    value = HASH_SEED
    for unit in _utf16_units(text or ""):
        value = _int32(_int32(31 * _int32(value)) + unit)
    return value


def hash_embedding(text: str, dimension: int = EMBEDDING_DIMENSION) -> tuple[float, ...]:
    """Deterministic stand-in for a learned text embedding, every entry in [-1, 1)."""
    seed = text_hash(text)
    values: list[float] = []
    for index in range(dimension):
        raw = math.sin(seed * (index + 1))
        values.append((raw - math.floor(raw)) * 2.0 - 1.0)
    return tuple(values)


def cosine_similarity(first: Sequence[float], second: Sequence[float]) -> float:
    dot = sum(a * b for a, b in zip(first, second))
    norm_a = math.sqrt(sum(a * a for a in first))
    norm_b = math.sqrt(sum(b * b for b in second))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def extract_tags(text: str) -> list[str]:
    tags: list[str] = []
    for word in re.split(r"\W+", (text or "").lower()):
        if len(word) > 3 and word not in tags:
            tags.append(word)
    return tags


@dataclass(frozen=True)
class MediaCategories:
    keywords: dict[str, tuple[str, ...]]


def load_media_categories(filename: str = "media_categories.json") -> MediaCategories:
    raw = load_lexicon(filename, _DEFAULTS)
    return MediaCategories(
        keywords={
            str(name): freeze_words(words)
            for name, words in (raw.get("categories") or {}).items()
            if freeze_words(words)
        }
    )


class ContentAnalyzer:
    """Fingerprints shared media and conversation text; fingerprints are cached per media id."""

    def __init__(
        self,
        categories: MediaCategories | None = None,
        *,
        embedder: Embedder = hash_embedding,
        clock: Clock = utcnow,
    ) -> None:
        self.categories = categories or load_media_categories()
        self.embedder = embedder
        self.clock = clock
        self._cache: dict[str, MediaFingerprint] = {}

    def embed(self, text: str) -> tuple[float, ...]:
        return tuple(float(value) for value in self.embedder(text or ""))

    def detect_categories(self, text: str) -> list[str]:
        lowered = (text or "").lower()
        return [name for name, words in self.categories.keywords.items() if any(word in lowered for word in words)]

    def analyze_media(self, item: MediaItem) -> MediaFingerprint:
        now = self.clock()
        cached = self._cache.get(item.id)
        if cached is not None and now - cached.computed_at < CACHE_TTL:
            return cached

        if item.kind == "voice":
            transcript = item.transcript.strip() or f"Voice message {item.id}"
            tags = list(VOICE_TAGS)
            categories = [VOICE_CATEGORY]
            if item.transcript.strip():
                tags += [tag for tag in extract_tags(transcript) if tag not in tags]
                categories += [name for name in self.detect_categories(transcript) if name not in categories]
            fingerprint = MediaFingerprint(item.id, item.kind, self.embed(transcript), tags, categories, now)
        else:
            caption = item.caption or ""
            fingerprint = MediaFingerprint(
                item.id,
                item.kind,
                self.embed(caption),
                extract_tags(caption),
                self.detect_categories(caption),
                now,
            )
        self._cache[item.id] = fingerprint
        return fingerprint

    def forget(self, media_id: str) -> None:
        self._cache.pop(media_id, None)

    def context_embedding(self, turns: Sequence[Turn]) -> tuple[float, ...]:
        recent = list(turns)[-CONTEXT_TURNS:]
        return self.embed(" ".join(turn.content for turn in recent))

    def find_similar_content(
        self,
        context_vector: Sequence[float],
        items: Iterable[MediaItem],
        limit: int = 5,
    ) -> list[tuple[str, float]]:
        scored = [(item.id, cosine_similarity(context_vector, self.analyze_media(item).vector)) for item in items]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]
