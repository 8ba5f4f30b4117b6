from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields, replace
from typing import Any, Iterable

from ..common import Clock, clamp, is_finite_number, tokenize, utcnow
from ..errors import ValidationError
from ..lexicons.json_loader import freeze_words, load_lexicon
from ..models import Memory, new_id

logger = logging.getLogger("companion_core.memory")

EMOTIONAL_WEIGHT = 0.3
LENGTH_WEIGHT = 0.15
PERSONAL_INFO_WEIGHT = 0.25
RECENCY_WEIGHT = 0.15
CONTEXT_WEIGHT = 0.15

_DEFAULTS: dict[str, Any] = {
    "emotional": {
        "positive": ["love", "happy", "excited", "wonderful", "amazing", "great", "joy", "delighted"],
        "negative": ["hate", "sad", "angry", "upset", "terrible", "awful", "disappointed", "frustrated"],
    },
    "pronouns": ["i", "me", "my", "mine", "myself"],
    "personal_topics": [
        "family",
        "friend",
        "love",
        "hate",
        "feel",
        "think",
        "believe",
        "want",
        "need",
        "dream",
        "hope",
        "fear",
        "work",
        "study",
    ],
    "context_markers": ["important", "remember", "key", "critical", "essential", "never forget", "always", "must", "should"],
    "time_markers": ["today", "tomorrow", "yesterday", "next", "last", "future"],
    "sentiment": {
        "positive": ["happy", "good"],
        "negative": ["sad", "bad"],
    },
}


@dataclass(frozen=True)
class MemoryLexicon:
    emotional_words: tuple[str, ...]
    pronoun_patterns: tuple[re.Pattern[str], ...]
    personal_topics: tuple[str, ...]
    context_markers: tuple[str, ...]
    time_markers: tuple[str, ...]
    positive_sentiment: tuple[str, ...]
    negative_sentiment: tuple[str, ...]


def load_memory_lexicon(filename: str = "memory.json") -> MemoryLexicon:
    raw = load_lexicon(filename, _DEFAULTS)
    emotional = raw.get("emotional") or {}
    sentiment = raw.get("sentiment") or {}
    return MemoryLexicon(
        emotional_words=freeze_words(emotional.get("positive")) + freeze_words(emotional.get("negative")),
        pronoun_patterns=tuple(re.compile(rf"\b{re.escape(word)}\b") for word in freeze_words(raw.get("pronouns"))),
        personal_topics=freeze_words(raw.get("personal_topics")),
        context_markers=freeze_words(raw.get("context_markers")),
        time_markers=freeze_words(raw.get("time_markers")),
        positive_sentiment=freeze_words(sentiment.get("positive")),
        negative_sentiment=freeze_words(sentiment.get("negative")),
    )


@dataclass(slots=True)
class MemoryConfig:
    max_memories: int = 100
    min_importance: float = 0.3
    retrieval_limit: int = 5
    snapshot_size: int = 3

    @classmethod
    def from_settings(cls, settings: object, **overrides: Any) -> "MemoryConfig":
        defaults = cls()
        base = cls(
            max_memories=int(getattr(settings, "memory_max_items", defaults.max_memories)),
            min_importance=float(getattr(settings, "memory_min_importance", defaults.min_importance)),
        )
        known = {item.name for item in fields(cls)}
        return replace(base, **{key: value for key, value in overrides.items() if key in known})


class MemoryManager:
    def __init__(
        self,
        conversation_id: str,
        config: MemoryConfig | None = None,
        *,
        lexicon: MemoryLexicon | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.conversation_id = conversation_id
        self.config = config or MemoryConfig()
        self.lexicon = lexicon or load_memory_lexicon()
        self.clock = clock
        # Insertion order doubles as the age tie-break for eviction.
        self.memories: list[Memory] = []
        self._evicted: list[Memory] = []

    def restore(self, memories: Iterable[Memory]) -> None:
        self.memories = sorted(
            (item for item in memories if item.conversation_id == self.conversation_id),
            key=lambda item: item.created_at,
        )
        self._evicted.clear()

    # -- scoring -----------------------------------------------------------

    def calculate_importance(self, content: str, context: str = "") -> float:
        text = content or ""
        emotional = self._emotional_importance(text)
        length = min(len(text) / 1000.0, 1.0) * (len(text.split(" ")) / 200.0)
        personal = self._personal_info_importance(text)
        recency = 1.0
        contextual = self._context_importance(context or "")
        importance = (
            emotional * EMOTIONAL_WEIGHT
            + length * LENGTH_WEIGHT
            + personal * PERSONAL_INFO_WEIGHT
            + recency * RECENCY_WEIGHT
            + contextual * CONTEXT_WEIGHT
        )
        return clamp(importance, 0.0, 1.0)

    def _emotional_importance(self, text: str) -> float:
        lowered = text.lower()
        score = sum(0.2 for word in self.lexicon.emotional_words if word in lowered)
        marks = text.count("!") + text.count("?")
        score += min(marks * 0.1, 0.3)
        caps = sum(1 for word in text.split(" ") if len(word) > 2 and word == word.upper())
        score += min(caps * 0.1, 0.2)
        return min(score, 1.0)

    def _personal_info_importance(self, text: str) -> float:
        lowered = text.lower()
        score = 0.0
        for pattern in self.lexicon.pronoun_patterns:
            score += len(pattern.findall(lowered)) * 0.1
        score += sum(0.15 for topic in self.lexicon.personal_topics if topic in lowered)
        numbers = re.findall(r"\d+", text)
        if numbers:
            score += min(len(numbers) * 0.1, 0.2)
        return min(score, 1.0)

    def _context_importance(self, context: str) -> float:
        lowered = context.lower()
        score = sum(0.25 for marker in self.lexicon.context_markers if marker in lowered)
        score += sum(0.15 for marker in self.lexicon.time_markers if marker in lowered)
        return min(score, 1.0)

    def classify_sentiment(self, content: str) -> str:
        lowered = (content or "").lower()
        if any(word in lowered for word in self.lexicon.positive_sentiment):
            return "positive"
        if any(word in lowered for word in self.lexicon.negative_sentiment):
            return "negative"
        return "neutral"

    # -- mutation ----------------------------------------------------------

    def add_memory(
        self,
        content: str,
        context: str = "",
        attributes: Iterable[str] = (),
        *,
        importance: float | None = None,
    ) -> Memory | None:
        """Score and store `content`; returns None when it falls below the importance floor.

        An explicit `importance` replaces the computed score (still clamped and
        still gated). Evicted memories are collected for `take_evicted()`.
        """
        if not str(content or "").strip():
            raise ValidationError("memory content cannot be empty")
        if importance is None:
            score = self.calculate_importance(content, context)
        else:
            if not is_finite_number(importance):
                raise ValidationError(f"memory importance must be a finite number, got {importance!r}")
            score = clamp(float(importance), 0.0, 1.0)
        if score < self.config.min_importance:
            return None

        now = self.clock()
        memory = Memory(
            id=new_id(),
            conversation_id=self.conversation_id,
            content=content,
            importance=score,
            context=context or "",
            sentiment=self.classify_sentiment(content),
            associated_attributes={str(item) for item in attributes if str(item).strip()},
            created_at=now,
            last_accessed=now,
        )
        self.memories.append(memory)
        self._evicted.extend(self.prune_old_memories())
        return memory

    def prune_old_memories(self) -> list[Memory]:
        overflow = len(self.memories) - self.config.max_memories
        if overflow <= 0:
            return []
        ranked = sorted(range(len(self.memories)), key=lambda index: (self.memories[index].importance, index))
        doomed = set(ranked[:overflow])
        evicted = [self.memories[index] for index in sorted(doomed)]
        self.memories = [item for index, item in enumerate(self.memories) if index not in doomed]
        logger.debug(
            "Evicted %s memories for conversation %s (cap=%s)",
            len(evicted),
            self.conversation_id,
            self.config.max_memories,
        )
        return evicted

    def take_evicted(self) -> list[Memory]:
        evicted, self._evicted = self._evicted, []
        return evicted

    def remove(self, memory_id: str) -> bool:
        before = len(self.memories)
        self.memories = [item for item in self.memories if item.id != memory_id]
        return len(self.memories) != before

    # -- retrieval ---------------------------------------------------------

    def get_relevant_memories(self, query: str, limit: int | None = None) -> list[Memory]:
        """Importance-ranked memories sharing a word or attribute with `query`.

        Falls back to the most important memories overall when nothing matches.
        Returned memories get their `last_accessed` refreshed.
        """
        size = self.config.retrieval_limit if limit is None else int(limit)
        if size < 1:
            raise ValidationError("limit must be >= 1")
        query_tokens = tokenize(query)
        matched = [
            item
            for item in self.memories
            if query_tokens & (tokenize(item.content) | {attr.casefold() for attr in item.associated_attributes})
        ]
        pool = matched or list(self.memories)
        selected = sorted(pool, key=lambda item: item.importance, reverse=True)[:size]
        now = self.clock()
        for item in selected:
            item.last_accessed = now
        return selected

    def get_memories_by_attribute(self, attribute: str) -> list[Memory]:
        key = str(attribute or "").strip().casefold()
        found = [item for item in self.memories if key in {attr.casefold() for attr in item.associated_attributes}]
        return sorted(found, key=lambda item: item.importance, reverse=True)

    def search_memories(self, query: str) -> list[Memory]:
        query_tokens = tokenize(query)
        if not query_tokens:
            return []
        found = [item for item in self.memories if query_tokens <= tokenize(item.content)]
        return sorted(found, key=lambda item: item.importance, reverse=True)

    def get_memory_snapshot(self) -> str:
        recent = sorted(self.memories, key=lambda item: item.last_accessed, reverse=True)[: self.config.snapshot_size]
        if not recent:
            return "No significant memories."
        return "\n".join(f"{item.content} ({round(item.importance * 100)}% importance)" for item in recent)

    def __len__(self) -> int:
        return len(self.memories)
