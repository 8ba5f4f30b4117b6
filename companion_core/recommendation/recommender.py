from __future__ import annotations

import logging
import math
from collections import deque
from datetime import datetime
from typing import Iterable, Sequence

from ..common import Clock, utcnow
from ..errors import ValidationError
from ..models import MediaFingerprint, MediaInteraction, MediaItem, Recommendation, Turn
from .analyzer import CONTEXT_TURNS, ContentAnalyzer, extract_tags

logger = logging.getLogger("companion_core.recommendation")

DECAY_FACTOR = 0.1
SIMILARITY_WEIGHT = 1.5
CATEGORY_MATCH_BONUS = 0.5
TAG_MATCH_BONUS = 0.3
MAX_HISTORY = 100
INTERACTION_WEIGHTS: dict[str, float] = {
    "view": 1.0,
    "play": 2.0,
    "share": 3.0,
    "delete": -2.0,
}


def _days_between(earlier: datetime, later: datetime) -> float:
    return max(0.0, (later - earlier).total_seconds() / 86400.0)


class MediaRecommender:
    def __init__(self, analyzer: ContentAnalyzer | None = None, *, clock: Clock = utcnow) -> None:
        self.clock = clock
        self.analyzer = analyzer or ContentAnalyzer(clock=clock)
        # Newest first; the oldest event falls off once the cap is reached.
        self.interactions: deque[MediaInteraction] = deque(maxlen=MAX_HISTORY)

    def restore(self, interactions: Iterable[MediaInteraction]) -> None:
        self.interactions.clear()
        for interaction in sorted(interactions, key=lambda item: item.timestamp)[-MAX_HISTORY:]:
            self.interactions.appendleft(interaction)

    def add_interaction(self, media_id: str, kind: str) -> MediaInteraction:
        if kind not in INTERACTION_WEIGHTS:
            raise ValidationError(f"unknown media interaction kind: {kind!r}")
        if not str(media_id or "").strip():
            raise ValidationError("media id cannot be empty")
        interaction = MediaInteraction(media_id=media_id, kind=kind, timestamp=self.clock())
        self.interactions.appendleft(interaction)
        return interaction

    def interaction_scores(self, now: datetime | None = None) -> dict[str, tuple[float, datetime]]:
        """Time-decayed interaction score and latest interaction time per media id."""
        current = now or self.clock()
        scores: dict[str, tuple[float, datetime]] = {}
        for interaction in self.interactions:
            decay = math.exp(-DECAY_FACTOR * _days_between(interaction.timestamp, current))
            value = INTERACTION_WEIGHTS[interaction.kind] * decay
            previous = scores.get(interaction.media_id)
            if previous is None:
                scores[interaction.media_id] = (value, interaction.timestamp)
            else:
                scores[interaction.media_id] = (previous[0] + value, max(previous[1], interaction.timestamp))
        return scores

    def _recent_categories_and_tags(self, turns: Sequence[Turn]) -> tuple[set[str], set[str]]:
        categories: set[str] = set()
        tags: set[str] = set()
        for turn in list(turns)[-CONTEXT_TURNS:]:
            categories.update(self.analyzer.detect_categories(turn.content))
            tags.update(extract_tags(turn.content))
        return categories, tags

    @staticmethod
    def _category_tag_bonus(fingerprint: MediaFingerprint, categories: set[str], tags: set[str]) -> float:
        bonus = sum(CATEGORY_MATCH_BONUS for name in fingerprint.categories if name in categories)
        bonus += sum(TAG_MATCH_BONUS for tag in fingerprint.tags if tag in tags)
        return bonus

    def get_recommendations(
        self,
        media: Sequence[MediaItem],
        recent_turns: Sequence[Turn],
        limit: int = 5,
    ) -> list[Recommendation]:
        if int(limit) < 1:
            raise ValidationError("limit must be >= 1")
        if not media:
            return []

        now = self.clock()
        context_vector = self.analyzer.context_embedding(recent_turns)
        similarities = dict(self.analyzer.find_similar_content(context_vector, media, len(media)))
        categories, tags = self._recent_categories_and_tags(recent_turns)
        interaction_scores = self.interaction_scores(now)

        ranked: list[Recommendation] = []
        for item in media:
            fingerprint = self.analyzer.analyze_media(item)
            base, last_seen = interaction_scores.get(item.id, (0.0, now))
            recency = math.exp(-DECAY_FACTOR * _days_between(last_seen, now)) if base > 0 else 1.0
            score = (
                base
                + similarities.get(item.id, 0.0) * SIMILARITY_WEIGHT
                + self._category_tag_bonus(fingerprint, categories, tags)
            ) * recency
            ranked.append(Recommendation(item=item, score=score))

        ranked.sort(key=lambda entry: entry.score, reverse=True)
        return ranked[: int(limit)]
