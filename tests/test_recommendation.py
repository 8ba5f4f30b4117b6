from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from companion_core.errors import ValidationError  # noqa: E402
from companion_core.models import MediaItem, Turn  # noqa: E402
from companion_core.recommendation.analyzer import ContentAnalyzer, cosine_similarity, hash_embedding  # noqa: E402
from companion_core.recommendation.recommender import MAX_HISTORY, MediaRecommender  # noqa: E402


START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self) -> None:
        self.now = START

    def __call__(self) -> datetime:
        return self.now


def _flat_embedder(text: str) -> tuple[float, ...]:
    return (1.0, 0.0, 0.0)


def _recommender(clock: _Clock) -> MediaRecommender:
    return MediaRecommender(ContentAnalyzer(embedder=_flat_embedder, clock=clock), clock=clock)


def _turn(content: str) -> Turn:
    return Turn.create("c1", content, timestamp=START)


def test_hash_embedding_is_deterministic_and_bounded() -> None:
    first = hash_embedding("a walk on the beach")
    second = hash_embedding("a walk on the beach")

    assert first == second
    assert len(first) == 384
    assert all(-1.0 <= value < 1.0 for value in first)
    assert cosine_similarity(first, second) == pytest.approx(1.0)
    assert hash_embedding("something else") != first


def test_voice_media_gets_communication_category() -> None:
    analyzer = ContentAnalyzer(clock=_Clock())

    bare = analyzer.analyze_media(MediaItem("v1", "voice"))
    spoken = analyzer.analyze_media(MediaItem("v2", "voice", transcript="walking my dog today"))

    assert bare.tags == ["voice", "audio", "message"]
    assert bare.categories == ["communication"]
    assert "pets" in spoken.categories
    assert "walking" in spoken.tags


def test_fingerprints_are_cached_for_a_day() -> None:
    clock = _Clock()
    analyzer = ContentAnalyzer(clock=clock)
    item = MediaItem("p1", "image", caption="sunset at the beach")

    first = analyzer.analyze_media(item)
    item.caption = "birthday party"
    assert analyzer.analyze_media(item) is first

    clock.now += timedelta(hours=25)
    assert analyzer.analyze_media(item).categories == ["events"]


def test_category_overlap_with_recent_turns_ranks_first() -> None:
    recommender = _recommender(_Clock())
    media = [
        MediaItem("p1", "image", caption="new computer setup"),
        MediaItem("p2", "image", caption="my dog at the park"),
    ]

    ranked = recommender.get_recommendations(media, [_turn("I want to adopt a dog")], limit=2)

    assert [entry.item.id for entry in ranked] == ["p2", "p1"]
    assert ranked[0].score == pytest.approx(1.5 + 0.5)


def test_interactions_outweigh_context_and_decay_with_time() -> None:
    clock = _Clock()
    recommender = _recommender(clock)
    media = [
        MediaItem("p1", "image", caption="new computer setup"),
        MediaItem("p2", "image", caption="my dog at the park"),
    ]
    recommender.add_interaction("p1", "share")
    clock.now += timedelta(days=10)

    ranked = recommender.get_recommendations(media, [_turn("I want to adopt a dog")], limit=1)

    expected_shared = pytest.approx((3.0 * 0.36787944117144233 + 1.5) * 0.36787944117144233)
    assert [entry.item.id for entry in ranked] == ["p2"]
    assert ranked[0].score == pytest.approx(2.0)
    assert recommender.get_recommendations(media, [], limit=2)[1].score == expected_shared


def test_interaction_history_is_capped() -> None:
    recommender = _recommender(_Clock())

    for index in range(MAX_HISTORY + 20):
        recommender.add_interaction(f"m{index}", "view")

    assert len(recommender.interactions) == MAX_HISTORY
    assert recommender.interactions[0].media_id == f"m{MAX_HISTORY + 19}"


def test_invalid_interactions_and_limits_are_rejected() -> None:
    recommender = _recommender(_Clock())

    with pytest.raises(ValidationError):
        recommender.add_interaction("p1", "like")
    with pytest.raises(ValidationError):
        recommender.get_recommendations([], [], limit=0)
    assert recommender.get_recommendations([], []) == []
