from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from companion_core.learning.interests import InterestLearner  # noqa: E402
from companion_core.models import Interest  # noqa: E402


START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _learner() -> InterestLearner:
    return InterestLearner(clock=lambda: START)


def test_topics_found_in_message_become_interests() -> None:
    learner = _learner()

    topics, _ = learner.process_message("I spent the evening cooking and listening to music", 0.6)

    assert topics == ["cooking", "music"]
    cooking = learner.interests["cooking"]
    assert cooking.confidence == 0.3
    assert cooking.frequency == 1
    assert cooking.related_topics == {"music"}


def test_repeated_interest_gains_confidence_and_averages_sentiment() -> None:
    learner = _learner()

    learner.process_message("reading is great", 1.0)
    learner.process_message("more reading tonight", 0.0)

    reading = learner.interests["reading"]
    assert reading.frequency == 2
    assert reading.confidence == pytest.approx(0.4)
    assert reading.sentiment == 0.5


def test_preferences_need_more_than_one_indicator() -> None:
    learner = _learner()

    _, single = learner.process_message("keep it short")
    _, double = learner.process_message("a brief and short answer, please")

    assert single == []
    assert [pref.key for pref in double] == ["communication:brief"]
    assert double[0].strength == 0.6


def test_take_changes_reports_only_dirty_rows() -> None:
    learner = _learner()
    learner.process_message("travel plans")

    interests, preferences = learner.take_changes()

    assert [item.topic for item in interests] == ["travel"]
    assert preferences == []
    assert learner.take_changes() == ([], [])


def test_summary_ranks_interests_and_suggests_unexplored_topics() -> None:
    learner = _learner()
    learner.restore(
        [
            Interest("music", 0.5, 0.9, 5, START, {"art"}),
            Interest("sports", 0.1, 0.3, 1, START),
        ]
    )

    summary = learner.get_interest_summary()

    assert [item["topic"] for item in summary.top_interests] == ["music", "sports"]
    assert summary.suggested_topics[0] == "art"
    assert len(summary.suggested_topics) <= 5
    assert "music" not in summary.suggested_topics
