from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from companion_core.context.manager import ContextConfig, ContextManager, calculate_topic_distance  # noqa: E402
from companion_core.models import Turn  # noqa: E402


START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _turn(content: str, minutes: float, role: str = "user") -> Turn:
    return Turn.create("c1", content, role, timestamp=START + timedelta(minutes=minutes))


def test_topic_distance_of_identical_maps_is_zero() -> None:
    topics = {"personal": 0.4, "emotions": 0.2}

    assert calculate_topic_distance(topics, dict(topics)) == 0.0


def test_topic_distance_of_two_empty_maps_is_one() -> None:
    assert calculate_topic_distance({}, {}) == 1.0


def test_topic_distance_of_disjoint_maps_is_one() -> None:
    assert calculate_topic_distance({"personal": 0.5}, {"activities": 0.3}) == 1.0


def test_topic_distance_divides_by_the_larger_score_per_key() -> None:
    # (0.4 + 0.0 + 0.1) / (0.6 + 0.2 + 0.1)
    distance = calculate_topic_distance({"personal": 0.6, "work": 0.2}, {"personal": 0.2, "work": 0.2, "family": 0.1})

    assert abs(distance - 0.5 / 0.9) < 1e-9


def test_turns_forty_minutes_apart_on_unrelated_topics_are_incoherent() -> None:
    clock = _Clock(START + timedelta(minutes=40))
    manager = ContextManager(clock=clock)
    manager.add_message(_turn("What a lovely weather today", 0))
    manager.add_message(_turn("Explain quantum physics", 40))

    report = manager.analyze_context_continuity()

    assert report.is_coherent is False
    assert report.gaps == ["Time gap of 40 minutes detected"]


def test_close_turns_on_the_same_topic_are_coherent() -> None:
    manager = ContextManager(clock=_Clock(START))
    manager.add_message(_turn("I feel happy about my family", 0))
    manager.add_message(_turn("I feel happy about my family too", 2))

    report = manager.analyze_context_continuity()

    assert report.is_coherent is True
    assert report.gaps == []
    assert report.topic_shifts == []


def test_window_keeps_only_the_newest_turns() -> None:
    manager = ContextManager(ContextConfig(max_context_window=3), clock=_Clock(START))
    for index in range(5):
        manager.add_message(_turn(f"message number {index}", index))

    contents = [turn.content for turn in manager.get_active_context()]

    assert contents == ["message number 2", "message number 3", "message number 4"]


def test_prune_drops_turns_past_retention() -> None:
    clock = _Clock(START + timedelta(hours=30))
    manager = ContextManager(ContextConfig(context_retention_hours=24), clock=clock)
    manager.add_message(_turn("old news", 0))
    manager.add_message(_turn("fresh news", 29 * 60))

    removed = manager.prune_old_context()

    assert removed == 1
    assert [turn.content for turn in manager.get_active_context()] == ["fresh news"]
    assert manager.prune_old_context() == 0


def test_restore_skips_deleted_turns_and_sorts_by_time() -> None:
    manager = ContextManager(clock=_Clock(START))
    late = _turn("second", 5)
    early = _turn("first", 1)
    gone = _turn("deleted", 3)
    gone.deleted = True

    manager.restore([late, gone, early])

    assert [turn.content for turn in manager.get_active_context()] == ["first", "second"]


def test_summary_lists_topics_and_recent_messages() -> None:
    manager = ContextManager(clock=_Clock(START))
    assert manager.get_context_summary() == "No active context."

    manager.add_message(_turn("I love my family", 0))
    summary = manager.get_context_summary()

    assert summary.startswith("Current topics: ")
    assert "relationships" in summary
    assert "user: I love my family" in summary


def test_remove_message_by_id() -> None:
    manager = ContextManager(clock=_Clock(START))
    turn = _turn("remove me", 0)
    manager.add_message(turn)

    assert manager.remove_message(turn.id) is True
    assert manager.remove_message(turn.id) is False
    assert manager.get_active_context() == []


def test_relevant_context_adds_matching_older_turns() -> None:
    manager = ContextManager(clock=_Clock(START))
    trip = _turn("Our family trip to Spain was lovely", 0)
    lecture = _turn("Quantum physics lecture notes", 1)
    manager.add_message(trip)
    manager.add_message(lecture)
    recent = [_turn(f"small talk number {index}", 2 + index) for index in range(5)]
    for turn in recent:
        manager.add_message(turn)

    relevant = manager.get_relevant_context("Our family trip to Spain was lovely")

    assert [turn.id for turn in relevant] == [turn.id for turn in recent] + [trip.id]
