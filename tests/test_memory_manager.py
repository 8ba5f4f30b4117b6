from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from companion_core.errors import ValidationError  # noqa: E402
from companion_core.memory.manager import MemoryConfig, MemoryManager  # noqa: E402


START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class _TickingClock:
    def __init__(self) -> None:
        self.now = START

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def test_cap_keeps_the_highest_importance_memories() -> None:
    manager = MemoryManager("c1", MemoryConfig(max_memories=100, min_importance=0.3), clock=_TickingClock())
    importances = [0.3 + 0.006 * index for index in range(101)]

    for index, importance in enumerate(importances):
        manager.add_memory(f"note {index}", importance=importance)

    assert len(manager) == 100
    assert sorted(item.importance for item in manager.memories) == sorted(importances[1:])
    evicted = manager.take_evicted()
    assert [item.content for item in evicted] == ["note 0"]
    assert manager.take_evicted() == []


def test_store_never_exceeds_cap() -> None:
    manager = MemoryManager("c1", MemoryConfig(max_memories=5, min_importance=0.0), clock=_TickingClock())

    for index in range(40):
        manager.add_memory(f"entry {index}", importance=(index * 7 % 10) / 10)
        assert len(manager) <= 5


def test_importance_ties_evict_the_oldest_first() -> None:
    manager = MemoryManager("c1", MemoryConfig(max_memories=2, min_importance=0.0), clock=_TickingClock())

    manager.add_memory("first", importance=0.5)
    manager.add_memory("second", importance=0.5)
    manager.add_memory("third", importance=0.5)

    assert [item.content for item in manager.memories] == ["second", "third"]


def test_memory_above_threshold_is_retrievable() -> None:
    manager = MemoryManager("c1", clock=_TickingClock())

    stored = manager.add_memory("My sister Anna loves hiking in the mountains", importance=0.8)

    found = manager.get_relevant_memories("hiking")
    assert stored is not None
    assert [item.id for item in found] == [stored.id]


def test_memory_below_threshold_is_not_stored() -> None:
    manager = MemoryManager("c1", MemoryConfig(min_importance=0.3), clock=_TickingClock())

    stored = manager.add_memory("My sister Anna loves hiking", importance=0.1)

    assert stored is None
    assert manager.get_relevant_memories("hiking") == []


def test_computed_importance_rewards_personal_emotional_text() -> None:
    manager = MemoryManager("c1", clock=_TickingClock())

    plain = manager.calculate_importance("ok")
    rich = manager.calculate_importance("I love my family so much! I feel happy", "remember this, it is important")

    assert plain == pytest.approx(0.15, abs=0.01)
    assert rich > 0.5


def test_retrieval_refreshes_last_accessed_and_feeds_snapshot() -> None:
    clock = _TickingClock()
    manager = MemoryManager("c1", MemoryConfig(min_importance=0.0), clock=clock)
    old = manager.add_memory("coffee with Sam on Friday", importance=0.4)
    manager.add_memory("new job starts in May", importance=0.9)
    manager.add_memory("likes jazz records", importance=0.6)
    assert old is not None
    created = old.last_accessed

    manager.get_relevant_memories("coffee", limit=1)

    assert old.last_accessed > created
    assert manager.get_memory_snapshot().splitlines()[0] == "coffee with Sam on Friday (40% importance)"


def test_attribute_lookup_and_search() -> None:
    manager = MemoryManager("c1", MemoryConfig(min_importance=0.0), clock=_TickingClock())
    manager.add_memory("weekend with family at the lake", attributes=["family"], importance=0.5)
    manager.add_memory("project deadline at work", attributes=["work"], importance=0.7)

    assert [item.content for item in manager.get_memories_by_attribute("FAMILY")] == [
        "weekend with family at the lake"
    ]
    assert [item.content for item in manager.search_memories("project deadline")] == ["project deadline at work"]
    assert manager.search_memories("") == []


def test_sentiment_uses_its_own_keyword_scale() -> None:
    manager = MemoryManager("c1", MemoryConfig(min_importance=0.0), clock=_TickingClock())

    good = manager.add_memory("a good day", importance=0.5)
    bad = manager.add_memory("a bad day", importance=0.5)

    assert good is not None and good.sentiment == "positive"
    assert bad is not None and bad.sentiment == "negative"


def test_invalid_input_is_rejected() -> None:
    manager = MemoryManager("c1", clock=_TickingClock())

    with pytest.raises(ValidationError):
        manager.add_memory("   ")
    with pytest.raises(ValidationError):
        manager.add_memory("fine text", importance=float("inf"))
    with pytest.raises(ValidationError):
        manager.get_relevant_memories("x", limit=0)
