from __future__ import annotations

import math
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from companion_core.errors import ValidationError  # noqa: E402
from companion_core.personality.manager import PersonalityConfig, PersonalityManager  # noqa: E402


START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


def test_traits_start_at_baseline() -> None:
    manager = PersonalityManager(clock=_Clock(START))

    assert manager.get_attribute_value("empathy") == 80.0
    assert manager.get_attribute_value("nurturing") == 85.0
    assert len(manager.get_all_attributes()) == 16


def test_set_attribute_clamps_and_propagates_one_hop() -> None:
    manager = PersonalityManager(clock=_Clock(START))

    value = manager.set_attribute("empathy", 150)

    assert value == 100.0
    # 75 + 100 * 0.5, clamped
    assert manager.get_attribute_value("emotional_depth") == 100.0


def test_lowering_a_trait_still_pushes_its_new_value_onto_neighbors() -> None:
    manager = PersonalityManager(clock=_Clock(START))

    manager.set_attribute("empathy", 60)
    assert manager.get_attribute_value("emotional_depth") == 100.0

    manager.set_attribute("extraversion", 20)

    # playfulness does not push back onto extraversion
    assert manager.get_attribute_value("extraversion") == 20.0
    assert manager.get_attribute_value("playfulness") == pytest.approx(60.0 + 20.0 * 0.4)


def test_negative_edge_pushes_neighbor_down() -> None:
    manager = PersonalityManager(clock=_Clock(START))

    manager.adjust_attribute("neuroticism", 10)

    assert manager.get_attribute_value("neuroticism") == 55.0
    assert manager.get_attribute_value("emotional_stability") == pytest.approx(70.0 - 55.0 * 0.6)


def test_unknown_trait_and_non_finite_values_are_rejected() -> None:
    manager = PersonalityManager(clock=_Clock(START))

    with pytest.raises(ValidationError):
        manager.set_attribute("charisma", 50)
    with pytest.raises(ValidationError):
        manager.adjust_attribute("empathy", math.nan)
    with pytest.raises(ValidationError):
        manager.set_attribute("empathy", "high")


def test_traits_stay_in_bounds_for_any_operation_sequence() -> None:
    clock = _Clock(START)
    config = PersonalityConfig(min_value=0.0, max_value=100.0)
    manager = PersonalityManager(config, clock=clock)
    rng = random.Random(1234)
    names = list(manager.get_all_attributes())

    for _ in range(400):
        name = rng.choice(names)
        op = rng.randrange(4)
        if op == 0:
            manager.set_attribute(name, rng.uniform(-500, 500))
        elif op == 1:
            manager.adjust_attribute(name, rng.uniform(-300, 300))
        elif op == 2:
            manager.boost_attribute(name)
        else:
            clock.advance(hours=rng.uniform(0, 5))
            manager.decay_attributes()
        for value in manager.get_all_attributes().values():
            assert config.min_value <= value <= config.max_value


def test_decay_within_the_same_hour_is_a_noop() -> None:
    clock = _Clock(START)
    manager = PersonalityManager(clock=clock)
    manager.set_attribute("playfulness", 100)

    clock.advance(hours=1, minutes=10)
    assert manager.decay_attributes() is True
    after_first = manager.get_all_attributes()

    clock.advance(minutes=20)
    assert manager.decay_attributes() is False
    assert manager.get_all_attributes() == after_first


def test_decay_after_exactly_two_hours_moves_two_decay_rates_toward_baseline() -> None:
    clock = _Clock(START)
    manager = PersonalityManager(PersonalityConfig(decay_rate=0.1), clock=clock)
    manager.set_attribute("empathy", 100)
    manager.set_attribute("intellect", 40)
    before = manager.get_all_attributes()

    clock.advance(hours=2)
    manager.decay_attributes()

    for name, value in manager.get_all_attributes().items():
        baseline = manager.baselines[name]
        expected = before[name] - (before[name] - baseline) * 0.2
        assert value == pytest.approx(expected)
    assert manager.get_attribute_value("empathy") == pytest.approx(96.0)
    assert manager.get_attribute_value("intellect") == pytest.approx(48.0)


def test_emotional_state_follows_mood_words() -> None:
    clock = _Clock(START)
    manager = PersonalityManager(clock=clock)

    state = manager.update_emotional_state("I feel happy")

    assert state.mood == pytest.approx(0.1)
    assert state.dominant_emotion == "calm"

    state = manager.update_emotional_state("happy happy, wonderful and great love")
    assert state.mood == pytest.approx(0.45)
    assert state.dominant_emotion == "content"


def test_consistency_passes_until_a_reply_is_recorded() -> None:
    manager = PersonalityManager(clock=_Clock(START))

    assert manager.check_response_consistency("whatever").is_consistent is True


def test_reply_missing_dominant_trait_words_is_inconsistent() -> None:
    manager = PersonalityManager(clock=_Clock(START))
    manager.add_response("Earlier reply")

    bad = manager.check_response_consistency("Okay.")
    good = manager.check_response_consistency("I understand, I think I can help and I care.")

    assert bad.is_consistent is False
    assert bad.kind == "personality"
    assert bad.reason == "Response conflicts with dominant personality traits"
    assert good.is_consistent is True


def test_reply_contradicting_strong_mood_is_inconsistent() -> None:
    manager = PersonalityManager(clock=_Clock(START))
    manager.add_response("Earlier reply")
    manager.emotional_state.mood = 0.8

    check = manager.check_response_consistency("I understand, I can help and I care, but I am upset.")

    assert check.is_consistent is False
    assert check.reason == "Response emotion does not match current emotional state"


def test_restore_drops_unknown_traits_and_clamps() -> None:
    manager = PersonalityManager(clock=_Clock(START))

    manager.restore({"empathy": 140.0, "charisma": 10.0}, last_decay=START - timedelta(hours=3))

    assert manager.get_attribute_value("empathy") == 100.0
    assert "charisma" not in manager.get_all_attributes()
    assert manager.last_decay == START - timedelta(hours=3)


def test_export_state_reflects_current_values() -> None:
    manager = PersonalityManager(clock=_Clock(START))
    manager.set_attribute("playfulness", 90)

    state = manager.export_state()

    assert state["attributes"] == manager.get_all_attributes()
    assert state["attributes"]["playfulness"] == 90.0
    assert state["emotional_state"] == manager.get_emotional_state()
    assert state["last_decay"] == manager.last_decay
