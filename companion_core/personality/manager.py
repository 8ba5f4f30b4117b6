from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any

from ..common import Clock, clamp, hours_between, is_finite_number, utcnow
from ..errors import ValidationError
from ..models import ConsistencyCheck, EmotionalState
from .traits import PersonalityRules, load_personality_rules

logger = logging.getLogger("companion_core.personality")

MOOD_STEP = 0.2
STRONG_MOOD = 0.3
HIGH_ENERGY = 0.6
MIN_ENERGY = 0.2
ENERGY_DECAY_PER_MINUTE = 0.01
DOMINANT_TRAIT_FLOOR = 70.0
RECENT_RESPONSES = 5


@dataclass(slots=True)
class PersonalityConfig:
    baseline_values: dict[str, float] = field(default_factory=dict)
    min_value: float = 0.0
    max_value: float = 100.0
    decay_rate: float = 0.1
    boost_rate: float = 0.2
    initial_mood: float = 0.0
    initial_energy: float = 0.5

    @classmethod
    def from_settings(cls, settings: object, **overrides: Any) -> "PersonalityConfig":
        defaults = cls()
        base = cls(
            decay_rate=float(getattr(settings, "personality_decay_rate", defaults.decay_rate)),
            boost_rate=float(getattr(settings, "personality_boost_rate", defaults.boost_rate)),
        )
        known = {item.name for item in fields(cls)}
        return replace(base, **{key: value for key, value in overrides.items() if key in known})


class PersonalityManager:
    """Trait vector with baselines, coupled edges, hourly decay and the companion's own mood."""

    def __init__(
        self,
        config: PersonalityConfig | None = None,
        *,
        rules: PersonalityRules | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.config = config or PersonalityConfig()
        self.rules = rules or load_personality_rules()
        self.clock = clock

        self.baselines: dict[str, float] = dict(self.rules.baselines)
        for name, value in (self.config.baseline_values or {}).items():
            self.baselines[str(name)] = self._clamp(float(value))

        self.attributes: dict[str, float] = dict(self.baselines)
        now = self.clock()
        self.last_decay: datetime = now
        self.emotional_state = EmotionalState(
            mood=clamp(self.config.initial_mood, -1.0, 1.0),
            energy=clamp(self.config.initial_energy, 0.0, 1.0),
            dominant_emotion="neutral",
            last_update=now,
        )
        self.recent_responses: deque[str] = deque(maxlen=RECENT_RESPONSES)

    def _clamp(self, value: float) -> float:
        return clamp(value, self.config.min_value, self.config.max_value)

    def _require_trait(self, name: str) -> str:
        key = str(name or "").strip()
        if key not in self.attributes:
            raise ValidationError(f"unknown personality trait: {name!r}")
        return key

    @staticmethod
    def _require_number(value: object, what: str) -> float:
        if not is_finite_number(value):
            raise ValidationError(f"{what} must be a finite number, got {value!r}")
        return float(value)  # type: ignore[arg-type]

    def _write(self, name: str, value: float) -> float:
        self.attributes[name] = self._clamp(value)
        return self.attributes[name]

    def _propagate(self, name: str, value: float) -> None:
        """Push `value * weight` onto each direct neighbor; neighbors do not propagate further."""
        for neighbor, weight in self.rules.neighbors.get(name, ()):
            if neighbor in self.attributes:
                self._write(neighbor, self.attributes[neighbor] + value * weight)

    def set_attribute(self, name: str, value: object) -> float:
        key = self._require_trait(name)
        target = self._require_number(value, "trait value")
        applied = self._write(key, target)
        self._propagate(key, applied)
        return self.attributes[key]

    def adjust_attribute(self, name: str, delta: object) -> float:
        key = self._require_trait(name)
        step = self._require_number(delta, "trait delta")
        return self.set_attribute(key, self.attributes[key] + step)

    def boost_attribute(self, name: str) -> float:
        key = self._require_trait(name)
        return self.adjust_attribute(key, self.attributes[key] * self.config.boost_rate)

    def decay_attributes(self, now: datetime | None = None) -> bool:
        """Pull every trait toward its baseline; a no-op until an hour has passed since the last tick."""
        current = now or self.clock()
        hours = hours_between(self.last_decay, current)
        if hours < 1.0:
            return False
        factor = min(self.config.decay_rate * hours, 1.0)
        for name, value in self.attributes.items():
            baseline = self.baselines.get(name, value)
            self.attributes[name] = self._clamp(value - (value - baseline) * factor)
        self.last_decay = current
        logger.debug("Decayed personality traits by factor %.3f after %.2fh", factor, hours)
        return True

    def get_attribute_value(self, name: str) -> float:
        return self.attributes[self._require_trait(name)]

    def get_all_attributes(self) -> dict[str, float]:
        return dict(self.attributes)

    def dominant_traits(self, limit: int = 3) -> list[tuple[str, float]]:
        return sorted(self.attributes.items(), key=lambda item: item[1], reverse=True)[:limit]

    def update_emotional_state(self, text: str) -> EmotionalState:
        lowered = (text or "").lower()
        delta = 0.0
        for word in self.rules.positive_mood_words:
            if word in lowered:
                delta += MOOD_STEP
        for word in self.rules.negative_mood_words:
            if word in lowered:
                delta -= MOOD_STEP

        state = self.emotional_state
        now = self.clock()
        minutes_idle = max(0.0, (now - state.last_update).total_seconds() / 60.0)
        state.mood = clamp((state.mood + delta) / 2.0, -1.0, 1.0)
        state.energy = max(MIN_ENERGY, state.energy - minutes_idle * ENERGY_DECAY_PER_MINUTE)
        state.dominant_emotion = _classify_state(state.mood, state.energy)
        state.last_update = now
        return self.get_emotional_state()

    def get_emotional_state(self) -> EmotionalState:
        state = self.emotional_state
        return EmotionalState(state.mood, state.energy, state.dominant_emotion, state.last_update)

    def add_response(self, response: str) -> None:
        self.recent_responses.append(response)

    def check_response_consistency(self, candidate: str) -> ConsistencyCheck:
        if not self.recent_responses:
            return ConsistencyCheck(True)
        if not self._mood_consistent(candidate):
            return ConsistencyCheck(False, "Response emotion does not match current emotional state", "personality")
        if not self._traits_consistent(candidate):
            return ConsistencyCheck(False, "Response conflicts with dominant personality traits", "personality")
        return ConsistencyCheck(True)

    def _mood_consistent(self, candidate: str) -> bool:
        mood = self.emotional_state.mood
        if mood > STRONG_MOOD and self.rules.positive_tone_conflict is not None:
            return self.rules.positive_tone_conflict.search(candidate) is None
        if mood < -STRONG_MOOD and self.rules.negative_tone_conflict is not None:
            return self.rules.negative_tone_conflict.search(candidate) is None
        return True

    def _traits_consistent(self, candidate: str) -> bool:
        for name, value in self.dominant_traits(3):
            if value <= DOMINANT_TRAIT_FLOOR:
                continue
            pattern = self.rules.required_patterns.get(name)
            if pattern is not None and pattern.search(candidate) is None:
                return False
        return True

    def get_personality_snapshot(self) -> str:
        traits = ", ".join(f"{name} ({round(value)}%)" for name, value in self.dominant_traits(3))
        state = self.emotional_state
        return (
            f"Current personality traits: {traits}\n"
            f"Emotional state: {state.dominant_emotion} "
            f"(mood: {round(state.mood * 100)}%, energy: {round(state.energy * 100)}%)"
        )

    def restore(
        self,
        attributes: dict[str, float] | None = None,
        *,
        emotional_state: EmotionalState | None = None,
        last_decay: datetime | None = None,
    ) -> None:
        """Load persisted values without propagation; unknown names are dropped."""
        for name, value in (attributes or {}).items():
            if name not in self.attributes:
                logger.debug("Dropping persisted value for unknown trait %s", name)
                continue
            if is_finite_number(value):
                self.attributes[name] = self._clamp(float(value))
        if emotional_state is not None:
            self.emotional_state = EmotionalState(
                mood=clamp(emotional_state.mood, -1.0, 1.0),
                energy=clamp(emotional_state.energy, 0.0, 1.0),
                dominant_emotion=emotional_state.dominant_emotion or "neutral",
                last_update=emotional_state.last_update,
            )
        if last_decay is not None:
            self.last_decay = last_decay

    def export_state(self) -> dict[str, Any]:
        return {
            "attributes": self.get_all_attributes(),
            "emotional_state": self.get_emotional_state(),
            "last_decay": self.last_decay,
        }


def _classify_state(mood: float, energy: float) -> str:
    energetic = energy > HIGH_ENERGY
    if mood > STRONG_MOOD:
        return "excited" if energetic else "content"
    if mood < -STRONG_MOOD:
        return "angry" if energetic else "sad"
    return "focused" if energetic else "calm"
