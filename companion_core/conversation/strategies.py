from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, Callable

from ..lexicons.json_loader import freeze_words, load_lexicon
from ..models import EmotionReading

EMOTIONAL_SUPPORT_VALENCE = -0.3
CONTINUATION_RELEVANCE = 0.7
TRANSITION_RELEVANCE = 0.3
CLARIFICATION_RELEVANCE = 0.5

_DEFAULTS: dict[str, Any] = {
    "templates": {
        "emotional_support": [
            "I can sense that you're feeling {emotion}. Would you like to talk about it?",
            "It seems like something's bothering you. I'm here to listen.",
            "I understand this might be difficult. Take your time.",
        ],
        "topic_continuation": [
            "That's interesting about {topic}. Can you tell me more?",
            "I'd love to hear more about your thoughts on {topic}.",
            "What else comes to mind when you think about {topic}?",
        ],
        "topic_transition": [
            "That reminds me, earlier you mentioned {previous_topic}. How does that relate?",
            "Interesting perspective. How does this connect with {previous_topic}?",
            "I see. Does this have any connection to what we discussed about {previous_topic}?",
        ],
        "clarification": [
            "Could you help me understand how this relates to what we were discussing?",
            "I want to make sure I'm following. Can you elaborate on that?",
            "That's an interesting point. How does it connect to our previous conversation?",
        ],
        "default": [
            "That's interesting! Tell me more.",
            "I see. How do you feel about that?",
            "What are your thoughts on this?",
            "Could you elaborate on that?",
        ],
    },
    "handler_topics": {
        "family": ["family", "parent", "sister", "brother", "mom", "dad"],
        "work": ["work", "job", "career", "office", "business"],
        "hobbies": ["hobby", "interest", "fun", "enjoy", "like to"],
        "feelings": ["feel", "emotion", "mood", "happy", "sad", "angry"],
        "relationships": ["relationship", "friend", "partner", "love", "dating"],
        "future": ["future", "plan", "goal", "dream", "hope"],
        "problems": ["problem", "issue", "worry", "concern", "trouble"],
    },
}


@dataclass(slots=True)
class ConversationState:
    turn_count: int = 0
    current_topic: str = ""
    emotional_state: EmotionReading = field(
        default_factory=lambda: EmotionReading(primary="neutral", intensity=0.0, valence=0.0, arousal=0.0)
    )
    context_relevance: float = 1.0
    last_response_type: str = "greeting"


@dataclass(frozen=True)
class ResponseStrategy:
    name: str
    priority: int
    condition: Callable[[ConversationState], bool]


# Ordered by priority; the first matching rule wins, "default" applies otherwise.
RESPONSE_STRATEGIES: tuple[ResponseStrategy, ...] = (
    ResponseStrategy(
        "emotional_support",
        1,
        lambda state: state.emotional_state.valence < EMOTIONAL_SUPPORT_VALENCE,
    ),
    ResponseStrategy(
        "topic_continuation",
        2,
        lambda state: state.context_relevance > CONTINUATION_RELEVANCE,
    ),
    ResponseStrategy(
        "topic_transition",
        3,
        lambda state: state.context_relevance < TRANSITION_RELEVANCE,
    ),
    ResponseStrategy(
        "clarification",
        4,
        lambda state: state.context_relevance < CLARIFICATION_RELEVANCE,
    ),
)
DEFAULT_STRATEGY = "default"


@dataclass(frozen=True)
class StrategyLexicon:
    templates: dict[str, tuple[str, ...]]
    topic_keywords: dict[str, tuple[str, ...]]


def load_strategy_lexicon(filename: str = "strategies.json") -> StrategyLexicon:
    raw = load_lexicon(filename, _DEFAULTS)
    templates = {
        str(name): tuple(str(line) for line in lines if str(line).strip())
        for name, lines in (raw.get("templates") or {}).items()
        if isinstance(lines, list)
    }
    topics = {
        str(name): freeze_words(words)
        for name, words in (raw.get("handler_topics") or {}).items()
        if freeze_words(words)
    }
    return StrategyLexicon(templates=templates, topic_keywords=topics)


def select_strategy(state: ConversationState) -> str:
    for strategy in sorted(RESPONSE_STRATEGIES, key=lambda item: item.priority):
        if strategy.condition(state):
            return strategy.name
    return DEFAULT_STRATEGY


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def fill_template(template: str, *, emotion: str = "", topic: str = "", previous_topic: str = "") -> str:
    """Substitute `{emotion}`, `{topic}` and `{previous_topic}`; unknown placeholders are left as-is."""
    values = _Placeholders(
        emotion=emotion or "this way",
        topic=topic or "that",
        previous_topic=previous_topic or "that",
    )
    return template.format_map(values)


def pick_template(
    lexicon: StrategyLexicon,
    strategy: str,
    rng: random.Random,
    *,
    emotion: str = "",
    topic: str = "",
    previous_topic: str = "",
) -> str:
    templates = lexicon.templates.get(strategy) or lexicon.templates.get(DEFAULT_STRATEGY) or ()
    if not templates:
        return ""
    return fill_template(rng.choice(templates), emotion=emotion, topic=topic, previous_topic=previous_topic)
