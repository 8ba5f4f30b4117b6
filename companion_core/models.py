from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from .common import collapse_spaces, utcnow
from .errors import ValidationError

TURN_ROLES = ("user", "assistant")
MEDIA_KINDS = ("image", "voice")
TRANSITION_KINDS = ("natural", "forced", "suggested")


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class Turn:
    id: str
    conversation_id: str
    content: str
    role: str
    timestamp: datetime
    parent_id: str | None = None
    deleted: bool = False

    @classmethod
    def create(
        cls,
        conversation_id: str,
        content: str,
        role: str = "user",
        *,
        timestamp: datetime | None = None,
        parent_id: str | None = None,
        turn_id: str | None = None,
    ) -> "Turn":
        turn = cls(
            id=turn_id or new_id(),
            conversation_id=conversation_id,
            content=content,
            role=role,
            timestamp=timestamp or utcnow(),
            parent_id=parent_id,
        )
        turn.validate()
        return turn

    def validate(self) -> None:
        if not str(self.conversation_id or "").strip():
            raise ValidationError("turn conversation_id cannot be empty")
        if not isinstance(self.content, str) or not collapse_spaces(self.content):
            raise ValidationError("turn content cannot be empty")
        if self.role not in TURN_ROLES:
            raise ValidationError(f"unknown turn role: {self.role!r}")


@dataclass(slots=True)
class EmotionReading:
    primary: str
    intensity: float
    valence: float
    arousal: float
    secondary: str | None = None


@dataclass(slots=True)
class EmotionalTrend:
    dominant_emotion: str
    average_valence: float
    average_arousal: float
    stability: float


@dataclass(slots=True)
class EmotionalState:
    """The companion's own mood, distinct from the user's EmotionReading."""

    mood: float
    energy: float
    dominant_emotion: str
    last_update: datetime


@dataclass(slots=True)
class Topic:
    name: str
    last_discussed: datetime
    frequency: int = 0
    duration: float = 0.0
    sentiment: float = 0.0
    related_topics: set[str] = field(default_factory=set)
    context_history: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TopicTransition:
    from_topic: str
    to_topic: str
    timestamp: datetime
    kind: str
    context: str


@dataclass(slots=True)
class Memory:
    id: str
    conversation_id: str
    content: str
    importance: float
    context: str
    sentiment: str
    associated_attributes: set[str]
    created_at: datetime
    last_accessed: datetime


@dataclass(slots=True)
class Interest:
    topic: str
    sentiment: float
    confidence: float
    frequency: int
    last_updated: datetime
    related_topics: set[str] = field(default_factory=set)


@dataclass(slots=True)
class Preference:
    category: str
    value: str
    strength: float
    last_updated: datetime
    context: list[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.category}:{self.value}"


@dataclass(slots=True)
class ModerationIssues:
    profanity: bool = False
    toxicity: bool = False
    sensitive_topics: bool = False
    length: bool = False
    banned_words: list[str] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        result: dict[str, int] = {}
        for name in ("profanity", "toxicity", "sensitive_topics", "length"):
            if getattr(self, name):
                result[name] = 1
        if self.banned_words:
            result["banned_words"] = len(self.banned_words)
        return result


@dataclass(slots=True)
class ModerationVerdict:
    is_allowed: bool
    warnings: list[str]
    filtered_content: str
    moderation_score: float
    detected_issues: ModerationIssues


@dataclass(slots=True)
class ConsistencyCheck:
    is_consistent: bool
    reason: str | None = None
    # "personality" or "context" when the check failed
    kind: str | None = None


@dataclass(slots=True)
class ContinuityReport:
    is_coherent: bool
    gaps: list[str]
    topic_shifts: list[str]


@dataclass(slots=True)
class MediaItem:
    id: str
    kind: str
    caption: str = ""
    transcript: str = ""
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.kind not in MEDIA_KINDS:
            raise ValidationError(f"unknown media kind: {self.kind!r}")


@dataclass(slots=True)
class MediaFingerprint:
    media_id: str
    kind: str
    vector: tuple[float, ...]
    tags: list[str]
    categories: list[str]
    computed_at: datetime


@dataclass(slots=True)
class MediaInteraction:
    media_id: str
    kind: str
    timestamp: datetime


@dataclass(slots=True)
class Recommendation:
    item: MediaItem
    score: float
