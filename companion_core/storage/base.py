from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from ..models import (
    EmotionalState,
    Interest,
    MediaInteraction,
    MediaItem,
    Memory,
    ModerationVerdict,
    Preference,
    Topic,
    TopicTransition,
    Turn,
)

RULE_KINDS = ("banned", "warning", "sensitive")


@dataclass(slots=True)
class PersonalityRecord:
    attributes: dict[str, float]
    emotional_state: EmotionalState | None = None
    last_decay: datetime | None = None


@dataclass(slots=True)
class ModerationLogEntry:
    conversation_id: str
    content: str
    verdict: ModerationVerdict
    created_at: datetime


@dataclass(slots=True)
class ModerationRules:
    banned: list[str] = field(default_factory=list)
    warning: list[str] = field(default_factory=list)
    sensitive: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CommitBatch:
    """Writes produced by one conversation step, applied all or nothing."""

    conversation_id: str
    turns: list[Turn] = field(default_factory=list)
    transitions: list[TopicTransition] = field(default_factory=list)
    personality: PersonalityRecord | None = None
    memories: list[Memory] = field(default_factory=list)
    evicted_memory_ids: list[str] = field(default_factory=list)
    topics: list[Topic] = field(default_factory=list)
    interests: list[Interest] = field(default_factory=list)
    preferences: list[Preference] = field(default_factory=list)
    moderation: ModerationLogEntry | None = None


class ConversationStore(Protocol):
    """Persistence collaborator; every list is ordered oldest first."""

    backend_name: str

    async def init(self) -> None: ...

    async def close(self) -> None: ...

    async def commit_batch(self, batch: CommitBatch) -> None:
        """Apply every write in `batch`, or none of them when any write fails."""
        ...

    # turns
    async def add_turn(self, turn: Turn) -> None: ...

    async def get_turn(self, conversation_id: str, turn_id: str) -> Turn | None: ...

    async def list_turns(
        self,
        conversation_id: str,
        *,
        limit: int | None = None,
        since: datetime | None = None,
        include_deleted: bool = False,
    ) -> list[Turn]: ...

    async def count_turns(self, conversation_id: str, role: str | None = None) -> int: ...

    async def soft_delete_turn(self, conversation_id: str, turn_id: str) -> bool: ...

    # topics
    async def upsert_topic(self, conversation_id: str, topic: Topic) -> None: ...

    async def list_topics(self, conversation_id: str) -> list[Topic]: ...

    async def add_topic_transition(self, conversation_id: str, transition: TopicTransition) -> None: ...

    async def list_topic_transitions(self, conversation_id: str, limit: int | None = None) -> list[TopicTransition]: ...

    # memories
    async def upsert_memory(self, memory: Memory) -> None: ...

    async def delete_memory(self, conversation_id: str, memory_id: str) -> bool: ...

    async def list_memories(self, conversation_id: str) -> list[Memory]: ...

    # personality
    async def save_personality(self, conversation_id: str, record: PersonalityRecord) -> None: ...

    async def get_personality(self, conversation_id: str) -> PersonalityRecord | None: ...

    # learning
    async def upsert_interest(self, conversation_id: str, interest: Interest) -> None: ...

    async def list_interests(self, conversation_id: str) -> list[Interest]: ...

    async def upsert_preference(self, conversation_id: str, preference: Preference) -> None: ...

    async def list_preferences(self, conversation_id: str) -> list[Preference]: ...

    # moderation
    async def add_moderation_log(self, entry: ModerationLogEntry) -> None: ...

    async def list_moderation_log(self, conversation_id: str, limit: int | None = None) -> list[ModerationLogEntry]: ...

    async def add_moderation_rule(self, kind: str, word: str) -> None: ...

    async def get_moderation_rules(self) -> ModerationRules: ...

    # media
    async def upsert_shared_media(self, conversation_id: str, item: MediaItem) -> None: ...

    async def list_shared_media(self, conversation_id: str) -> list[MediaItem]: ...

    async def add_media_interaction(self, conversation_id: str, interaction: MediaInteraction) -> None: ...

    async def list_media_interactions(self, conversation_id: str, limit: int | None = None) -> list[MediaInteraction]: ...
