from __future__ import annotations

import copy
from collections import defaultdict
from datetime import datetime

from ..errors import ValidationError
from ..models import (
    Interest,
    MediaInteraction,
    MediaItem,
    Memory,
    Preference,
    Topic,
    TopicTransition,
    Turn,
)
from .base import RULE_KINDS, CommitBatch, ModerationLogEntry, ModerationRules, PersonalityRecord


def _tail(items: list, limit: int | None) -> list:
    if limit is None:
        return items
    return items[-max(1, int(limit)):] if items else []


class InMemoryConversationStore:
    """Process-local store; values are copied on the way in and out."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._turns: dict[str, list[Turn]] = defaultdict(list)
        self._topics: dict[str, dict[str, Topic]] = defaultdict(dict)
        self._transitions: dict[str, list[TopicTransition]] = defaultdict(list)
        self._memories: dict[str, dict[str, Memory]] = defaultdict(dict)
        self._personality: dict[str, PersonalityRecord] = {}
        self._interests: dict[str, dict[str, Interest]] = defaultdict(dict)
        self._preferences: dict[str, dict[str, Preference]] = defaultdict(dict)
        self._moderation_log: dict[str, list[ModerationLogEntry]] = defaultdict(list)
        self._rules: dict[str, list[str]] = {kind: [] for kind in RULE_KINDS}
        self._media: dict[str, dict[str, MediaItem]] = defaultdict(dict)
        self._interactions: dict[str, list[MediaInteraction]] = defaultdict(list)

    async def init(self) -> None:
        return None

    async def close(self) -> None:
        return None

    def _conversation_tables(self) -> tuple[dict, ...]:
        return (
            self._turns,
            self._topics,
            self._transitions,
            self._memories,
            self._personality,
            self._interests,
            self._preferences,
            self._moderation_log,
        )

    async def commit_batch(self, batch: CommitBatch) -> None:
        cid = batch.conversation_id
        tables = self._conversation_tables()
        saved = [copy.deepcopy(table[cid]) if cid in table else None for table in tables]
        try:
            for turn in batch.turns:
                await self.add_turn(turn)
            for transition in batch.transitions:
                await self.add_topic_transition(cid, transition)
            if batch.personality is not None:
                await self.save_personality(cid, batch.personality)
            for memory in batch.memories:
                await self.upsert_memory(memory)
            for memory_id in batch.evicted_memory_ids:
                await self.delete_memory(cid, memory_id)
            for topic in batch.topics:
                await self.upsert_topic(cid, topic)
            for interest in batch.interests:
                await self.upsert_interest(cid, interest)
            for preference in batch.preferences:
                await self.upsert_preference(cid, preference)
            if batch.moderation is not None:
                await self.add_moderation_log(batch.moderation)
        except BaseException:
            for table, previous in zip(tables, saved):
                if previous is None:
                    table.pop(cid, None)
                else:
                    table[cid] = previous
            raise

    async def add_turn(self, turn: Turn) -> None:
        rows = self._turns[turn.conversation_id]
        rows[:] = [row for row in rows if row.id != turn.id]
        rows.append(copy.deepcopy(turn))
        rows.sort(key=lambda row: row.timestamp)

    async def get_turn(self, conversation_id: str, turn_id: str) -> Turn | None:
        for row in self._turns.get(conversation_id, []):
            if row.id == turn_id:
                return copy.deepcopy(row)
        return None

    async def list_turns(
        self,
        conversation_id: str,
        *,
        limit: int | None = None,
        since: datetime | None = None,
        include_deleted: bool = False,
    ) -> list[Turn]:
        rows = [
            row
            for row in self._turns.get(conversation_id, [])
            if (include_deleted or not row.deleted) and (since is None or row.timestamp >= since)
        ]
        return copy.deepcopy(_tail(rows, limit))

    async def count_turns(self, conversation_id: str, role: str | None = None) -> int:
        return sum(
            1
            for row in self._turns.get(conversation_id, [])
            if not row.deleted and (role is None or row.role == role)
        )

    async def soft_delete_turn(self, conversation_id: str, turn_id: str) -> bool:
        for row in self._turns.get(conversation_id, []):
            if row.id == turn_id and not row.deleted:
                row.deleted = True
                return True
        return False

    async def upsert_topic(self, conversation_id: str, topic: Topic) -> None:
        self._topics[conversation_id][topic.name] = copy.deepcopy(topic)

    async def list_topics(self, conversation_id: str) -> list[Topic]:
        rows = sorted(self._topics.get(conversation_id, {}).values(), key=lambda row: row.last_discussed)
        return copy.deepcopy(rows)

    async def add_topic_transition(self, conversation_id: str, transition: TopicTransition) -> None:
        self._transitions[conversation_id].append(copy.deepcopy(transition))

    async def list_topic_transitions(self, conversation_id: str, limit: int | None = None) -> list[TopicTransition]:
        rows = sorted(self._transitions.get(conversation_id, []), key=lambda row: row.timestamp)
        return copy.deepcopy(_tail(rows, limit))

    async def upsert_memory(self, memory: Memory) -> None:
        self._memories[memory.conversation_id][memory.id] = copy.deepcopy(memory)

    async def delete_memory(self, conversation_id: str, memory_id: str) -> bool:
        return self._memories.get(conversation_id, {}).pop(memory_id, None) is not None

    async def list_memories(self, conversation_id: str) -> list[Memory]:
        rows = sorted(self._memories.get(conversation_id, {}).values(), key=lambda row: row.created_at)
        return copy.deepcopy(rows)

    async def save_personality(self, conversation_id: str, record: PersonalityRecord) -> None:
        self._personality[conversation_id] = copy.deepcopy(record)

    async def get_personality(self, conversation_id: str) -> PersonalityRecord | None:
        record = self._personality.get(conversation_id)
        return copy.deepcopy(record) if record is not None else None

    async def upsert_interest(self, conversation_id: str, interest: Interest) -> None:
        self._interests[conversation_id][interest.topic] = copy.deepcopy(interest)

    async def list_interests(self, conversation_id: str) -> list[Interest]:
        rows = sorted(self._interests.get(conversation_id, {}).values(), key=lambda row: row.last_updated)
        return copy.deepcopy(rows)

    async def upsert_preference(self, conversation_id: str, preference: Preference) -> None:
        self._preferences[conversation_id][preference.key] = copy.deepcopy(preference)

    async def list_preferences(self, conversation_id: str) -> list[Preference]:
        rows = sorted(self._preferences.get(conversation_id, {}).values(), key=lambda row: row.last_updated)
        return copy.deepcopy(rows)

    async def add_moderation_log(self, entry: ModerationLogEntry) -> None:
        self._moderation_log[entry.conversation_id].append(copy.deepcopy(entry))

    async def list_moderation_log(self, conversation_id: str, limit: int | None = None) -> list[ModerationLogEntry]:
        return copy.deepcopy(_tail(self._moderation_log.get(conversation_id, []), limit))

    async def add_moderation_rule(self, kind: str, word: str) -> None:
        if kind not in RULE_KINDS:
            raise ValidationError(f"unknown moderation rule kind: {kind!r}")
        value = str(word or "").strip().lower()
        if value and value not in self._rules[kind]:
            self._rules[kind].append(value)

    async def get_moderation_rules(self) -> ModerationRules:
        return ModerationRules(
            banned=list(self._rules["banned"]),
            warning=list(self._rules["warning"]),
            sensitive=list(self._rules["sensitive"]),
        )

    async def upsert_shared_media(self, conversation_id: str, item: MediaItem) -> None:
        self._media[conversation_id][item.id] = copy.deepcopy(item)

    async def list_shared_media(self, conversation_id: str) -> list[MediaItem]:
        rows = sorted(self._media.get(conversation_id, {}).values(), key=lambda row: row.created_at)
        return copy.deepcopy(rows)

    async def add_media_interaction(self, conversation_id: str, interaction: MediaInteraction) -> None:
        self._interactions[conversation_id].append(copy.deepcopy(interaction))

    async def list_media_interactions(self, conversation_id: str, limit: int | None = None) -> list[MediaInteraction]:
        rows = sorted(self._interactions.get(conversation_id, []), key=lambda row: row.timestamp)
        return copy.deepcopy(_tail(rows, limit))
