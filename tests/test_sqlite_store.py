from __future__ import annotations

import asyncio
import sqlite3
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from companion_core.errors import ValidationError  # noqa: E402
from companion_core.models import (  # noqa: E402
    EmotionalState,
    Interest,
    MediaInteraction,
    MediaItem,
    Memory,
    ModerationIssues,
    ModerationVerdict,
    Preference,
    Topic,
    TopicTransition,
    Turn,
)
from companion_core.storage import (  # noqa: E402
    CommitBatch,
    InMemoryConversationStore,
    ModerationLogEntry,
    PersonalityRecord,
    SqliteConversationStore,
)


START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _at(minutes: float) -> datetime:
    return START + timedelta(minutes=minutes)


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "sqlite":
        return SqliteConversationStore(tmp_path / "companion.db")
    return InMemoryConversationStore()


def test_turns_are_listed_oldest_first_with_limit_and_soft_delete(store) -> None:
    async def scenario() -> None:
        await store.init()
        turns = [Turn.create("c1", f"turn {index}", timestamp=_at(index)) for index in range(5)]
        for turn in reversed(turns):
            await store.add_turn(turn)
        await store.add_turn(Turn.create("c2", "other conversation", timestamp=_at(1)))
        await store.add_turn(Turn.create("c1", "reply", "assistant", timestamp=_at(6)))

        assert [turn.content for turn in await store.list_turns("c1", limit=3)] == ["turn 3", "turn 4", "reply"]
        assert await store.count_turns("c1") == 6
        assert await store.count_turns("c1", role="user") == 5

        assert await store.soft_delete_turn("c1", turns[4].id) is True
        assert await store.soft_delete_turn("c1", turns[4].id) is False
        visible = [turn.content for turn in await store.list_turns("c1", since=_at(3))]
        assert visible == ["turn 3", "reply"]
        everything = await store.list_turns("c1", include_deleted=True)
        assert len(everything) == 6
        deleted = await store.get_turn("c1", turns[4].id)
        assert deleted is not None and deleted.deleted is True

    asyncio.run(scenario())


def test_memory_round_trip_and_delete(store) -> None:
    async def scenario() -> None:
        await store.init()
        memory = Memory(
            id="m1",
            conversation_id="c1",
            content="My sister lives in Lisbon",
            importance=0.72,
            context="conversation",
            sentiment="neutral",
            associated_attributes={"family"},
            created_at=_at(0),
            last_accessed=_at(5),
        )
        await store.upsert_memory(memory)
        memory.last_accessed = _at(9)
        await store.upsert_memory(memory)

        loaded = await store.list_memories("c1")
        assert loaded == [memory]
        assert await store.delete_memory("c1", "m1") is True
        assert await store.list_memories("c1") == []

    asyncio.run(scenario())


def test_personality_record_round_trip(store) -> None:
    async def scenario() -> None:
        await store.init()
        assert await store.get_personality("c1") is None
        record = PersonalityRecord(
            attributes={"empathy": 90.0, "playfulness": 55.5},
            emotional_state=EmotionalState(0.4, 0.6, "content", _at(3)),
            last_decay=_at(1),
        )
        await store.save_personality("c1", record)

        loaded = await store.get_personality("c1")
        assert loaded == record

    asyncio.run(scenario())


def test_topics_and_transitions_round_trip(store) -> None:
    async def scenario() -> None:
        await store.init()
        topic = Topic("music", _at(2), 3, 120.0, 0.5, {"art"}, ["I love music", "music again"])
        await store.upsert_topic("c1", topic)
        topic.frequency = 4
        await store.upsert_topic("c1", topic)
        for index, name in enumerate(("books", "music", "art")):
            await store.add_topic_transition("c1", TopicTransition("prev", name, _at(index), "natural", name))

        assert await store.list_topics("c1") == [topic]
        recent = await store.list_topic_transitions("c1", limit=2)
        assert [item.to_topic for item in recent] == ["music", "art"]

    asyncio.run(scenario())


def test_interests_and_preferences_round_trip(store) -> None:
    async def scenario() -> None:
        await store.init()
        interest = Interest("cooking", 0.4, 0.5, 3, _at(1), {"food"})
        preference = Preference("communication", "brief", 0.6, _at(2), ["keep it brief and short"])
        await store.upsert_interest("c1", interest)
        await store.upsert_preference("c1", preference)

        assert await store.list_interests("c1") == [interest]
        assert await store.list_preferences("c1") == [preference]

    asyncio.run(scenario())


def test_moderation_log_and_rules(store) -> None:
    async def scenario() -> None:
        await store.init()
        verdict = ModerationVerdict(
            is_allowed=False,
            warnings=["Message contains banned words"],
            filtered_content="this is ****** test",
            moderation_score=0.02,
            detected_issues=ModerationIssues(banned_words=["xyz123"]),
        )
        entry = ModerationLogEntry("c1", "this is xyz123 test", verdict, _at(0))
        await store.add_moderation_log(entry)
        await store.add_moderation_rule("banned", " XYZ123 ")
        await store.add_moderation_rule("banned", "xyz123")
        await store.add_moderation_rule("sensitive", "gambling")

        assert await store.list_moderation_log("c1") == [entry]
        rules = await store.get_moderation_rules()
        assert rules.banned == ["xyz123"]
        assert rules.sensitive == ["gambling"]
        with pytest.raises(ValidationError):
            await store.add_moderation_rule("spicy", "word")

    asyncio.run(scenario())


def test_media_and_interactions_round_trip(store) -> None:
    async def scenario() -> None:
        await store.init()
        photo = MediaItem("p1", "image", caption="sunset", created_at=_at(0))
        voice = MediaItem("v1", "voice", transcript="hello there", created_at=_at(1))
        await store.upsert_shared_media("c1", photo)
        await store.upsert_shared_media("c1", voice)
        for index in range(4):
            await store.add_media_interaction("c1", MediaInteraction("p1", "view", _at(index)))

        assert await store.list_shared_media("c1") == [photo, voice]
        recent = await store.list_media_interactions("c1", limit=2)
        assert [item.timestamp for item in recent] == [_at(2), _at(3)]

    asyncio.run(scenario())


def _memory(memory_id: str, minutes: float) -> Memory:
    return Memory(
        memory_id, "c1", f"memory {memory_id}", 0.5, "conversation", "neutral", set(), _at(minutes), _at(minutes)
    )


def test_commit_batch_applies_every_write(store) -> None:
    async def scenario() -> None:
        await store.init()
        await store.upsert_memory(_memory("old", 0))
        batch = CommitBatch(
            "c1",
            turns=[
                Turn.create("c1", "hello", timestamp=_at(1)),
                Turn.create("c1", "hi", "assistant", timestamp=_at(2)),
            ],
            transitions=[TopicTransition("general", "music", _at(1), "natural", "hello")],
            personality=PersonalityRecord(attributes={"empathy": 81.0}),
            memories=[_memory("new", 1)],
            evicted_memory_ids=["old"],
            topics=[Topic("music", _at(1), 1, 0.0, 0.2, set(), ["hello"])],
            interests=[Interest("music", 0.2, 0.1, 1, _at(1), set())],
            preferences=[Preference("communication", "brief", 0.6, _at(1), ["short please"])],
        )

        await store.commit_batch(batch)

        assert [turn.content for turn in await store.list_turns("c1")] == ["hello", "hi"]
        assert [memory.id for memory in await store.list_memories("c1")] == ["new"]
        assert [item.to_topic for item in await store.list_topic_transitions("c1")] == ["music"]
        assert (await store.get_personality("c1")).attributes == {"empathy": 81.0}
        assert [topic.name for topic in await store.list_topics("c1")] == ["music"]
        assert [interest.topic for interest in await store.list_interests("c1")] == ["music"]
        assert len(await store.list_preferences("c1")) == 1

    asyncio.run(scenario())


def test_sqlite_commit_batch_rolls_back_on_failed_write(tmp_path: Path) -> None:
    async def scenario() -> None:
        store = SqliteConversationStore(tmp_path / "companion.db")
        await store.init()
        await store.upsert_memory(_memory("old", 0))
        batch = CommitBatch(
            "c1",
            turns=[Turn.create("c1", "hello", timestamp=_at(1))],
            memories=[_memory("new", 1)],
            evicted_memory_ids=["old"],
            # kind is outside the CHECK constraint, so the insert fails after the turn row
            transitions=[TopicTransition("general", "music", _at(1), "sideways", "hello")],
        )

        with pytest.raises(sqlite3.IntegrityError):
            await store.commit_batch(batch)

        assert await store.list_turns("c1") == []
        assert [memory.id for memory in await store.list_memories("c1")] == ["old"]
        assert await store.list_topic_transitions("c1") == []

    asyncio.run(scenario())


def test_memory_commit_batch_restores_previous_state_on_failure() -> None:
    class _PersonalityFails(InMemoryConversationStore):
        async def save_personality(self, conversation_id, record) -> None:
            raise RuntimeError("disk full")

    async def scenario() -> None:
        store = _PersonalityFails()
        await store.add_turn(Turn.create("c1", "earlier", timestamp=_at(0)))
        await store.upsert_memory(_memory("old", 0))
        batch = CommitBatch(
            "c1",
            turns=[Turn.create("c1", "hello", timestamp=_at(1))],
            personality=PersonalityRecord(attributes={"empathy": 81.0}),
            memories=[_memory("new", 1)],
            evicted_memory_ids=["old"],
        )

        with pytest.raises(RuntimeError):
            await store.commit_batch(batch)

        assert [turn.content for turn in await store.list_turns("c1")] == ["earlier"]
        assert [memory.id for memory in await store.list_memories("c1")] == ["old"]

    asyncio.run(scenario())


def test_sqlite_schema_version_is_recorded(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "companion.db"
    store = SqliteConversationStore(path)

    asyncio.run(store.init())
    asyncio.run(store.init())

    with sqlite3.connect(path) as conn:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
    assert version == SqliteConversationStore.SCHEMA_VERSION


def test_sqlite_refuses_newer_schema(tmp_path: Path) -> None:
    path = tmp_path / "companion.db"
    with sqlite3.connect(path) as conn:
        conn.execute("PRAGMA user_version = 99")

    with pytest.raises(RuntimeError, match="schema version mismatch"):
        asyncio.run(SqliteConversationStore(path).init())
