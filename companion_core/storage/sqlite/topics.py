from __future__ import annotations

import aiosqlite

from ...models import Topic, TopicTransition
from .utils import _dt, _dump_list, _iso, _limit_clause, _load_list, _sqlite_connection


class TopicsMixin:
    async def upsert_topic(self, conversation_id: str, topic: Topic) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await self._write_topic(db, conversation_id, topic)
            await db.commit()

    async def _write_topic(self, db: aiosqlite.Connection, conversation_id: str, topic: Topic) -> None:
        await db.execute(
            """
            INSERT INTO topics (
                conversation_id, name, last_discussed, frequency, duration,
                sentiment, related_topics, context_history
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(conversation_id, name) DO UPDATE SET
                last_discussed = excluded.last_discussed,
                frequency = excluded.frequency,
                duration = excluded.duration,
                sentiment = excluded.sentiment,
                related_topics = excluded.related_topics,
                context_history = excluded.context_history
            """,
            (
                conversation_id,
                topic.name,
                _iso(topic.last_discussed),
                int(topic.frequency),
                float(topic.duration),
                float(topic.sentiment),
                _dump_list(topic.related_topics),
                _dump_list(topic.context_history),
            ),
        )

    async def list_topics(self, conversation_id: str) -> list[Topic]:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                """
                SELECT name, last_discussed, frequency, duration, sentiment, related_topics, context_history
                FROM topics
                WHERE conversation_id = ?
                ORDER BY last_discussed ASC
                """,
                (conversation_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            Topic(
                name=str(row["name"]),
                last_discussed=_dt(row["last_discussed"]),
                frequency=int(row["frequency"]),
                duration=float(row["duration"]),
                sentiment=float(row["sentiment"]),
                related_topics={str(item) for item in _load_list(row["related_topics"])},
                context_history=[str(item) for item in _load_list(row["context_history"])],
            )
            for row in rows
        ]

    async def add_topic_transition(self, conversation_id: str, transition: TopicTransition) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await self._write_topic_transition(db, conversation_id, transition)
            await db.commit()

    async def _write_topic_transition(
        self, db: aiosqlite.Connection, conversation_id: str, transition: TopicTransition
    ) -> None:
        await db.execute(
            """
            INSERT INTO topic_transitions (conversation_id, from_topic, to_topic, created_at, kind, context)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                conversation_id,
                transition.from_topic,
                transition.to_topic,
                _iso(transition.timestamp),
                transition.kind,
                transition.context,
            ),
        )

    async def list_topic_transitions(self, conversation_id: str, limit: int | None = None) -> list[TopicTransition]:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                f"""
                SELECT from_topic, to_topic, created_at, kind, context
                FROM topic_transitions
                WHERE conversation_id = ?
                ORDER BY created_at DESC, transition_id DESC
                {_limit_clause(limit)}
                """,
                (conversation_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            TopicTransition(
                from_topic=str(row["from_topic"]),
                to_topic=str(row["to_topic"]),
                timestamp=_dt(row["created_at"]),
                kind=str(row["kind"]),
                context=str(row["context"]),
            )
            for row in reversed(rows)
        ]
