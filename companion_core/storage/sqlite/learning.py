from __future__ import annotations

import aiosqlite

from ...models import Interest, Preference
from .utils import _dt, _dump_list, _iso, _load_list, _sqlite_connection


class LearningMixin:
    async def upsert_interest(self, conversation_id: str, interest: Interest) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await self._write_interest(db, conversation_id, interest)
            await db.commit()

    async def _write_interest(self, db: aiosqlite.Connection, conversation_id: str, interest: Interest) -> None:
        await db.execute(
            """
            INSERT INTO interests (
                conversation_id, topic, sentiment, confidence, frequency, last_updated, related_topics
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(conversation_id, topic) DO UPDATE SET
                sentiment = excluded.sentiment,
                confidence = excluded.confidence,
                frequency = excluded.frequency,
                last_updated = excluded.last_updated,
                related_topics = excluded.related_topics
            """,
            (
                conversation_id,
                interest.topic,
                float(interest.sentiment),
                float(interest.confidence),
                int(interest.frequency),
                _iso(interest.last_updated),
                _dump_list(interest.related_topics),
            ),
        )

    async def list_interests(self, conversation_id: str) -> list[Interest]:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                """
                SELECT topic, sentiment, confidence, frequency, last_updated, related_topics
                FROM interests
                WHERE conversation_id = ?
                ORDER BY last_updated ASC
                """,
                (conversation_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            Interest(
                topic=str(row["topic"]),
                sentiment=float(row["sentiment"]),
                confidence=float(row["confidence"]),
                frequency=int(row["frequency"]),
                last_updated=_dt(row["last_updated"]),
                related_topics={str(item) for item in _load_list(row["related_topics"])},
            )
            for row in rows
        ]

    async def upsert_preference(self, conversation_id: str, preference: Preference) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await self._write_preference(db, conversation_id, preference)
            await db.commit()

    async def _write_preference(
        self, db: aiosqlite.Connection, conversation_id: str, preference: Preference
    ) -> None:
        await db.execute(
            """
            INSERT INTO preferences (conversation_id, category, value, strength, last_updated, context)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(conversation_id, category, value) DO UPDATE SET
                strength = excluded.strength,
                last_updated = excluded.last_updated,
                context = excluded.context
            """,
            (
                conversation_id,
                preference.category,
                preference.value,
                float(preference.strength),
                _iso(preference.last_updated),
                _dump_list(preference.context),
            ),
        )

    async def list_preferences(self, conversation_id: str) -> list[Preference]:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                """
                SELECT category, value, strength, last_updated, context
                FROM preferences
                WHERE conversation_id = ?
                ORDER BY last_updated ASC
                """,
                (conversation_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            Preference(
                category=str(row["category"]),
                value=str(row["value"]),
                strength=float(row["strength"]),
                last_updated=_dt(row["last_updated"]),
                context=[str(item) for item in _load_list(row["context"])],
            )
            for row in rows
        ]
