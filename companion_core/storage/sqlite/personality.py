from __future__ import annotations

import aiosqlite

from ...common import utcnow
from ...models import EmotionalState
from ..base import PersonalityRecord
from .utils import _dt, _dt_or_none, _iso, _sqlite_connection


class PersonalityMixin:
    async def save_personality(self, conversation_id: str, record: PersonalityRecord) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await self._write_personality(db, conversation_id, record)
            await db.commit()

    async def _write_personality(
        self, db: aiosqlite.Connection, conversation_id: str, record: PersonalityRecord
    ) -> None:
        now = _iso(utcnow())
        await db.executemany(
            """
            INSERT INTO personality_attributes (conversation_id, trait_key, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(conversation_id, trait_key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            [(conversation_id, name, float(value), now) for name, value in record.attributes.items()],
        )
        state = record.emotional_state
        if state is not None:
            await db.execute(
                """
                INSERT INTO personality_state (
                    conversation_id, mood, energy, dominant_emotion, last_update, last_decay
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(conversation_id) DO UPDATE SET
                    mood = excluded.mood,
                    energy = excluded.energy,
                    dominant_emotion = excluded.dominant_emotion,
                    last_update = excluded.last_update,
                    last_decay = excluded.last_decay
                """,
                (
                    conversation_id,
                    float(state.mood),
                    float(state.energy),
                    state.dominant_emotion,
                    _iso(state.last_update),
                    _iso(record.last_decay) if record.last_decay is not None else None,
                ),
            )

    async def get_personality(self, conversation_id: str) -> PersonalityRecord | None:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                "SELECT trait_key, value FROM personality_attributes WHERE conversation_id = ?",
                (conversation_id,),
            ) as cursor:
                attribute_rows = await cursor.fetchall()
            async with db.execute(
                """
                SELECT mood, energy, dominant_emotion, last_update, last_decay
                FROM personality_state
                WHERE conversation_id = ?
                """,
                (conversation_id,),
            ) as cursor:
                state_row = await cursor.fetchone()

        if not attribute_rows and state_row is None:
            return None
        record = PersonalityRecord(attributes={str(row["trait_key"]): float(row["value"]) for row in attribute_rows})
        if state_row is not None:
            record.emotional_state = EmotionalState(
                mood=float(state_row["mood"]),
                energy=float(state_row["energy"]),
                dominant_emotion=str(state_row["dominant_emotion"]),
                last_update=_dt(state_row["last_update"]),
            )
            record.last_decay = _dt_or_none(state_row["last_decay"])
        return record
