from __future__ import annotations

import aiosqlite

from ...common import clamp
from ...models import Memory
from .utils import _dt, _dump_list, _iso, _load_list, _sqlite_connection


class MemoriesMixin:
    async def upsert_memory(self, memory: Memory) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await self._write_memory(db, memory)
            await db.commit()

    async def _write_memory(self, db: aiosqlite.Connection, memory: Memory) -> None:
        await db.execute(
            """
            INSERT INTO memories (
                id, conversation_id, content, importance, context,
                sentiment, attributes, created_at, last_accessed
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                content = excluded.content,
                importance = excluded.importance,
                context = excluded.context,
                sentiment = excluded.sentiment,
                attributes = excluded.attributes,
                last_accessed = excluded.last_accessed
            """,
            (
                memory.id,
                memory.conversation_id,
                memory.content,
                clamp(float(memory.importance), 0.0, 1.0),
                memory.context,
                memory.sentiment,
                _dump_list(memory.associated_attributes),
                _iso(memory.created_at),
                _iso(memory.last_accessed),
            ),
        )

    async def delete_memory(self, conversation_id: str, memory_id: str) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            deleted = await self._remove_memory(db, conversation_id, memory_id)
            await db.commit()
            return deleted

    async def _remove_memory(self, db: aiosqlite.Connection, conversation_id: str, memory_id: str) -> bool:
        cursor = await db.execute(
            "DELETE FROM memories WHERE conversation_id = ? AND id = ?",
            (conversation_id, memory_id),
        )
        return cursor.rowcount > 0

    async def list_memories(self, conversation_id: str) -> list[Memory]:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                """
                SELECT id, conversation_id, content, importance, context, sentiment,
                       attributes, created_at, last_accessed
                FROM memories
                WHERE conversation_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (conversation_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            Memory(
                id=str(row["id"]),
                conversation_id=str(row["conversation_id"]),
                content=str(row["content"]),
                importance=float(row["importance"]),
                context=str(row["context"]),
                sentiment=str(row["sentiment"]),
                associated_attributes={str(item) for item in _load_list(row["attributes"])},
                created_at=_dt(row["created_at"]),
                last_accessed=_dt(row["last_accessed"]),
            )
            for row in rows
        ]
