from __future__ import annotations

from datetime import datetime

import aiosqlite

from ...models import Turn
from .utils import _dt, _iso, _limit_clause, _sqlite_connection


def _turn_from_row(row: aiosqlite.Row) -> Turn:
    return Turn(
        id=str(row["id"]),
        conversation_id=str(row["conversation_id"]),
        content=str(row["content"]),
        role=str(row["role"]),
        timestamp=_dt(row["created_at"]),
        parent_id=str(row["parent_id"]) if row["parent_id"] is not None else None,
        deleted=bool(row["deleted"]),
    )


class TurnsMixin:
    async def add_turn(self, turn: Turn) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await self._write_turn(db, turn)
            await db.commit()

    async def _write_turn(self, db: aiosqlite.Connection, turn: Turn) -> None:
        await db.execute(
            """
            INSERT INTO turns (id, conversation_id, role, content, created_at, parent_id, deleted)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                content = excluded.content,
                role = excluded.role,
                created_at = excluded.created_at,
                parent_id = excluded.parent_id,
                deleted = excluded.deleted
            """,
            (
                turn.id,
                turn.conversation_id,
                turn.role,
                turn.content,
                _iso(turn.timestamp),
                turn.parent_id,
                1 if turn.deleted else 0,
            ),
        )

    async def get_turn(self, conversation_id: str, turn_id: str) -> Turn | None:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                """
                SELECT id, conversation_id, role, content, created_at, parent_id, deleted
                FROM turns
                WHERE conversation_id = ? AND id = ?
                """,
                (conversation_id, turn_id),
            ) as cursor:
                row = await cursor.fetchone()
        return _turn_from_row(row) if row is not None else None

    async def list_turns(
        self,
        conversation_id: str,
        *,
        limit: int | None = None,
        since: datetime | None = None,
        include_deleted: bool = False,
    ) -> list[Turn]:
        clauses = ["conversation_id = ?"]
        params: list[object] = [conversation_id]
        if not include_deleted:
            clauses.append("deleted = 0")
        if since is not None:
            clauses.append("created_at >= ?")
            params.append(_iso(since))
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                f"""
                SELECT id, conversation_id, role, content, created_at, parent_id, deleted
                FROM turns
                WHERE {" AND ".join(clauses)}
                ORDER BY created_at DESC, rowid DESC
                {_limit_clause(limit)}
                """,
                params,
            ) as cursor:
                rows = await cursor.fetchall()
        return [_turn_from_row(row) for row in reversed(rows)]

    async def count_turns(self, conversation_id: str, role: str | None = None) -> int:
        query = "SELECT COUNT(*) FROM turns WHERE conversation_id = ? AND deleted = 0"
        params: list[object] = [conversation_id]
        if role is not None:
            query += " AND role = ?"
            params.append(role)
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(query, params) as cursor:
                row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def soft_delete_turn(self, conversation_id: str, turn_id: str) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute(
                "UPDATE turns SET deleted = 1 WHERE conversation_id = ? AND id = ? AND deleted = 0",
                (conversation_id, turn_id),
            )
            await db.commit()
            return cursor.rowcount > 0
