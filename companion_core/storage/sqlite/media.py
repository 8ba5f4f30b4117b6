from __future__ import annotations

from ...models import MediaInteraction, MediaItem
from .utils import _dt, _iso, _limit_clause, _sqlite_connection


class MediaMixin:
    async def upsert_shared_media(self, conversation_id: str, item: MediaItem) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO shared_media (conversation_id, media_id, kind, caption, transcript, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(conversation_id, media_id) DO UPDATE SET
                    kind = excluded.kind,
                    caption = excluded.caption,
                    transcript = excluded.transcript
                """,
                (conversation_id, item.id, item.kind, item.caption, item.transcript, _iso(item.created_at)),
            )
            await db.commit()

    async def list_shared_media(self, conversation_id: str) -> list[MediaItem]:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                """
                SELECT media_id, kind, caption, transcript, created_at
                FROM shared_media
                WHERE conversation_id = ?
                ORDER BY created_at ASC
                """,
                (conversation_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            MediaItem(
                id=str(row["media_id"]),
                kind=str(row["kind"]),
                caption=str(row["caption"]),
                transcript=str(row["transcript"]),
                created_at=_dt(row["created_at"]),
            )
            for row in rows
        ]

    async def add_media_interaction(self, conversation_id: str, interaction: MediaInteraction) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO media_interactions (conversation_id, media_id, kind, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (conversation_id, interaction.media_id, interaction.kind, _iso(interaction.timestamp)),
            )
            await db.commit()

    async def list_media_interactions(self, conversation_id: str, limit: int | None = None) -> list[MediaInteraction]:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                f"""
                SELECT media_id, kind, created_at
                FROM media_interactions
                WHERE conversation_id = ?
                ORDER BY created_at DESC, interaction_id DESC
                {_limit_clause(limit)}
                """,
                (conversation_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            MediaInteraction(media_id=str(row["media_id"]), kind=str(row["kind"]), timestamp=_dt(row["created_at"]))
            for row in reversed(rows)
        ]
