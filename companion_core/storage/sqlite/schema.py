from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from .utils import _sqlite_connection

logger = logging.getLogger("companion_core.storage")


class SchemaMixin:
    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    async def _has_user_tables(self, db: aiosqlite.Connection) -> bool:
        async with db.execute(
            """
            SELECT 1
            FROM sqlite_master
            WHERE type = 'table'
              AND name NOT LIKE 'sqlite_%'
            LIMIT 1
            """
        ) as cursor:
            row = await cursor.fetchone()
        return bool(row)

    async def init(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            async with db.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
            version = int(row[0]) if row else 0
            has_tables = await self._has_user_tables(db)

            if version > self.SCHEMA_VERSION:
                raise RuntimeError(
                    "SQLite schema version mismatch detected (database is newer than this build). "
                    f"Found user_version={version}, supported={self.SCHEMA_VERSION}."
                )

            if not has_tables:
                logger.info("Creating SQLite schema v%s at %s", self.SCHEMA_VERSION, self.db_path)
            await self._create_schema(db)
            if version != self.SCHEMA_VERSION:
                await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
            await db.commit()

    async def close(self) -> None:
        return None

    async def _create_schema(self, db: aiosqlite.Connection) -> None:
        await db.executescript(
            """
            CREATE TABLE IF NOT EXISTS turns (
                id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                parent_id TEXT,
                deleted INTEGER NOT NULL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_turns_conversation_time
                ON turns(conversation_id, created_at);

            CREATE TABLE IF NOT EXISTS topics (
                conversation_id TEXT NOT NULL,
                name TEXT NOT NULL,
                last_discussed TEXT NOT NULL,
                frequency INTEGER NOT NULL DEFAULT 0,
                duration REAL NOT NULL DEFAULT 0,
                sentiment REAL NOT NULL DEFAULT 0,
                related_topics TEXT NOT NULL DEFAULT '[]',
                context_history TEXT NOT NULL DEFAULT '[]',
                PRIMARY KEY (conversation_id, name)
            );

            CREATE TABLE IF NOT EXISTS topic_transitions (
                transition_id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL,
                from_topic TEXT NOT NULL,
                to_topic TEXT NOT NULL,
                created_at TEXT NOT NULL,
                kind TEXT NOT NULL CHECK (kind IN ('natural', 'forced', 'suggested')),
                context TEXT NOT NULL DEFAULT ''
            );

            CREATE INDEX IF NOT EXISTS idx_topic_transitions_conversation
                ON topic_transitions(conversation_id, created_at);

            CREATE TABLE IF NOT EXISTS memories (
                id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL,
                content TEXT NOT NULL,
                importance REAL NOT NULL,
                context TEXT NOT NULL DEFAULT '',
                sentiment TEXT NOT NULL DEFAULT 'neutral',
                attributes TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL,
                last_accessed TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_memories_conversation
                ON memories(conversation_id, created_at);

            CREATE TABLE IF NOT EXISTS personality_attributes (
                conversation_id TEXT NOT NULL,
                trait_key TEXT NOT NULL,
                value REAL NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (conversation_id, trait_key)
            );

            CREATE TABLE IF NOT EXISTS personality_state (
                conversation_id TEXT PRIMARY KEY,
                mood REAL NOT NULL,
                energy REAL NOT NULL,
                dominant_emotion TEXT NOT NULL,
                last_update TEXT NOT NULL,
                last_decay TEXT
            );

            CREATE TABLE IF NOT EXISTS interests (
                conversation_id TEXT NOT NULL,
                topic TEXT NOT NULL,
                sentiment REAL NOT NULL,
                confidence REAL NOT NULL,
                frequency INTEGER NOT NULL,
                last_updated TEXT NOT NULL,
                related_topics TEXT NOT NULL DEFAULT '[]',
                PRIMARY KEY (conversation_id, topic)
            );

            CREATE TABLE IF NOT EXISTS preferences (
                conversation_id TEXT NOT NULL,
                category TEXT NOT NULL,
                value TEXT NOT NULL,
                strength REAL NOT NULL,
                last_updated TEXT NOT NULL,
                context TEXT NOT NULL DEFAULT '[]',
                PRIMARY KEY (conversation_id, category, value)
            );

            CREATE TABLE IF NOT EXISTS moderation_log (
                log_id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL,
                content TEXT NOT NULL,
                is_allowed INTEGER NOT NULL,
                moderation_score REAL NOT NULL,
                filtered_content TEXT NOT NULL,
                warnings TEXT NOT NULL DEFAULT '[]',
                issues TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_moderation_log_conversation
                ON moderation_log(conversation_id, created_at);

            CREATE TABLE IF NOT EXISTS moderation_rules (
                kind TEXT NOT NULL CHECK (kind IN ('banned', 'warning', 'sensitive')),
                word TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (kind, word)
            );

            CREATE TABLE IF NOT EXISTS shared_media (
                conversation_id TEXT NOT NULL,
                media_id TEXT NOT NULL,
                kind TEXT NOT NULL CHECK (kind IN ('image', 'voice')),
                caption TEXT NOT NULL DEFAULT '',
                transcript TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                PRIMARY KEY (conversation_id, media_id)
            );

            CREATE TABLE IF NOT EXISTS media_interactions (
                interaction_id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL,
                media_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_media_interactions_conversation
                ON media_interactions(conversation_id, created_at);
            """
        )
