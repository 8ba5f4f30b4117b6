from __future__ import annotations

import aiosqlite

from ...common import utcnow
from ...errors import ValidationError
from ...models import ModerationIssues, ModerationVerdict
from ..base import RULE_KINDS, ModerationLogEntry, ModerationRules
from .utils import _dt, _dump_dict, _dump_list, _iso, _limit_clause, _load_dict, _load_list, _sqlite_connection


def _issues_to_dict(issues: ModerationIssues) -> dict[str, object]:
    return {
        "profanity": issues.profanity,
        "toxicity": issues.toxicity,
        "sensitive_topics": issues.sensitive_topics,
        "length": issues.length,
        "banned_words": list(issues.banned_words),
    }


def _issues_from_dict(raw: dict[str, object]) -> ModerationIssues:
    return ModerationIssues(
        profanity=bool(raw.get("profanity")),
        toxicity=bool(raw.get("toxicity")),
        sensitive_topics=bool(raw.get("sensitive_topics")),
        length=bool(raw.get("length")),
        banned_words=[str(item) for item in raw.get("banned_words") or []],
    )


class ModerationMixin:
    async def add_moderation_log(self, entry: ModerationLogEntry) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await self._write_moderation_log(db, entry)
            await db.commit()

    async def _write_moderation_log(self, db: aiosqlite.Connection, entry: ModerationLogEntry) -> None:
        verdict = entry.verdict
        await db.execute(
            """
            INSERT INTO moderation_log (
                conversation_id, content, is_allowed, moderation_score,
                filtered_content, warnings, issues, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.conversation_id,
                entry.content,
                1 if verdict.is_allowed else 0,
                float(verdict.moderation_score),
                verdict.filtered_content,
                _dump_list(verdict.warnings),
                _dump_dict(_issues_to_dict(verdict.detected_issues)),
                _iso(entry.created_at),
            ),
        )

    async def list_moderation_log(self, conversation_id: str, limit: int | None = None) -> list[ModerationLogEntry]:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                f"""
                SELECT conversation_id, content, is_allowed, moderation_score,
                       filtered_content, warnings, issues, created_at
                FROM moderation_log
                WHERE conversation_id = ?
                ORDER BY created_at DESC, log_id DESC
                {_limit_clause(limit)}
                """,
                (conversation_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            ModerationLogEntry(
                conversation_id=str(row["conversation_id"]),
                content=str(row["content"]),
                verdict=ModerationVerdict(
                    is_allowed=bool(row["is_allowed"]),
                    warnings=[str(item) for item in _load_list(row["warnings"])],
                    filtered_content=str(row["filtered_content"]),
                    moderation_score=float(row["moderation_score"]),
                    detected_issues=_issues_from_dict(_load_dict(row["issues"])),
                ),
                created_at=_dt(row["created_at"]),
            )
            for row in reversed(rows)
        ]

    async def add_moderation_rule(self, kind: str, word: str) -> None:
        if kind not in RULE_KINDS:
            raise ValidationError(f"unknown moderation rule kind: {kind!r}")
        value = str(word or "").strip().lower()
        if not value:
            return
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO moderation_rules (kind, word, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(kind, word) DO NOTHING
                """,
                (kind, value, _iso(utcnow())),
            )
            await db.commit()

    async def get_moderation_rules(self) -> ModerationRules:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute("SELECT kind, word FROM moderation_rules ORDER BY created_at ASC, word ASC") as cursor:
                rows = await cursor.fetchall()
        rules = ModerationRules()
        for row in rows:
            getattr(rules, str(row["kind"])).append(str(row["word"]))
        return rules
