from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Iterable

import aiosqlite

from ...common import parse_dt, utcnow

BUSY_TIMEOUT_MS = 5000


@asynccontextmanager
async def _sqlite_connection(db_path: str | Path) -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA foreign_keys=ON")
        await db.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        db.row_factory = aiosqlite.Row
        yield db


def _iso(value: datetime) -> str:
    """Fixed-width UTC text so stored timestamps sort lexicographically."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _dt(value: object) -> datetime:
    return parse_dt(value) or utcnow()


def _dt_or_none(value: object) -> datetime | None:
    return parse_dt(value)


def _dump_list(values: Iterable[Any]) -> str:
    return json.dumps(sorted(values) if isinstance(values, set) else list(values), ensure_ascii=False)


def _load_list(raw: object) -> list[Any]:
    if not raw:
        return []
    try:
        value = json.loads(str(raw))
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []


def _dump_dict(value: dict[str, Any]) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _load_dict(raw: object) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(str(raw))
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def _limit_clause(limit: int | None) -> str:
    return "" if limit is None else f"LIMIT {max(1, int(limit))}"
