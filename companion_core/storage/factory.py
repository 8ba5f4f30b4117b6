from __future__ import annotations

from pathlib import Path
from typing import Any

from .base import ConversationStore
from .memory_backend import InMemoryConversationStore
from .sqlite_store import SqliteConversationStore

BACKENDS = ("memory", "sqlite")


def build_store(settings: Any) -> ConversationStore:
    backend = str(getattr(settings, "store_backend", "memory") or "memory").strip().lower()
    if backend not in BACKENDS:
        raise ValueError("STORE_BACKEND must be 'memory' or 'sqlite'")
    if backend == "sqlite":
        return SqliteConversationStore(Path(settings.sqlite_path))
    return InMemoryConversationStore()
