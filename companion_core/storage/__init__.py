from .base import CommitBatch, ConversationStore, ModerationLogEntry, ModerationRules, PersonalityRecord
from .factory import build_store
from .memory_backend import InMemoryConversationStore
from .sqlite_store import SqliteConversationStore

__all__ = [
    "CommitBatch",
    "ConversationStore",
    "InMemoryConversationStore",
    "ModerationLogEntry",
    "ModerationRules",
    "PersonalityRecord",
    "SqliteConversationStore",
    "build_store",
]
