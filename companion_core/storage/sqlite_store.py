from __future__ import annotations

from .sqlite.batch import BatchMixin
from .sqlite.learning import LearningMixin
from .sqlite.media import MediaMixin
from .sqlite.memories import MemoriesMixin
from .sqlite.moderation import ModerationMixin
from .sqlite.personality import PersonalityMixin
from .sqlite.schema import SchemaMixin
from .sqlite.topics import TopicsMixin
from .sqlite.turns import TurnsMixin


class SqliteConversationStore(
    SchemaMixin,
    TurnsMixin,
    TopicsMixin,
    MemoriesMixin,
    PersonalityMixin,
    LearningMixin,
    ModerationMixin,
    MediaMixin,
    BatchMixin,
):
    """Persistent conversation state: turns, topics, memories, personality, learning, moderation and media."""

    backend_name = "sqlite"
