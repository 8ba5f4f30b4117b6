from .batch import BatchMixin
from .learning import LearningMixin
from .media import MediaMixin
from .memories import MemoriesMixin
from .moderation import ModerationMixin
from .personality import PersonalityMixin
from .schema import SchemaMixin
from .topics import TopicsMixin
from .turns import TurnsMixin

__all__ = [
    "BatchMixin",
    "SchemaMixin",
    "TurnsMixin",
    "TopicsMixin",
    "MemoriesMixin",
    "PersonalityMixin",
    "LearningMixin",
    "ModerationMixin",
    "MediaMixin",
]
