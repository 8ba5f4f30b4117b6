from .config import Settings
from .conversation import AnalyzerProfile, ConversationRegistry, ConversationSession, TurnOutcome
from .errors import CollaboratorError, CompanionError, ValidationError

__all__ = [
    "AnalyzerProfile",
    "CollaboratorError",
    "CompanionError",
    "ConversationRegistry",
    "ConversationSession",
    "Settings",
    "TurnOutcome",
    "ValidationError",
]
