from .handler import AnalyzerProfile, ConversationHandler, NextAction, TurnAnalysis
from .manager import ConversationManager, ConversationSnapshot
from .registry import ConversationRegistry
from .session import ConversationSession, ReplyGenerator, TurnOutcome

__all__ = [
    "AnalyzerProfile",
    "ConversationHandler",
    "ConversationManager",
    "ConversationRegistry",
    "ConversationSession",
    "ConversationSnapshot",
    "NextAction",
    "ReplyGenerator",
    "TurnAnalysis",
    "TurnOutcome",
]
