from __future__ import annotations

import logging
from dataclasses import dataclass

from ..common import Clock, utcnow
from ..context.manager import ContextConfig, ContextManager, TopicKeywords
from ..memory.manager import MemoryConfig, MemoryLexicon, MemoryManager
from ..models import ConsistencyCheck, Memory, Turn
from ..personality.manager import PersonalityConfig, PersonalityManager
from ..personality.traits import PersonalityRules

logger = logging.getLogger("companion_core.conversation")

MEMORY_CONTEXT = "conversation"
ASSISTANT_MEMORY_MARKERS = ("remember", "important", "never forget", "always", "love", "hate")
MEMORY_THEMES = ("family", "work", "hobbies", "feelings", "preferences", "plans")


@dataclass(slots=True)
class ConversationSnapshot:
    context_summary: str
    personality_snapshot: str
    memory_snapshot: str


class ConversationManager:
    """Context window, companion personality and long-term memory of one conversation."""

    def __init__(
        self,
        conversation_id: str,
        *,
        context_config: ContextConfig | None = None,
        personality_config: PersonalityConfig | None = None,
        memory_config: MemoryConfig | None = None,
        context_topics: tuple[TopicKeywords, ...] | None = None,
        personality_rules: PersonalityRules | None = None,
        memory_lexicon: MemoryLexicon | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.conversation_id = conversation_id
        self.clock = clock
        self.context = ContextManager(context_config, topics=context_topics, clock=clock)
        self.personality = PersonalityManager(personality_config, rules=personality_rules, clock=clock)
        self.memory = MemoryManager(conversation_id, memory_config, lexicon=memory_lexicon, clock=clock)

    def process_message(self, turn: Turn) -> Memory | None:
        """Feed one turn through context, mood and memory; returns the memory it produced, if any."""
        turn.validate()
        self.context.add_message(turn)
        if turn.role == "user":
            self.personality.update_emotional_state(turn.content)
        else:
            self.personality.add_response(turn.content)

        if not self.should_create_memory(turn):
            return None
        return self.memory.add_memory(turn.content, MEMORY_CONTEXT, self.extract_attributes(turn.content))

    @staticmethod
    def should_create_memory(turn: Turn) -> bool:
        if turn.role == "user":
            return True
        lowered = turn.content.lower()
        return any(marker in lowered for marker in ASSISTANT_MEMORY_MARKERS)

    @staticmethod
    def extract_attributes(content: str) -> list[str]:
        lowered = (content or "").lower()
        return [theme for theme in MEMORY_THEMES if theme in lowered]

    def validate_response(self, candidate: str) -> ConsistencyCheck:
        personality = self.personality.check_response_consistency(candidate)
        if not personality.is_consistent:
            return personality

        continuity = self.context.analyze_context_continuity()
        if not continuity.is_coherent:
            issues = continuity.gaps or continuity.topic_shifts
            return ConsistencyCheck(False, f"Context coherence issues: {', '.join(issues)}", "context")
        return ConsistencyCheck(True)

    def add_response(self, response: str) -> None:
        self.personality.add_response(response)

    def get_conversation_state(self) -> ConversationSnapshot:
        return ConversationSnapshot(
            context_summary=self.context.get_context_summary(),
            personality_snapshot=self.personality.get_personality_snapshot(),
            memory_snapshot=self.memory.get_memory_snapshot(),
        )

    def get_relevant_memories(self, query: str, limit: int | None = None) -> list[Memory]:
        return self.memory.get_relevant_memories(query, limit)

    def run_maintenance(self) -> None:
        """Personality decay and context pruning; failures are logged and never block a turn."""
        try:
            self.personality.decay_attributes()
        except Exception:
            logger.warning("Personality decay failed for conversation %s", self.conversation_id, exc_info=True)
        try:
            self.context.prune_old_context()
        except Exception:
            logger.warning("Context pruning failed for conversation %s", self.conversation_id, exc_info=True)
