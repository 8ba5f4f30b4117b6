from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Sequence

from ..common import Clock, utcnow
from ..context.manager import ContextConfig, TopicKeywords, load_context_topics
from ..emotion.analyzer import EmotionAnalyzer, EmotionLexicon, load_emotion_lexicon
from ..learning.interests import InterestLearner, InterestLexicon, InterestSummary, load_interest_lexicon
from ..memory.manager import MemoryConfig, MemoryLexicon, load_memory_lexicon
from ..models import (
    ConsistencyCheck,
    EmotionalState,
    EmotionReading,
    Interest,
    MediaInteraction,
    MediaItem,
    Memory,
    ModerationVerdict,
    Preference,
    Recommendation,
    Topic,
    TopicTransition,
    Turn,
)
from ..moderation.moderator import ContentModerator, ModerationConfig
from ..personality.manager import PersonalityConfig
from ..personality.traits import PersonalityRules, load_personality_rules
from ..recommendation.analyzer import ContentAnalyzer, MediaCategories, load_media_categories
from ..recommendation.recommender import MediaRecommender
from ..topics.manager import TopicManager, TopicRules, TopicSummary, load_topic_rules
from .manager import ConversationManager, ConversationSnapshot
from .strategies import ConversationState, StrategyLexicon, load_strategy_lexicon, pick_template, select_strategy

logger = logging.getLogger("companion_core.conversation")

DISTRESS_VALENCE = -0.3
DISTRESS_STABILITY = 0.5
DISCONNECTED_RELEVANCE = 0.3
FOCUSED_RELEVANCE = 0.8
FOCUSED_MIN_TURNS = 5


@dataclass(frozen=True)
class AnalyzerProfile:
    """Configuration and immutable lookup tables shared by every conversation."""

    context: ContextConfig
    personality: PersonalityConfig
    memory: MemoryConfig
    moderation: ModerationConfig
    recommendation_limit: int
    emotion_lexicon: EmotionLexicon
    context_topics: tuple[TopicKeywords, ...]
    personality_rules: PersonalityRules
    memory_lexicon: MemoryLexicon
    topic_rules: TopicRules
    interest_lexicon: InterestLexicon
    media_categories: MediaCategories
    strategies: StrategyLexicon

    @classmethod
    def from_settings(cls, settings: object | None = None) -> "AnalyzerProfile":
        source = settings if settings is not None else object()
        return cls(
            context=ContextConfig.from_settings(source),
            personality=PersonalityConfig.from_settings(source),
            memory=MemoryConfig.from_settings(source),
            moderation=ModerationConfig.from_settings(source),
            recommendation_limit=int(getattr(source, "recommendation_limit", 5)),
            emotion_lexicon=load_emotion_lexicon(),
            context_topics=load_context_topics(),
            personality_rules=load_personality_rules(),
            memory_lexicon=load_memory_lexicon(),
            topic_rules=load_topic_rules(),
            interest_lexicon=load_interest_lexicon(),
            media_categories=load_media_categories(),
            strategies=load_strategy_lexicon(),
        )

    def shared_objects(self) -> tuple[Any, ...]:
        """Objects a working copy of a handler may share with the original instead of copying."""
        return (
            self,
            self.emotion_lexicon,
            self.context_topics,
            self.personality_rules,
            self.memory_lexicon,
            self.topic_rules,
            self.interest_lexicon,
            self.media_categories,
            self.strategies,
        )


@dataclass(slots=True)
class TurnAnalysis:
    strategy: str
    candidate_template: str
    emotion: EmotionReading
    context_relevance: float
    topics: list[str] = field(default_factory=list)
    dominant_topic: str | None = None
    memory: Memory | None = None
    interests: list[str] = field(default_factory=list)
    preferences: list[Preference] = field(default_factory=list)


@dataclass(slots=True)
class NextAction:
    action: str
    explanation: str


class ConversationHandler:
    """Per-conversation analyzer bundle plus the response-strategy state machine."""

    def __init__(
        self,
        conversation_id: str,
        profile: AnalyzerProfile | None = None,
        *,
        rng: random.Random | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.conversation_id = conversation_id
        self.profile = profile or AnalyzerProfile.from_settings()
        self.clock = clock
        self.rng = rng or random.Random()

        profile = self.profile
        self.manager = ConversationManager(
            conversation_id,
            context_config=profile.context,
            personality_config=profile.personality,
            memory_config=profile.memory,
            context_topics=profile.context_topics,
            personality_rules=profile.personality_rules,
            memory_lexicon=profile.memory_lexicon,
            clock=clock,
        )
        self.emotions = EmotionAnalyzer(profile.emotion_lexicon, rng=self.rng)
        self.topics = TopicManager(profile.topic_rules, clock=clock)
        self.interests = InterestLearner(profile.interest_lexicon, clock=clock)
        self.moderator = ContentModerator(profile.moderation, clock=clock)
        self.recommender = MediaRecommender(ContentAnalyzer(profile.media_categories, clock=clock), clock=clock)

        self.state = ConversationState()
        self.topic_history: list[str] = []

    # -- restore -----------------------------------------------------------

    def restore(
        self,
        *,
        turns: Sequence[Turn] = (),
        turn_count: int | None = None,
        memories: Iterable[Memory] = (),
        attributes: dict[str, float] | None = None,
        emotional_state: EmotionalState | None = None,
        last_decay: datetime | None = None,
        topics: Iterable[Topic] = (),
        transitions: Iterable[TopicTransition] = (),
        interests: Iterable[Interest] = (),
        preferences: Iterable[Preference] = (),
        media_interactions: Iterable[MediaInteraction] = (),
    ) -> None:
        """Rebuild in-memory state from persisted rows; nothing here is written back."""
        visible = sorted((turn for turn in turns if not turn.deleted), key=lambda turn: turn.timestamp)
        self.manager.context.restore(visible)
        self.manager.memory.restore(memories)
        self.manager.personality.restore(attributes, emotional_state=emotional_state, last_decay=last_decay)
        for turn in visible:
            if turn.role == "assistant":
                self.manager.personality.add_response(turn.content)
        self.topics.restore(topics, transitions)
        self.interests.restore(interests, preferences)
        self.recommender.restore(media_interactions)

        self.emotions.clear()
        self.state = ConversationState(turn_count=turn_count if turn_count is not None else len(visible))
        self.topic_history = []
        for turn in visible:
            if turn.role != "user":
                continue
            self.state.emotional_state = self.emotions.analyze(turn.content)
            self._remember_topic(self.extract_topics(turn.content))

    # -- per-turn processing -------------------------------------------------

    def process_message(self, turn: Turn) -> TurnAnalysis:
        """Run one user turn through every analyzer and pick a response strategy."""
        turn.validate()
        self.manager.run_maintenance()

        earlier = self.manager.context.get_active_context()
        current_topics = self.extract_topics(turn.content)
        self.state.context_relevance = self.calculate_context_relevance(current_topics, earlier)

        memory = self.manager.process_message(turn)
        emotion = self.emotions.analyze(turn.content)
        self.state.emotional_state = emotion
        dominant = self.topics.update_topic(turn.content, emotion.valence)
        interests, preferences = self.interests.process_message(turn.content, emotion.valence)
        self._remember_topic(current_topics)
        if not current_topics and dominant:
            self.state.current_topic = dominant

        strategy = select_strategy(self.state)
        previous_topic = self.topic_history[-2] if len(self.topic_history) > 1 else self.state.current_topic
        template = pick_template(
            self.profile.strategies,
            strategy,
            self.rng,
            emotion=emotion.primary,
            topic=self.state.current_topic,
            previous_topic=previous_topic,
        )
        self.state.last_response_type = strategy
        self.state.turn_count += 1
        return TurnAnalysis(
            strategy=strategy,
            candidate_template=template,
            emotion=emotion,
            context_relevance=self.state.context_relevance,
            topics=current_topics,
            dominant_topic=dominant,
            memory=memory,
            interests=interests,
            preferences=preferences,
        )

    def record_reply(self, turn: Turn) -> Memory | None:
        """Add an accepted assistant reply to the window and the recent-response log."""
        return self.manager.process_message(turn)

    def extract_topics(self, text: str) -> list[str]:
        lowered = (text or "").lower()
        return [
            name
            for name, keywords in self.profile.strategies.topic_keywords.items()
            if any(keyword in lowered for keyword in keywords)
        ]

    def calculate_context_relevance(self, current_topics: list[str], earlier: Sequence[Turn]) -> float:
        seen: list[str] = []
        for turn in earlier:
            seen.extend(self.extract_topics(turn.content))
        if not seen:
            return 1.0
        overlap = sum(1 for topic in current_topics if topic in seen)
        return overlap / max(len(current_topics), 1)

    def _remember_topic(self, current_topics: list[str]) -> None:
        if not current_topics:
            return
        self.state.current_topic = current_topics[0]
        if not self.topic_history or self.topic_history[-1] != self.state.current_topic:
            self.topic_history.append(self.state.current_topic)

    def fallback_reply(self, analysis: TurnAnalysis) -> str:
        return analysis.candidate_template or self.emotions.suggest_response(analysis.emotion)

    # -- reads and side operations ---------------------------------------------

    def validate_response(self, candidate: str) -> ConsistencyCheck:
        return self.manager.validate_response(candidate)

    def get_conversation_state(self) -> ConversationSnapshot:
        return self.manager.get_conversation_state()

    def get_relevant_memories(self, query: str, limit: int | None = None) -> list[Memory]:
        return self.manager.get_relevant_memories(query, limit)

    def get_interest_summary(self) -> InterestSummary:
        return self.interests.get_interest_summary()

    def get_topic_summary(self) -> TopicSummary:
        return self.topics.get_topic_summary()

    def moderate_content(self, text: str) -> ModerationVerdict:
        return self.moderator.moderate_content(text)

    def get_recommendations(
        self,
        media: Sequence[MediaItem],
        recent_turns: Sequence[Turn] | None = None,
        limit: int | None = None,
    ) -> list[Recommendation]:
        turns = self.manager.context.get_active_context() if recent_turns is None else recent_turns
        size = self.profile.recommendation_limit if limit is None else limit
        return self.recommender.get_recommendations(media, turns, size)

    def suggest_next_action(self) -> NextAction:
        trend = self.emotions.get_emotional_trend()
        if trend.average_valence < DISTRESS_VALENCE and trend.stability < DISTRESS_STABILITY:
            return NextAction(
                "emotional_support",
                "User shows signs of emotional distress. Provide empathetic support.",
            )
        if self.state.context_relevance < DISCONNECTED_RELEVANCE and len(self.topic_history) > 1:
            return NextAction(
                "topic_connection",
                "Conversation seems disconnected. Try to bridge current topic with previous ones.",
            )
        if self.state.turn_count > FOCUSED_MIN_TURNS and self.state.context_relevance > FOCUSED_RELEVANCE:
            return NextAction(
                "topic_expansion",
                "Conversation is focused but might benefit from exploring related topics.",
            )
        return NextAction(
            "continue_engagement",
            "Maintain current conversation flow and encourage user expression.",
        )
