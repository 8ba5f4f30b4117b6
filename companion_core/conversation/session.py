from __future__ import annotations

import asyncio
import copy
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Iterable, Protocol, TypeVar

from ..common import Clock, utcnow
from ..errors import CollaboratorError, ValidationError
from ..models import (
    ConsistencyCheck,
    MediaInteraction,
    MediaItem,
    Memory,
    ModerationVerdict,
    Recommendation,
    Turn,
)
from ..moderation.moderator import ModerationStats
from ..learning.interests import InterestSummary
from ..prompts.companion import GenerationPrompt, build_reply_prompt
from ..recommendation.recommender import MAX_HISTORY
from ..storage.base import CommitBatch, ConversationStore, ModerationLogEntry, PersonalityRecord
from ..topics.manager import TopicSummary
from .handler import AnalyzerProfile, ConversationHandler, NextAction, TurnAnalysis
from .manager import ConversationSnapshot

logger = logging.getLogger("companion_core.conversation")

T = TypeVar("T")
PROMPT_TRAIT_COUNT = 5


class ReplyGenerator(Protocol):
    async def generate(self, prompt: GenerationPrompt) -> str: ...


@dataclass(slots=True)
class TurnOutcome:
    turn: Turn
    verdict: ModerationVerdict
    reply: Turn | None = None
    analysis: TurnAnalysis | None = None
    recommendations: list[Recommendation] = field(default_factory=list)
    attempts: int = 0
    consistency: ConsistencyCheck = field(default_factory=lambda: ConsistencyCheck(True))

    @property
    def blocked(self) -> bool:
        return not self.verdict.is_allowed


class ConversationSession:
    """Single-writer owner of one conversation's analyzer bundle.

    Every mutation runs under the session lock against a deep copy of the
    bundle; the copy replaces the live bundle only after the store accepted
    the step's single commit batch, so a failed or cancelled step leaves both
    the session and the store unchanged.
    """

    def __init__(
        self,
        conversation_id: str,
        store: ConversationStore,
        *,
        profile: AnalyzerProfile | None = None,
        generator: ReplyGenerator | None = None,
        generation_timeout: float = 30.0,
        max_attempts: int = 2,
        rng: random.Random | None = None,
        clock: Clock = utcnow,
    ) -> None:
        if not str(conversation_id or "").strip():
            raise ValidationError("conversation_id cannot be empty")
        self.conversation_id = conversation_id
        self.store = store
        self.profile = profile or AnalyzerProfile.from_settings()
        self.generator = generator
        self.generation_timeout = float(generation_timeout)
        self.max_attempts = max(1, int(max_attempts))
        self.rng = rng or random.Random()
        self.clock = clock
        self.handler: ConversationHandler | None = None
        self._lock = asyncio.Lock()

    # -- plumbing ----------------------------------------------------------

    async def _store_call(self, what: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except Exception as exc:
            logger.error("Store call %s failed for conversation %s: %s", what, self.conversation_id, exc)
            raise CollaboratorError(f"store {what} failed", cause=exc) from exc

    async def _store_gather(self, what: str, awaitables: Iterable[Awaitable[Any]]) -> list[Any]:
        pending = list(awaitables)
        if not pending:
            return []
        return await self._store_call(what, asyncio.gather(*pending))

    async def load(self) -> None:
        async with self._lock:
            await self._ensure_loaded()

    async def _ensure_loaded(self) -> ConversationHandler:
        if self.handler is not None:
            return self.handler

        cid = self.conversation_id
        store = self.store
        (
            turns,
            user_turns,
            memories,
            personality,
            topics,
            transitions,
            interests,
            preferences,
            interactions,
            rules,
        ) = await self._store_gather(
            "load",
            (
                store.list_turns(cid, limit=self.profile.context.max_context_window),
                store.count_turns(cid, role="user"),
                store.list_memories(cid),
                store.get_personality(cid),
                store.list_topics(cid),
                store.list_topic_transitions(cid),
                store.list_interests(cid),
                store.list_preferences(cid),
                store.list_media_interactions(cid, limit=MAX_HISTORY),
                store.get_moderation_rules(),
            ),
        )

        handler = ConversationHandler(cid, self.profile, rng=self.rng, clock=self.clock)
        handler.restore(
            turns=turns,
            turn_count=user_turns,
            memories=memories,
            attributes=personality.attributes if personality else None,
            emotional_state=personality.emotional_state if personality else None,
            last_decay=personality.last_decay if personality else None,
            topics=topics,
            transitions=transitions,
            interests=interests,
            preferences=preferences,
            media_interactions=interactions,
        )
        handler.moderator.extend_rules(banned=rules.banned, warning=rules.warning, sensitive=rules.sensitive)
        logger.debug(
            "Loaded conversation %s (%s turns in window, %s memories)", cid, len(turns), len(memories)
        )
        self.handler = handler
        return handler

    def _working_copy(self, handler: ConversationHandler) -> ConversationHandler:
        memo: dict[int, Any] = {id(item): item for item in self.profile.shared_objects()}
        memo[id(self.clock)] = self.clock
        return copy.deepcopy(handler, memo)

    # -- message pipeline ----------------------------------------------------

    async def handle_message(self, content: str, *, parent_id: str | None = None) -> TurnOutcome:
        """Moderate, analyze, generate, validate and persist one user message."""
        async with self._lock:
            handler = await self._ensure_loaded()
            turn = Turn.create(
                self.conversation_id,
                content,
                "user",
                timestamp=self.clock(),
                parent_id=parent_id,
            )
            working = self._working_copy(handler)

            verdict = working.moderate_content(turn.content)
            log_entry = ModerationLogEntry(self.conversation_id, turn.content, verdict, turn.timestamp)
            if not verdict.is_allowed:
                await self._store_call("moderation log", self.store.add_moderation_log(log_entry))
                self.handler = working
                return TurnOutcome(turn=turn, verdict=verdict)

            analysis = working.process_message(turn)
            touched: list[Memory] = []
            reply_text, attempts, consistency = await self._generate_reply(working, turn, analysis, touched)
            reply = Turn.create(
                self.conversation_id,
                reply_text,
                "assistant",
                timestamp=self.clock(),
                parent_id=turn.id,
            )
            reply_memory = working.record_reply(reply)

            media = await self._store_call("list media", self.store.list_shared_media(self.conversation_id))
            recommendations = working.get_recommendations(media) if media else []

            memories = [item for item in (analysis.memory, reply_memory) if item is not None] + touched
            await self._commit(working, turns=(turn, reply), memories=memories, log_entry=log_entry)
            self.handler = working
            return TurnOutcome(
                turn=turn,
                verdict=verdict,
                reply=reply,
                analysis=analysis,
                recommendations=recommendations,
                attempts=attempts,
                consistency=consistency,
            )

    async def _generate(self, prompt: GenerationPrompt) -> str:
        assert self.generator is not None
        try:
            return await asyncio.wait_for(self.generator.generate(prompt), timeout=self.generation_timeout)
        except asyncio.TimeoutError as exc:
            logger.error(
                "Reply generation timed out after %.1fs for conversation %s",
                self.generation_timeout,
                self.conversation_id,
            )
            raise CollaboratorError("reply generation timed out", cause=exc) from exc
        except Exception as exc:
            logger.error("Reply generation failed for conversation %s: %s", self.conversation_id, exc)
            raise CollaboratorError("reply generation failed", cause=exc) from exc

    async def _generate_reply(
        self,
        working: ConversationHandler,
        turn: Turn,
        analysis: TurnAnalysis,
        touched: list[Memory],
    ) -> tuple[str, int, ConsistencyCheck]:
        if self.generator is None:
            return working.fallback_reply(analysis), 0, ConsistencyCheck(True)

        manager = working.manager
        continuity = manager.context.analyze_context_continuity()
        memories = working.get_relevant_memories(turn.content)
        touched.extend(memories)

        retry_reason: str | None = None
        candidate = ""
        check = ConsistencyCheck(True)
        attempt = 0
        for attempt in range(1, self.max_attempts + 1):
            prompt = build_reply_prompt(
                user_turn=turn,
                recent_turns=manager.context.get_active_context(),
                traits=manager.personality.dominant_traits(PROMPT_TRAIT_COUNT),
                emotional_state=manager.personality.get_emotional_state(),
                memories=memories,
                strategy=analysis.strategy,
                candidate_template=analysis.candidate_template,
                user_emotion=(analysis.emotion.primary, analysis.emotion.intensity),
                continuity_notes=continuity.gaps + continuity.topic_shifts,
                retry_reason=retry_reason,
                now=turn.timestamp,
            )
            candidate = (await self._generate(prompt)).strip() or working.fallback_reply(analysis)
            check = working.validate_response(candidate)
            if check.is_consistent:
                return candidate, attempt, check
            if check.kind == "context":
                # The window is the same for every candidate; regenerating cannot help.
                logger.info("Keeping reply for conversation %s: %s", self.conversation_id, check.reason)
                return candidate, attempt, check
            retry_reason = check.reason
            if attempt < self.max_attempts:
                logger.warning("Regenerating reply for conversation %s: %s", self.conversation_id, check.reason)

        logger.warning(
            "Accepting reply for conversation %s after %s attempts despite: %s",
            self.conversation_id,
            attempt,
            check.reason,
        )
        return candidate, attempt, check

    async def _commit(
        self,
        working: ConversationHandler,
        *,
        turns: Iterable[Turn] = (),
        memories: Iterable[Memory] = (),
        log_entry: ModerationLogEntry | None = None,
    ) -> None:
        memory_manager = working.manager.memory
        evicted = memory_manager.take_evicted()
        evicted_ids = {item.id for item in evicted}
        live_ids = {item.id for item in memory_manager.memories}
        to_save: dict[str, Memory] = {}
        for item in memories:
            if item.id in live_ids and item.id not in evicted_ids:
                to_save[item.id] = item

        topics, transitions = working.topics.take_changes()
        interests, preferences = working.interests.take_changes()
        personality = working.manager.personality
        batch = CommitBatch(
            self.conversation_id,
            turns=list(turns),
            transitions=transitions,
            personality=PersonalityRecord(
                attributes=personality.get_all_attributes(),
                emotional_state=personality.get_emotional_state(),
                last_decay=personality.last_decay,
            ),
            memories=list(to_save.values()),
            evicted_memory_ids=[item.id for item in evicted],
            topics=topics,
            interests=interests,
            preferences=preferences,
            moderation=log_entry,
        )
        await self._store_call("commit", self.store.commit_batch(batch))

    # -- other mutations -----------------------------------------------------

    async def delete_turn(self, turn_id: str) -> bool:
        async with self._lock:
            handler = await self._ensure_loaded()
            working = self._working_copy(handler)
            deleted = await self._store_call(
                "soft delete turn", self.store.soft_delete_turn(self.conversation_id, turn_id)
            )
            working.manager.context.remove_message(turn_id)
            self.handler = working
            return bool(deleted)

    async def share_media(self, item: MediaItem) -> None:
        async with self._lock:
            handler = await self._ensure_loaded()
            working = self._working_copy(handler)
            working.recommender.analyzer.forget(item.id)
            await self._store_call("share media", self.store.upsert_shared_media(self.conversation_id, item))
            self.handler = working

    async def record_media_interaction(self, media_id: str, kind: str) -> MediaInteraction:
        async with self._lock:
            handler = await self._ensure_loaded()
            working = self._working_copy(handler)
            interaction = working.recommender.add_interaction(media_id, kind)
            await self._store_call(
                "add media interaction", self.store.add_media_interaction(self.conversation_id, interaction)
            )
            self.handler = working
            return interaction

    async def moderate_content(self, text: str) -> ModerationVerdict:
        async with self._lock:
            handler = await self._ensure_loaded()
            working = self._working_copy(handler)
            verdict = working.moderate_content(text)
            entry = ModerationLogEntry(self.conversation_id, text or "", verdict, self.clock())
            await self._store_call("moderation log", self.store.add_moderation_log(entry))
            self.handler = working
            return verdict

    async def get_relevant_memories(self, query: str, limit: int | None = None) -> list[Memory]:
        async with self._lock:
            handler = await self._ensure_loaded()
            working = self._working_copy(handler)
            found = working.get_relevant_memories(query, limit)
            await self._store_gather("touch memories", (self.store.upsert_memory(item) for item in found))
            self.handler = working
            return copy.deepcopy(found)

    # -- reads -----------------------------------------------------------------

    async def get_conversation_state(self) -> ConversationSnapshot:
        async with self._lock:
            return (await self._ensure_loaded()).get_conversation_state()

    async def get_interest_summary(self) -> InterestSummary:
        async with self._lock:
            return (await self._ensure_loaded()).get_interest_summary()

    async def get_topic_summary(self) -> TopicSummary:
        async with self._lock:
            return (await self._ensure_loaded()).get_topic_summary()

    async def suggest_next_action(self) -> NextAction:
        async with self._lock:
            return (await self._ensure_loaded()).suggest_next_action()

    async def get_moderation_stats(self) -> ModerationStats:
        async with self._lock:
            return (await self._ensure_loaded()).moderator.get_moderation_stats()

    async def get_recommendations(
        self,
        limit: int | None = None,
        media: list[MediaItem] | None = None,
        recent_turns: list[Turn] | None = None,
    ) -> list[Recommendation]:
        async with self._lock:
            handler = await self._ensure_loaded()
            items = media
            if items is None:
                items = await self._store_call("list media", self.store.list_shared_media(self.conversation_id))
            return handler.get_recommendations(items, recent_turns, limit)
