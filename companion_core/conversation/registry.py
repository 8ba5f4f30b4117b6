from __future__ import annotations

import asyncio
import logging
import random

from ..common import Clock, utcnow
from ..errors import ValidationError
from ..storage.base import ConversationStore
from .handler import AnalyzerProfile
from .session import ConversationSession, ReplyGenerator

logger = logging.getLogger("companion_core.conversation")


class ConversationRegistry:
    """Hands out one ConversationSession per conversation id."""

    def __init__(
        self,
        store: ConversationStore,
        *,
        profile: AnalyzerProfile | None = None,
        generator: ReplyGenerator | None = None,
        generation_timeout: float = 30.0,
        max_attempts: int = 2,
        rng: random.Random | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.profile = profile or AnalyzerProfile.from_settings()
        self.generator = generator
        self.generation_timeout = generation_timeout
        self.max_attempts = max_attempts
        self.rng = rng
        self.clock = clock
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    async def get(self, conversation_id: str) -> ConversationSession:
        key = str(conversation_id or "").strip()
        if not key:
            raise ValidationError("conversation_id cannot be empty")
        async with self._lock:
            session = self._sessions.get(key)
            if session is None:
                session = ConversationSession(
                    key,
                    self.store,
                    profile=self.profile,
                    generator=self.generator,
                    generation_timeout=self.generation_timeout,
                    max_attempts=self.max_attempts,
                    rng=random.Random(self.rng.random()) if self.rng is not None else None,
                    clock=self.clock,
                )
                self._sessions[key] = session
                logger.debug("Opened session for conversation %s", key)
            return session

    async def handle_message(self, conversation_id: str, content: str, *, parent_id: str | None = None):
        session = await self.get(conversation_id)
        return await session.handle_message(content, parent_id=parent_id)

    def forget(self, conversation_id: str) -> None:
        self._sessions.pop(str(conversation_id or "").strip(), None)

    async def close(self) -> None:
        self._sessions.clear()
        await self.store.close()
