from __future__ import annotations

from ..base import CommitBatch
from .utils import _sqlite_connection


class BatchMixin:
    async def commit_batch(self, batch: CommitBatch) -> None:
        """Run every write of one step on a single connection and commit once.

        Leaving the connection without a commit rolls the transaction back,
        so a failed or cancelled batch leaves no rows behind.
        """
        cid = batch.conversation_id
        async with _sqlite_connection(self.db_path) as db:
            for turn in batch.turns:
                await self._write_turn(db, turn)
            for transition in batch.transitions:
                await self._write_topic_transition(db, cid, transition)
            if batch.personality is not None:
                await self._write_personality(db, cid, batch.personality)
            for memory in batch.memories:
                await self._write_memory(db, memory)
            for memory_id in batch.evicted_memory_ids:
                await self._remove_memory(db, cid, memory_id)
            for topic in batch.topics:
                await self._write_topic(db, cid, topic)
            for interest in batch.interests:
                await self._write_interest(db, cid, interest)
            for preference in batch.preferences:
                await self._write_preference(db, cid, preference)
            if batch.moderation is not None:
                await self._write_moderation_log(db, batch.moderation)
            await db.commit()
