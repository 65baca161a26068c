"""
Background profile enrichment.

After a turn completes, a task reads the owner's profile, asks the delta
generator for additions, merges them and writes the result back. The task is
detached from the request that scheduled it and never raises to the caller;
failures are logged and leave the stored profile as it was.

Enrichments for the same owner are not serialized: two overlapping runs both
read the same profile and the later write replaces the earlier one.
"""

import asyncio
import time
from typing import Optional, Set

from ..agents.metadata_generator import IProfileDeltaGenerator
from ..util.logging import logger
from .config import enrichment_enabled
from .errors import GenerationError
from .merge import MetadataMergeEngine
from .profile_store import ProfileStore
from .schema import ContextualMetadataProfile, ConversationTurn, ProfileDelta


class EnrichmentScheduler:
    """Spawns detached profile-update tasks and tracks them until they finish."""

    def __init__(self, profile_store: ProfileStore, generator: IProfileDeltaGenerator,
                 merge_engine: Optional[MetadataMergeEngine] = None):
        self.profile_store = profile_store
        self.generator = generator
        self.merge_engine = merge_engine or MetadataMergeEngine()

        # Strong references; the event loop only keeps weak ones
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def schedule_enrichment(self, owner_id: str, user_text: str, assistant_text: str,
                            timestamp: int) -> Optional[asyncio.Task]:
        """
        Start enrichment for a completed turn and return immediately.

        Must be called from within a running event loop. Returns the spawned
        task, or None when enrichment is disabled.
        """
        if not enrichment_enabled():
            logger.log_profile_operation("enrichment", owner_id, "skipped", {"reason": "disabled"})
            return None

        turn = ConversationTurn(user_text=user_text, assistant_text=assistant_text, timestamp=timestamp)
        task = asyncio.get_running_loop().create_task(
            self._run(owner_id, turn), name=f"enrichment:{owner_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, owner_id: str, turn: ConversationTurn) -> None:
        try:
            await self.update_profile(owner_id, turn)
        except Exception as e:
            logger.log_operation("enrichment.update", "failed", {
                "owner_id": owner_id,
                "error_type": type(e).__name__,
                "error": str(e)[:200],
            })

    async def update_profile(self, owner_id: str, turn: ConversationTurn) -> ContextualMetadataProfile:
        """
        Read, generate, merge and persist. Raises on failure; nothing is written
        unless every step before the final put succeeded.
        """
        start = time.time()

        existing = await self.profile_store.get_profile(owner_id)
        if existing is None:
            existing = ContextualMetadataProfile.empty(owner_id)

        try:
            delta = await self.generator.generate_profile_delta(existing, turn)
        except GenerationError as e:
            logger.log_profile_operation("generate_delta", owner_id, "degraded", {"error": str(e)})
            delta = ProfileDelta.empty()
        merged = self.merge_engine.merge(existing, delta, turn.timestamp)

        await self.profile_store.put_profile(merged)

        logger.log_enrichment("update", owner_id, start, time.time(), details={
            "interaction_count": merged.interaction_count,
            "delta_empty": delta.is_empty(),
        })
        return merged

    async def wait_idle(self) -> None:
        """Wait for every enrichment scheduled so far to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
