"""
Contextual memory service: the operations the surrounding chat application
calls. Wires storage lifecycle, retrieval, profile persistence and background
enrichment together and implements the per-turn control flow.
"""

import asyncio
import uuid
from typing import AsyncIterator, Dict, List, Optional

from ..agents.chat_client import IChatClient
from ..util.logging import logger
from ..vector.embeddings import IEmbeddingProvider
from ..vector.lifecycle import VectorStoreLifecycleManager
from ..vector.retrieval import RetrievalPipeline
from ..vector.types import IndexHandle, OrderedMessage, StorageStatus, VectorRecord
from . import config
from .context_formatter import create_system_prompt
from .enrichment import EnrichmentScheduler
from .errors import PersistenceError, ProvisioningError
from .profile_store import ProfileStore
from .schema import ContextualMetadataProfile, now_ms


class ContextualMemoryService:
    """Facade over the contextual memory components."""

    def __init__(self, embedder: IEmbeddingProvider, lifecycle: VectorStoreLifecycleManager,
                 profile_store: ProfileStore, scheduler: EnrichmentScheduler,
                 chat_client: Optional[IChatClient] = None,
                 use_dedicated: bool = config.USE_DEDICATED_INDEX,
                 default_top_k: int = config.RETRIEVAL_TOP_K):
        self.embedder = embedder
        self.lifecycle = lifecycle
        self.retrieval = RetrievalPipeline(embedder, lifecycle)
        self.profile_store = profile_store
        self.scheduler = scheduler
        self.chat_client = chat_client
        self.use_dedicated = use_dedicated
        self.default_top_k = default_top_k

    @classmethod
    def from_config(cls, db_path: str = None) -> "ContextualMemoryService":
        """Build a service from environment configuration."""
        embedder = config.get_embedding_provider()
        lifecycle = VectorStoreLifecycleManager(
            config.get_vector_provider(),
            shared_index_name=config.SHARED_INDEX_NAME,
            dimension=config.EMBED_DIM,
        )
        profile_store = ProfileStore(db_path or config.DB_PATH)
        scheduler = EnrichmentScheduler(profile_store, config.get_delta_generator())
        return cls(embedder, lifecycle, profile_store, scheduler, chat_client=config.get_chat_client())

    def _want_dedicated(self, dedicated: Optional[bool]) -> bool:
        return self.use_dedicated if dedicated is None else dedicated

    async def _retrieval_handle(self, owner_id: str) -> Optional[IndexHandle]:
        try:
            return await self.lifecycle.ensure_storage(owner_id, self.use_dedicated)
        except ProvisioningError as e:
            logger.log_retrieval(owner_id, self.default_top_k, 0, status="degraded", error=str(e))
            return None

    # Retrieval

    async def query_context(self, owner_id: str, text: str,
                            top_k: Optional[int] = None) -> List[OrderedMessage]:
        """Chronologically ordered past messages relevant to ``text``. Never raises."""
        top_k = top_k or self.default_top_k
        handle = await self._retrieval_handle(owner_id)
        if handle is None:
            return []
        return await self.retrieval.retrieve_context(owner_id, text, top_k, handle)

    # Writes

    async def record_turn(self, owner_id: str, user_text: str, assistant_text: str,
                          timestamp: Optional[int] = None,
                          user_embedding: Optional[List[float]] = None,
                          dedicated: Optional[bool] = None) -> Optional[asyncio.Task]:
        """
        Store both messages of a completed turn, then schedule enrichment.

        Returns once both vectors are written. The assistant message is stored
        one millisecond after the user message so their order is stable.

        Returns:
            The enrichment task (not awaited), or None if enrichment is disabled

        Raises:
            PersistenceError: embedding or upsert of either message failed
            ProvisioningError: the owner's dedicated index could not be created
        """
        if timestamp is None:
            timestamp = now_ms()

        handle = await self.lifecycle.ensure_storage(owner_id, self._want_dedicated(dedicated))

        try:
            if user_embedding is None:
                user_embedding = await self.embedder.embed(user_text)
            assistant_embedding = await self.embedder.embed(assistant_text)
        except Exception as e:
            logger.log_vector_operation("embed", owner_id, {"error": str(e)}, status="failed")
            raise PersistenceError(f"Embedding failed while recording turn: {e}",
                                   owner_id=owner_id, operation="record_turn") from e

        records = [
            VectorRecord(id=str(uuid.uuid4()), vector=user_embedding, role="user",
                         text=user_text, timestamp=timestamp, owner_id=owner_id),
            VectorRecord(id=str(uuid.uuid4()), vector=assistant_embedding, role="assistant",
                         text=assistant_text, timestamp=timestamp + 1, owner_id=owner_id),
        ]
        for record in records:
            await self.lifecycle.upsert(handle, record)

        return self.scheduler.schedule_enrichment(owner_id, user_text, assistant_text, timestamp)

    # Profiles

    async def get_profile(self, owner_id: str) -> Optional[ContextualMetadataProfile]:
        return await self.profile_store.get_profile(owner_id)

    async def delete_profile(self, owner_id: str) -> bool:
        return await self.profile_store.delete_profile(owner_id)

    async def list_profiles(self) -> List[ContextualMetadataProfile]:
        return await self.profile_store.list_profiles()

    async def get_profile_stats(self) -> Dict[str, object]:
        return await self.profile_store.get_stats()

    # Storage administration

    async def provision_storage(self, owner_id: str, dedicated: bool) -> bool:
        """
        Prepare storage for an owner. Namespace mode needs no provisioning.

        Raises:
            ProvisioningError: dedicated index creation failed (retryable)
        """
        handle = await self.lifecycle.ensure_storage(owner_id, dedicated)
        return handle is not None

    async def storage_exists(self, owner_id: str) -> StorageStatus:
        return await self.lifecycle.storage_exists(owner_id)

    async def teardown_storage(self, owner_id: str) -> bool:
        return await self.lifecycle.delete(owner_id)

    # Chat turn

    async def chat_turn(self, owner_id: str, message: str,
                        history: Optional[List[Dict[str, str]]] = None,
                        top_k: Optional[int] = None) -> AsyncIterator[str]:
        """
        Run one chat turn and yield the assistant reply as it streams.

        Retrieval finishes before completion starts, and the turn's own
        messages are written only after the stream ends, so a turn never
        retrieves itself.
        """
        if self.chat_client is None:
            raise RuntimeError("No chat client configured")

        top_k = top_k or self.default_top_k
        handle = await self._retrieval_handle(owner_id)

        async def load_profile():
            try:
                return await self.profile_store.get_profile(owner_id)
            except PersistenceError:
                return None

        async def load_context():
            if handle is None:
                return [], None
            return await self.retrieval.retrieve_with_embedding(owner_id, message, top_k, handle)

        profile, (context, query_embedding) = await asyncio.gather(load_profile(), load_context())

        messages = [{"role": "system", "content": create_system_prompt(profile)}]
        messages.extend(m.to_chat_message() for m in context)
        messages.extend(history or [])
        messages.append({"role": "user", "content": message})

        fragments = []
        async for fragment in self.chat_client.complete_chat(messages):
            fragments.append(fragment)
            yield fragment

        await self.record_turn(owner_id, message, "".join(fragments), now_ms(),
                               user_embedding=query_embedding)
