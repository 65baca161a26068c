"""
Retrieval pipeline: embed a query, fetch the owner's nearest past messages and
present them in chronological order. Similarity picks the set; time orders it.
Retrieval fails open: any error yields an empty context.
"""

from typing import List, Optional, Tuple

from ..core.errors import RetrievalError
from ..util.logging import logger
from .embeddings import IEmbeddingProvider
from .lifecycle import VectorStoreLifecycleManager
from .types import IndexHandle, OrderedMessage, QueryMatch


def to_ordered_messages(matches: List[QueryMatch]) -> List[OrderedMessage]:
    """Convert matches to messages sorted ascending by stored timestamp."""
    messages = []
    for match in matches:
        metadata = match.metadata or {}
        text = metadata.get("message")
        if not isinstance(text, str):
            continue
        try:
            timestamp = int(metadata.get("timestamp", 0))
        except (TypeError, ValueError):
            timestamp = 0
        messages.append(OrderedMessage(
            id=match.id,
            role=metadata.get("role", "user"),
            text=text,
            timestamp=timestamp,
            score=match.score,
        ))

    messages.sort(key=lambda m: (m.timestamp, m.id))
    return messages


class RetrievalPipeline:
    """Builds chronological memory context for one owner."""

    def __init__(self, embedder: IEmbeddingProvider, lifecycle: VectorStoreLifecycleManager):
        self.embedder = embedder
        self.lifecycle = lifecycle

    async def retrieve_context(self, owner_id: str, query_text: str, top_k: int,
                               handle: Optional[IndexHandle] = None) -> List[OrderedMessage]:
        """
        Retrieve the ``top_k`` most similar past messages, oldest first.

        Returns an empty list when the owner has no data or anything fails.
        """
        messages, _ = await self.retrieve_with_embedding(owner_id, query_text, top_k, handle)
        return messages

    async def retrieve_with_embedding(self, owner_id: str, query_text: str, top_k: int,
                                      handle: Optional[IndexHandle] = None
                                      ) -> Tuple[List[OrderedMessage], Optional[List[float]]]:
        """Like retrieve_context, also returning the query embedding (None if embedding failed)."""
        embedding = None
        try:
            if handle is None:
                handle = self.lifecycle.cached_handle(owner_id) or self.lifecycle.namespace_handle(owner_id)

            try:
                embedding = await self.embedder.embed(query_text)
            except Exception as e:
                raise RetrievalError(f"Embedding failed: {e}", owner_id=owner_id,
                                     operation="embed") from e

            matches = await self.lifecycle.query(handle, embedding, top_k)
        except RetrievalError as e:
            logger.log_retrieval(owner_id, top_k, 0, status="degraded", error=str(e))
            return [], embedding

        messages = to_ordered_messages(matches)
        logger.log_retrieval(owner_id, top_k, len(messages))
        return messages, embedding
