"""
FAISS-backed vector index provider.
Each namespace of each index is a flat inner-product index over normalized
vectors (cosine similarity) wrapped in an ID map so upserts can replace.
"""

import asyncio
import threading
from typing import Any, Dict, List, Optional

import faiss
import numpy as np

from ..core.errors import IndexAlreadyExistsError, IndexNotFoundError
from .provider import DEFAULT_NAMESPACE, IVectorIndexProvider
from .types import QueryMatch


class _FaissNamespace:
    """One FAISS index plus the string-id and metadata bookkeeping it lacks."""

    def __init__(self, dimension: int):
        self.dimension = dimension
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))

        # Keep track of record IDs and their corresponding FAISS ids
        self.id_to_vector_index: Dict[str, int] = {}
        self.vector_id_map: Dict[int, str] = {}
        self.id_to_metadata: Dict[str, Dict[str, Any]] = {}
        self.next_vector_index = 0

    def add(self, record_id: str, vector: np.ndarray, metadata: Dict[str, Any]) -> None:
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        vector_array = np.asarray(vector, dtype=np.float32).reshape(1, -1)

        existing = self.id_to_vector_index.get(record_id)
        if existing is not None:
            self.index.remove_ids(np.array([existing], dtype=np.int64))
            del self.vector_id_map[existing]

        vector_index = self.next_vector_index
        self.next_vector_index += 1
        self.index.add_with_ids(vector_array, np.array([vector_index], dtype=np.int64))

        self.id_to_vector_index[record_id] = vector_index
        self.vector_id_map[vector_index] = record_id
        self.id_to_metadata[record_id] = dict(metadata)

    def search(self, query_vector: np.ndarray, top_k: int) -> List[QueryMatch]:
        if not self.index.ntotal or top_k <= 0:
            return []

        norm = np.linalg.norm(query_vector)
        if norm == 0:
            return []
        query_array = np.asarray(query_vector / norm, dtype=np.float32).reshape(1, -1)

        scores, indices = self.index.search(query_array, min(top_k, self.index.ntotal))

        results = []
        for score, vector_index in zip(scores[0], indices[0]):
            record_id = self.vector_id_map.get(int(vector_index))
            if record_id is None:
                continue
            results.append(QueryMatch(
                id=record_id,
                score=float(score),  # inner product of normalized vectors
                metadata=dict(self.id_to_metadata.get(record_id, {})),
            ))
        return results


class FaissIndexProvider(IVectorIndexProvider):
    """Process-local provider storing vectors in FAISS indexes."""

    def __init__(self, shared_index_name: Optional[str] = None, dimension: int = 512):
        self.dimension = dimension
        self._indexes: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        if shared_index_name:
            self._indexes[shared_index_name] = {"dimension": dimension, "metric": "cosine", "namespaces": {}}

    def _get(self, name: str) -> Dict[str, Any]:
        index = self._indexes.get(name)
        if index is None:
            raise IndexNotFoundError(f"Index not found: {name}")
        return index

    async def create_index(self, name: str, dimension: int = 512, metric: str = "cosine") -> None:
        if metric != "cosine":
            raise ValueError(f"Unsupported metric for FAISS provider: {metric}")
        with self._lock:
            if name in self._indexes:
                raise IndexAlreadyExistsError(f"Index already exists: {name}")
            self._indexes[name] = {"dimension": dimension, "metric": metric, "namespaces": {}}

    async def list_indexes(self) -> List[str]:
        with self._lock:
            return list(self._indexes.keys())

    async def delete_index(self, name: str) -> None:
        with self._lock:
            self._get(name)
            del self._indexes[name]

    def _upsert_sync(self, index_name, namespace, record_id, vector, metadata):
        with self._lock:
            index = self._get(index_name)
            if len(vector) != index["dimension"]:
                raise ValueError(
                    f"Vector dimension {len(vector)} does not match expected dimension {index['dimension']}"
                )
            key = namespace or DEFAULT_NAMESPACE
            store = index["namespaces"].get(key)
            if store is None:
                store = _FaissNamespace(index["dimension"])
                index["namespaces"][key] = store
            store.add(record_id, np.asarray(vector, dtype=np.float32), metadata)

    def _query_sync(self, index_name, namespace, vector, top_k):
        with self._lock:
            store = self._get(index_name)["namespaces"].get(namespace or DEFAULT_NAMESPACE)
            if store is None:
                return []
            return store.search(np.asarray(vector, dtype=np.float32), top_k)

    async def upsert(self, index_name: str, namespace: Optional[str], record_id: str,
                     vector: List[float], metadata: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._upsert_sync, index_name, namespace, record_id, vector, metadata)

    async def query(self, index_name: str, namespace: Optional[str], vector: List[float],
                    top_k: int) -> List[QueryMatch]:
        return await asyncio.to_thread(self._query_sync, index_name, namespace, vector, top_k)
