"""
Vector index provider interface and an in-process implementation.

A provider manages named indexes, each partitioned into namespaces. The shared
multi-tenant index scopes owners by namespace; dedicated indexes use the
default namespace. Creating an index that already exists is an error, as with
hosted vector databases.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import numpy as np

from ..core.errors import IndexAlreadyExistsError, IndexNotFoundError
from .types import QueryMatch

DEFAULT_NAMESPACE = ""


class IVectorIndexProvider(ABC):
    """Abstract interface for a vector database holding many named indexes."""

    @abstractmethod
    async def create_index(self, name: str, dimension: int = 512, metric: str = "cosine") -> None:
        """Create an index. Raises IndexAlreadyExistsError if present."""
        pass

    @abstractmethod
    async def list_indexes(self) -> List[str]:
        """Names of all indexes."""
        pass

    @abstractmethod
    async def delete_index(self, name: str) -> None:
        """Delete an index and all its vectors."""
        pass

    @abstractmethod
    async def upsert(self, index_name: str, namespace: Optional[str], record_id: str,
                     vector: List[float], metadata: Dict[str, Any]) -> None:
        """Insert or replace one vector."""
        pass

    @abstractmethod
    async def query(self, index_name: str, namespace: Optional[str], vector: List[float],
                    top_k: int) -> List[QueryMatch]:
        """Top-k matches by similarity, best first."""
        pass


class _NamespaceStore:
    """Cosine-similarity store for one namespace of one index."""

    def __init__(self):
        self._metadata: Dict[str, Dict[str, Any]] = {}
        self._index: Dict[str, np.ndarray] = {}  # record_id -> normalized vector

    def __len__(self):
        return len(self._index)

    def add(self, record_id: str, vector: np.ndarray, metadata: Dict[str, Any]) -> None:
        norm = np.linalg.norm(vector)
        self._index[record_id] = vector / norm if norm > 0 else vector
        self._metadata[record_id] = dict(metadata)

    def search(self, query_vector: np.ndarray, top_k: int) -> List[QueryMatch]:
        if not self._index or top_k <= 0:
            return []

        norm = np.linalg.norm(query_vector)
        if norm == 0:
            return []
        normalized_query = query_vector / norm

        similarities = {
            record_id: float(np.dot(normalized_query, stored))
            for record_id, stored in self._index.items()
        }
        ranked = sorted(similarities.items(), key=lambda x: x[1], reverse=True)

        return [
            QueryMatch(id=record_id, score=score, metadata=dict(self._metadata[record_id]))
            for record_id, score in ranked[:top_k]
        ]


class _InMemoryIndex:
    def __init__(self, dimension: int, metric: str):
        self.dimension = dimension
        self.metric = metric
        self.namespaces: Dict[str, _NamespaceStore] = {}


class InMemoryIndexProvider(IVectorIndexProvider):
    """Process-local provider backed by numpy. Suitable for tests and single-node use."""

    def __init__(self, shared_index_name: Optional[str] = None, dimension: int = 512):
        self.dimension = dimension
        self._indexes: Dict[str, _InMemoryIndex] = {}
        self._lock = threading.Lock()
        if shared_index_name:
            self._indexes[shared_index_name] = _InMemoryIndex(dimension, "cosine")

    def _get(self, name: str) -> _InMemoryIndex:
        index = self._indexes.get(name)
        if index is None:
            raise IndexNotFoundError(f"Index not found: {name}")
        return index

    async def create_index(self, name: str, dimension: int = 512, metric: str = "cosine") -> None:
        with self._lock:
            if name in self._indexes:
                raise IndexAlreadyExistsError(f"Index already exists: {name}")
            self._indexes[name] = _InMemoryIndex(dimension, metric)

    async def list_indexes(self) -> List[str]:
        with self._lock:
            return list(self._indexes.keys())

    async def delete_index(self, name: str) -> None:
        with self._lock:
            self._get(name)
            del self._indexes[name]

    async def upsert(self, index_name: str, namespace: Optional[str], record_id: str,
                     vector: List[float], metadata: Dict[str, Any]) -> None:
        array = np.asarray(vector, dtype=np.float32)
        with self._lock:
            index = self._get(index_name)
            if array.shape != (index.dimension,):
                raise ValueError(
                    f"Vector dimension {array.shape[-1] if array.ndim else 0} does not match "
                    f"index dimension {index.dimension}"
                )
            store = index.namespaces.setdefault(namespace or DEFAULT_NAMESPACE, _NamespaceStore())
            store.add(record_id, array, metadata)

    async def query(self, index_name: str, namespace: Optional[str], vector: List[float],
                    top_k: int) -> List[QueryMatch]:
        array = np.asarray(vector, dtype=np.float32)
        with self._lock:
            index = self._get(index_name)
            store = index.namespaces.get(namespace or DEFAULT_NAMESPACE)
            if store is None:
                return []
            return store.search(array, top_k)

    def count(self, index_name: str, namespace: Optional[str] = None) -> int:
        """Number of vectors in one namespace of an index."""
        with self._lock:
            store = self._get(index_name).namespaces.get(namespace or DEFAULT_NAMESPACE)
            return len(store) if store else 0
