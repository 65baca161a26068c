"""
Vector memory: embeddings, index providers, storage lifecycle and retrieval.
"""

from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding, OllamaEmbedding
from .lifecycle import InflightRegistry, VectorStoreLifecycleManager, dedicated_index_name
from .provider import IVectorIndexProvider, InMemoryIndexProvider
from .retrieval import RetrievalPipeline
from .types import IndexDescriptor, IndexHandle, IndexMode, OrderedMessage, QueryMatch, StorageStatus, VectorRecord

__all__ = [
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'OllamaEmbedding',
    'InflightRegistry',
    'VectorStoreLifecycleManager',
    'dedicated_index_name',
    'IVectorIndexProvider',
    'InMemoryIndexProvider',
    'RetrievalPipeline',
    'IndexDescriptor',
    'IndexHandle',
    'IndexMode',
    'OrderedMessage',
    'QueryMatch',
    'StorageStatus',
    'VectorRecord',
]
