"""
Embedding providers: text -> fixed-dimension vector.
The hash provider is offline and deterministic; the others call a model.
"""

import asyncio
import hashlib
from abc import ABC, abstractmethod
from typing import List

import numpy as np
import ollama


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider.

    Seeds a random generator from the SHA-256 of the text and draws a unit
    vector, so equal texts always embed identically and different texts are
    nearly orthogonal. Useful for tests and offline runs without a model.
    """

    def __init__(self, dimension: int = 512):
        self.dimension = dimension

    def embed_text(self, text: str) -> List[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        rng = np.random.default_rng(int.from_bytes(digest[:8], "big"))
        vector = rng.standard_normal(self.dimension)
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.astype(np.float32).tolist()

    async def embed(self, text: str) -> List[float]:
        return self.embed_text(text)

    def get_dimension(self) -> int:
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    The model is loaded on first use and inference runs in a worker thread.
    """

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> List[float]:
        embedding = self.model.encode(text, convert_to_tensor=False, normalize_embeddings=True)
        return embedding.tolist()

    async def embed(self, text: str) -> List[float]:
        return await asyncio.to_thread(self.embed_text, text)

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension


class OllamaEmbedding(IEmbeddingProvider):
    """Embeddings from an Ollama server."""

    def __init__(self, model_name: str = "nomic-embed-text", host: str = None, dimension: int = 512,
                 client: ollama.AsyncClient = None):
        self.model_name = model_name
        self.dimension = dimension
        self.client = client or ollama.AsyncClient(host=host)

    async def embed(self, text: str) -> List[float]:
        response = await self.client.embed(model=self.model_name, input=text)
        embedding = list(response["embeddings"][0])
        if len(embedding) < self.dimension:
            raise ValueError(
                f"Model {self.model_name} returned {len(embedding)} dimensions, expected {self.dimension}"
            )
        # Matryoshka-style models keep most of their signal in the leading dimensions
        vector = np.asarray(embedding[:self.dimension], dtype=np.float32)
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()

    def get_dimension(self) -> int:
        return self.dimension
