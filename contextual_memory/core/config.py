"""
Configuration for the contextual memory subsystem.
Values come from the environment (optionally a .env file) and default to an
offline setup: in-process vector provider and deterministic hash embeddings.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Profile database
DB_PATH = os.getenv("DB_PATH", "./data/contextual_memory.db")

# Vector storage
VECTOR_PROVIDER = os.getenv("VECTOR_PROVIDER", "memory")  # memory|faiss
SHARED_INDEX_NAME = os.getenv("SHARED_INDEX_NAME", "chat-shared")
DEDICATED_INDEX_PREFIX = "chat-user-"
USE_DEDICATED_INDEX = os.getenv("USE_DEDICATED_INDEX", "false").lower() == "true"
VECTOR_METRIC = "cosine"

# Embeddings
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence_transformers|ollama
EMBED_DIM = int(os.getenv("EMBED_DIM", "512"))
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-mpnet-base-v2")

# Retrieval
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))

# LLM collaborators
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.1:8b")
OLLAMA_EMBED_MODEL = os.getenv("OLLAMA_EMBED_MODEL", "nomic-embed-text")

VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def enrichment_enabled():
    """Check if background profile enrichment is enabled."""
    return os.getenv("ENRICHMENT_ENABLED", "true").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def get_vector_provider():
    """Get the configured vector index provider."""
    if VECTOR_PROVIDER == "faiss":
        from ..vector.faiss_store import FaissIndexProvider
        return FaissIndexProvider(shared_index_name=SHARED_INDEX_NAME, dimension=EMBED_DIM)

    from ..vector.provider import InMemoryIndexProvider
    return InMemoryIndexProvider(shared_index_name=SHARED_INDEX_NAME, dimension=EMBED_DIM)


def get_embedding_provider():
    """Get the configured embedding provider."""
    if EMBED_PROVIDER == "sentence_transformers":
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(EMBED_MODEL_NAME)
    elif EMBED_PROVIDER == "ollama":
        from ..vector.embeddings import OllamaEmbedding
        return OllamaEmbedding(model_name=OLLAMA_EMBED_MODEL, host=OLLAMA_HOST, dimension=EMBED_DIM)

    from ..vector.embeddings import DeterministicHashEmbedding
    return DeterministicHashEmbedding(dimension=EMBED_DIM)


def get_chat_client():
    """Get the chat completion client."""
    from ..agents.chat_client import OllamaChatClient
    return OllamaChatClient(model_name=OLLAMA_MODEL, host=OLLAMA_HOST)


def get_delta_generator():
    """Get the LLM-backed profile delta generator."""
    from ..agents.metadata_generator import OllamaMetadataGenerator
    return OllamaMetadataGenerator(model_name=OLLAMA_MODEL, host=OLLAMA_HOST)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if VECTOR_PROVIDER not in ["memory", "faiss"]:
        issues.append(f"Invalid VECTOR_PROVIDER: {VECTOR_PROVIDER}")

    if EMBED_PROVIDER not in ["hash", "sentence_transformers", "ollama"]:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if EMBED_DIM < 1:
        issues.append("EMBED_DIM must be >= 1")

    if RETRIEVAL_TOP_K < 1:
        issues.append("RETRIEVAL_TOP_K must be >= 1")

    if SHARED_INDEX_NAME.startswith(DEDICATED_INDEX_PREFIX):
        issues.append("SHARED_INDEX_NAME must not use the dedicated index prefix")

    return issues
