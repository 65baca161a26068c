"""
Shared fixtures and fakes for the contextual memory tests.
"""

import asyncio

import pytest

from contextual_memory.agents.chat_client import IChatClient
from contextual_memory.agents.metadata_generator import IProfileDeltaGenerator
from contextual_memory.core.enrichment import EnrichmentScheduler
from contextual_memory.core.memory_service import ContextualMemoryService
from contextual_memory.core.profile_store import ProfileStore
from contextual_memory.core.schema import ProfileDelta
from contextual_memory.vector.embeddings import DeterministicHashEmbedding
from contextual_memory.vector.lifecycle import VectorStoreLifecycleManager
from contextual_memory.vector.provider import InMemoryIndexProvider

SHARED_INDEX = "chat-shared"
DIMENSION = 64


class FakeDeltaGenerator(IProfileDeltaGenerator):
    """Returns a fixed delta, or raises ``error`` when set."""

    def __init__(self, delta=None, error=None):
        self.delta = delta or ProfileDelta.empty()
        self.error = error
        self.calls = []

    async def generate_profile_delta(self, existing, turn):
        self.calls.append((existing, turn))
        if self.error is not None:
            raise self.error
        return self.delta


class FakeChatClient(IChatClient):
    """Streams a fixed list of fragments and records the prompt it received."""

    def __init__(self, fragments=None):
        self.fragments = fragments or ["Hello", ", ", "world"]
        self.received = []

    async def complete_chat(self, messages):
        self.received.append(messages)
        for fragment in self.fragments:
            yield fragment


class CountingProvider(InMemoryIndexProvider):
    """In-memory provider that counts create_index calls and can be made slow or flaky."""

    def __init__(self, *args, create_delay=0.0, create_failures=0, **kwargs):
        super().__init__(*args, **kwargs)
        self.create_calls = 0
        self.create_delay = create_delay
        self.create_failures = create_failures
        self.fail_queries = False

    async def create_index(self, name, dimension=512, metric="cosine"):
        self.create_calls += 1
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.create_failures > 0:
            self.create_failures -= 1
            raise RuntimeError("control plane unavailable")
        await super().create_index(name, dimension=dimension, metric=metric)

    async def query(self, index_name, namespace, vector, top_k):
        if self.fail_queries:
            raise RuntimeError("query backend down")
        return await super().query(index_name, namespace, vector, top_k)


@pytest.fixture
def provider():
    return CountingProvider(shared_index_name=SHARED_INDEX, dimension=DIMENSION)


@pytest.fixture
def lifecycle(provider):
    return VectorStoreLifecycleManager(provider, shared_index_name=SHARED_INDEX, dimension=DIMENSION)


@pytest.fixture
def embedder():
    return DeterministicHashEmbedding(dimension=DIMENSION)


@pytest.fixture
def profile_store(tmp_path):
    return ProfileStore(str(tmp_path / "profiles.db"))


@pytest.fixture
def generator():
    return FakeDeltaGenerator(ProfileDelta(prominent_topics=["greetings"]))


@pytest.fixture
def chat_client():
    return FakeChatClient()


@pytest.fixture
def service(embedder, lifecycle, profile_store, generator, chat_client):
    scheduler = EnrichmentScheduler(profile_store, generator)
    return ContextualMemoryService(embedder, lifecycle, profile_store, scheduler,
                                   chat_client=chat_client, use_dedicated=False, default_top_k=5)
