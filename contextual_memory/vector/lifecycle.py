"""
Vector store lifecycle manager.

Decides where an owner's vectors live and provisions dedicated indexes on
demand. Owners default to a namespace inside the shared index; a dedicated
index is created lazily the first time one is requested, with at most one
creation in flight per index name no matter how many requests ask at once.
"""

import asyncio
import hashlib
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.config import DEDICATED_INDEX_PREFIX, EMBED_DIM, SHARED_INDEX_NAME, VECTOR_METRIC
from ..core.errors import (
    IndexAlreadyExistsError,
    IndexNotFoundError,
    PersistenceError,
    ProvisioningError,
    RetrievalError,
)
from ..util.logging import logger
from .provider import IVectorIndexProvider
from .types import (
    IndexDescriptor,
    IndexHandle,
    IndexMode,
    QueryMatch,
    StorageStatus,
    VectorRecord,
)

# Owner ids already valid as an index-name suffix are used verbatim
_PLAIN_OWNER_ID = re.compile(r"^[a-z0-9]{1,32}$")


def dedicated_index_name(owner_id: str) -> str:
    """
    Deterministic, collision-free dedicated index name for an owner.

    Plain lower-case alphanumeric ids map to ``chat-user-<id>``. Anything
    else is hashed to ``chat-user-h-<sha1 prefix>``; the extra hyphen keeps
    the two forms from ever colliding.
    """
    if _PLAIN_OWNER_ID.match(owner_id):
        return f"{DEDICATED_INDEX_PREFIX}{owner_id}"
    digest = hashlib.sha1(owner_id.encode("utf-8")).hexdigest()[:32]
    return f"{DEDICATED_INDEX_PREFIX}h-{digest}"


def _retrieve_exception(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; mark a failure as seen
    if not task.cancelled():
        task.exception()


class InflightRegistry:
    """
    Single-flight map keyed by string.

    ``run(key, factory)`` starts ``factory()`` as a task unless one is already
    in flight for ``key``, in which case the caller awaits that task. The
    entry is removed when the task finishes, successfully or not, so a failed
    attempt never poisons later ones. The lock guards only the map.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._inflight: Dict[str, asyncio.Task] = {}

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        async with self._lock:
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(self._run_and_release(key, factory))
                task.add_done_callback(_retrieve_exception)
                self._inflight[key] = task
        # Shielded so one cancelled waiter does not cancel the creation for the rest
        return await asyncio.shield(task)

    async def _run_and_release(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await factory()
        finally:
            async with self._lock:
                if self._inflight.get(key) is asyncio.current_task():
                    del self._inflight[key]

    async def join(self, key: str) -> None:
        """Wait for the flight running under ``key``, if any. Its outcome is not returned."""
        task = self._inflight.get(key)
        if task is not None:
            await asyncio.wait([task])

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def __len__(self):
        return len(self._inflight)


class VectorStoreLifecycleManager:
    """Creates, selects and deletes per-owner vector storage."""

    def __init__(self, provider: IVectorIndexProvider, shared_index_name: str = SHARED_INDEX_NAME,
                 dimension: int = EMBED_DIM, metric: str = VECTOR_METRIC,
                 inflight: Optional[InflightRegistry] = None):
        self.provider = provider
        self.shared_index_name = shared_index_name
        self.dimension = dimension
        self.metric = metric
        self.inflight = inflight or InflightRegistry()

        # owner_id -> dedicated handle; presence makes dedicated mode sticky
        self._handles: Dict[str, IndexHandle] = {}
        # owner_id -> teardown count; a handle provisioned across a teardown is not cached
        self._generations: Dict[str, int] = {}

    def namespace_handle(self, owner_id: str) -> IndexHandle:
        descriptor = IndexDescriptor(owner_id=owner_id, mode=IndexMode.NAMESPACE,
                                     index_name=self.shared_index_name)
        return IndexHandle(descriptor=descriptor, namespace=owner_id)

    def dedicated_handle(self, owner_id: str) -> IndexHandle:
        descriptor = IndexDescriptor(owner_id=owner_id, mode=IndexMode.DEDICATED,
                                     index_name=dedicated_index_name(owner_id))
        return IndexHandle(descriptor=descriptor, namespace=None)

    def cached_handle(self, owner_id: str) -> Optional[IndexHandle]:
        return self._handles.get(owner_id)

    async def index_exists(self, index_name: str) -> bool:
        return index_name in await self.provider.list_indexes()

    async def ensure_storage(self, owner_id: str, want_dedicated: bool = False) -> IndexHandle:
        """
        Return the handle for an owner's vector storage, provisioning if needed.

        Args:
            owner_id: Owner whose storage is requested
            want_dedicated: Request a dedicated index instead of a namespace

        Returns:
            Dedicated handle when the owner has (or now has) a dedicated index,
            otherwise a namespace handle in the shared index

        Raises:
            ProvisioningError: the dedicated index could not be created, or the
                owner's storage was torn down while it was being created
        """
        cached = self._handles.get(owner_id)
        if cached is not None:
            return cached

        if not want_dedicated:
            return self.namespace_handle(owner_id)

        handle = self.dedicated_handle(owner_id)
        index_name = handle.index_name
        generation = self._generations.get(owner_id, 0)

        try:
            exists = await self.index_exists(index_name)
        except Exception as e:
            logger.log_storage_operation("exists", owner_id, index_name, "failed", {"error": str(e)})
            raise ProvisioningError(
                f"Could not check dedicated index for owner {owner_id}: {e}",
                owner_id=owner_id, index_name=index_name,
            ) from e

        if not exists:
            await self.inflight.run(index_name, lambda: self._create_dedicated(owner_id, index_name))

        if self._generations.get(owner_id, 0) != generation:
            logger.log_storage_operation("ensure", owner_id, index_name, "failed",
                                         {"reason": "torn down during provisioning"})
            raise ProvisioningError(
                f"Storage for owner {owner_id} was torn down during provisioning",
                owner_id=owner_id, index_name=index_name,
            )

        self._handles[owner_id] = handle
        return handle

    async def _create_dedicated(self, owner_id: str, index_name: str) -> None:
        try:
            # Re-check inside the single flight: another process or an earlier
            # flight may have created it since the caller looked
            if await self.index_exists(index_name):
                logger.log_storage_operation("create", owner_id, index_name, "exists")
                return
            await self.provider.create_index(index_name, dimension=self.dimension, metric=self.metric)
        except IndexAlreadyExistsError:
            logger.log_storage_operation("create", owner_id, index_name, "exists")
            return
        except Exception as e:
            logger.log_storage_operation("create", owner_id, index_name, "failed", {"error": str(e)})
            raise ProvisioningError(
                f"Failed to create dedicated index for owner {owner_id}: {e}",
                owner_id=owner_id, index_name=index_name,
            ) from e

        logger.log_storage_operation("create", owner_id, index_name, "success",
                                     {"dimension": self.dimension, "metric": self.metric})

    async def upsert(self, handle: IndexHandle, record: VectorRecord) -> None:
        """Write one message vector. Failures raise PersistenceError."""
        try:
            await self.provider.upsert(handle.index_name, handle.namespace, record.id,
                                       record.vector, record.metadata())
        except Exception as e:
            logger.log_vector_operation("upsert", handle.owner_id,
                                        {"index_name": handle.index_name, "record_id": record.id,
                                         "error": str(e)}, status="failed")
            raise PersistenceError(
                f"Vector upsert failed for owner {handle.owner_id}: {e}",
                owner_id=handle.owner_id, operation="upsert",
            ) from e

        logger.log_vector_operation("upsert", handle.owner_id,
                                    {"index_name": handle.index_name, "record_id": record.id,
                                     "role": record.role})

    async def query(self, handle: IndexHandle, vector: List[float], top_k: int) -> List[QueryMatch]:
        """Top-k matches in the owner's storage. Failures raise RetrievalError."""
        try:
            matches = await self.provider.query(handle.index_name, handle.namespace, vector, top_k)
        except Exception as e:
            raise RetrievalError(
                f"Vector query failed for owner {handle.owner_id}: {e}",
                owner_id=handle.owner_id, operation="query",
            ) from e

        logger.log_vector_operation("query", handle.owner_id,
                                    {"index_name": handle.index_name, "top_k": top_k,
                                     "matches": len(matches)})
        return matches

    async def delete(self, owner_id: str) -> bool:
        """
        Delete the owner's dedicated index.

        Returns True if a dedicated index was deleted, False in namespace mode.
        The cached handle is cleared either way. A creation still in flight
        for the owner is waited for first, so it cannot outlive the teardown.
        """
        self._generations[owner_id] = self._generations.get(owner_id, 0) + 1
        self._handles.pop(owner_id, None)
        index_name = dedicated_index_name(owner_id)

        await self.inflight.join(index_name)
        self._handles.pop(owner_id, None)

        if not await self.index_exists(index_name):
            logger.log_storage_operation("delete", owner_id, index_name, "skipped",
                                         {"reason": "namespace mode"})
            return False

        try:
            await self.provider.delete_index(index_name)
        except IndexNotFoundError:
            return False

        logger.log_storage_operation("delete", owner_id, index_name, "success")
        return True

    async def storage_exists(self, owner_id: str) -> StorageStatus:
        """Whether the owner has a dedicated index, and the mode in effect."""
        index_name = dedicated_index_name(owner_id)
        exists = await self.index_exists(index_name)
        mode = IndexMode.DEDICATED if exists else IndexMode.NAMESPACE
        logger.log_storage_operation("exists", owner_id, index_name, "success", {"exists": exists})
        return StorageStatus(exists=exists, mode=mode)
