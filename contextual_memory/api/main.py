"""
HTTP API over the contextual memory service.
No authentication: callers are trusted services inside the deployment.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ..core.config import VECTOR_PROVIDER, VERSION, debug_enabled, validate_config
from ..core.db import health_check
from ..core.errors import PersistenceError, ProvisioningError
from ..core.memory_service import ContextualMemoryService
from ..core.schema import ContextualMetadataProfile
from ..util.logging import logger
from .schemas import (
    ChatRequest,
    ContextMessage,
    ContextQueryRequest,
    ContextQueryResponse,
    ErrorResponse,
    HealthResponse,
    ProfileListResponse,
    ProfileModel,
    ProfileResponse,
    ProfileStatsResponse,
    RecordTurnRequest,
    RecordTurnResponse,
    StorageRequest,
    StorageResponse,
    StorageStatusResponse,
)

_service: Optional[ContextualMemoryService] = None


def get_memory_service() -> ContextualMemoryService:
    """FastAPI dependency returning the process-wide service."""
    global _service
    if _service is None:
        _service = ContextualMemoryService.from_config()
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    for issue in validate_config():
        logger.warning(f"Configuration issue: {issue}")
    yield
    # Let in-flight enrichments finish before the loop goes away
    if _service is not None:
        await _service.scheduler.wait_idle()


app = FastAPI(
    title="Contextual Memory API",
    version=VERSION,
    description="Per-owner semantic memory and behavioural profiles for LLM chat",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan,
)


def _profile_model(profile: ContextualMetadataProfile) -> ProfileModel:
    return ProfileModel(**profile.to_dict())


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error_type="PERSISTENCE_ERROR",
            message=str(exc),
            details={"owner_id": exc.owner_id, "operation": exc.operation},
        ).model_dump(),
    )


@app.exception_handler(ProvisioningError)
async def provisioning_error_handler(request: Request, exc: ProvisioningError):
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(
            error_type="PROVISIONING_ERROR",
            message=str(exc),
            details={"owner_id": exc.owner_id, "index_name": exc.index_name, "retryable": True},
        ).model_dump(),
    )


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(service: ContextualMemoryService = Depends(get_memory_service)):
    """Check system health."""
    db_health = health_check(service.profile_store.db_path)
    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        vector_provider=VECTOR_PROVIDER,
        config_issues=validate_config(),
    )


@app.post("/context/query", response_model=ContextQueryResponse)
async def query_context_endpoint(req: ContextQueryRequest,
                                 service: ContextualMemoryService = Depends(get_memory_service)):
    messages = await service.query_context(req.owner_id, req.text, req.top_k)
    return ContextQueryResponse(messages=[
        ContextMessage(id=m.id, role=m.role, text=m.text, timestamp=m.timestamp, score=m.score)
        for m in messages
    ])


@app.post("/turns", response_model=RecordTurnResponse)
async def record_turn_endpoint(req: RecordTurnRequest,
                               service: ContextualMemoryService = Depends(get_memory_service)):
    task = await service.record_turn(req.owner_id, req.user_text, req.assistant_text,
                                     timestamp=req.timestamp, dedicated=req.dedicated)
    return RecordTurnResponse(success=True, enrichment_scheduled=task is not None)


@app.post("/chat")
async def chat_endpoint(req: ChatRequest,
                        service: ContextualMemoryService = Depends(get_memory_service)):
    """Stream the assistant reply as plain text."""
    history = [m.model_dump() for m in req.history]
    return StreamingResponse(
        service.chat_turn(req.owner_id, req.message, history=history, top_k=req.top_k),
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache"},
    )


@app.get("/profile/{owner_id}", response_model=ProfileResponse)
async def get_profile_endpoint(owner_id: str,
                               service: ContextualMemoryService = Depends(get_memory_service)):
    profile = await service.get_profile(owner_id)
    if profile is None:
        return ProfileResponse(message="No metadata found for owner", metadata=None)
    return ProfileResponse(message="Owner metadata retrieved successfully",
                           metadata=_profile_model(profile))


@app.delete("/profile/{owner_id}")
async def delete_profile_endpoint(owner_id: str,
                                  service: ContextualMemoryService = Depends(get_memory_service)):
    if not await service.delete_profile(owner_id):
        raise HTTPException(status_code=404, detail="No metadata found for owner")
    return {"message": "Owner metadata deleted successfully"}


@app.post("/storage/{owner_id}", response_model=StorageResponse)
async def provision_storage_endpoint(owner_id: str, req: StorageRequest,
                                     service: ContextualMemoryService = Depends(get_memory_service)):
    success = await service.provision_storage(owner_id, req.dedicated)
    mode = "dedicated" if req.dedicated else "namespace"
    return StorageResponse(success=success, owner_id=owner_id, mode=mode,
                           message="Owner storage set up successfully")


@app.get("/storage/{owner_id}", response_model=StorageStatusResponse)
async def storage_status_endpoint(owner_id: str,
                                  service: ContextualMemoryService = Depends(get_memory_service)):
    status = await service.storage_exists(owner_id)
    return StorageStatusResponse(owner_id=owner_id, exists=status.exists, mode=status.mode.value)


@app.delete("/storage/{owner_id}", response_model=StorageResponse)
async def teardown_storage_endpoint(owner_id: str,
                                    service: ContextualMemoryService = Depends(get_memory_service)):
    deleted = await service.teardown_storage(owner_id)
    return StorageResponse(
        success=deleted,
        owner_id=owner_id,
        mode="namespace",
        message="Index deleted successfully" if deleted else "No dedicated index to delete",
    )


@app.get("/admin/profiles", response_model=ProfileListResponse)
async def list_profiles_endpoint(service: ContextualMemoryService = Depends(get_memory_service)):
    profiles = await service.list_profiles()
    return ProfileListResponse(profiles=[_profile_model(p) for p in profiles])


@app.get("/admin/stats", response_model=ProfileStatsResponse)
async def profile_stats_endpoint(service: ContextualMemoryService = Depends(get_memory_service)):
    return ProfileStatsResponse(**await service.get_profile_stats())
