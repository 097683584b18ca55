"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from rag_decision.api.dependencies import get_audit_store, get_settings
from rag_decision.config.settings import Settings
from rag_decision.models.schemas import HealthResponse
from rag_decision.storage.sqlite_audit_store import SQLiteAuditStore

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(
    audit_store: SQLiteAuditStore = Depends(get_audit_store),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        llm_provider=settings.llm_provider,
        retrieval_service=settings.retrieval_service_url,
        audit_entries=await audit_store.count_entries(),
    )
