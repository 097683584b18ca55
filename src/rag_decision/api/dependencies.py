"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from rag_decision.config.settings import Settings
from rag_decision.pipeline.chat_service import RAGChatService
from rag_decision.storage.sqlite_audit_store import SQLiteAuditStore


def get_chat_service(request: Request) -> RAGChatService:
    return request.app.state.chat_service


def get_audit_store(request: Request) -> SQLiteAuditStore:
    return request.app.state.audit_store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
