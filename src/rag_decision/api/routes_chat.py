"""Chat endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header

from rag_decision.api.dependencies import get_chat_service
from rag_decision.models.domain import ChatOptions
from rag_decision.models.schemas import ChatRequest, ChatResponse
from rag_decision.pipeline.chat_service import RAGChatService

router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    service: RAGChatService = Depends(get_chat_service),
    user_agent: str | None = Header(default=None),
) -> ChatResponse:
    options = ChatOptions(
        conversation_history=[turn.model_dump() for turn in request.conversation_history],
        user_agent=user_agent,
        user_tier=request.user_tier,
        domain=request.domain,
        expected_confidence=request.expected_confidence,
    )
    return await service.generate_response(request.query, request.session_id, options)
