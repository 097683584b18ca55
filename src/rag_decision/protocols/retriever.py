"""Protocol for the remote retrieval collaborator."""

from __future__ import annotations

from typing import Protocol

from rag_decision.models.domain import RetrievalOptions, RetrievalResult


class Retriever(Protocol):
    async def retrieve(
        self,
        query: str,
        conversation_context: list[dict],
        options: RetrievalOptions,
    ) -> RetrievalResult: ...
