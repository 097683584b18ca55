"""Shared test fixtures."""

from __future__ import annotations

import tempfile
from datetime import datetime
from pathlib import Path

import pytest

from rag_decision.budget.token_budget import TokenBudgetManager
from rag_decision.config.settings import Settings
from rag_decision.fallback.dispatcher import FallbackDispatcher
from rag_decision.generation.prompt_assembler import PromptAssembler
from rag_decision.models.domain import (
    CandidateChunk,
    GenerationOptions,
    GenerationResult,
    PromptResult,
    RetrievalOptions,
    RetrievalResult,
)
from rag_decision.pipeline.chat_service import RAGChatService
from rag_decision.query.classifier import QueryClassifier
from rag_decision.retrieval.chunk_selector import ChunkSelector
from rag_decision.scoring.confidence import ConfidenceAssessor
from rag_decision.storage.sqlite_audit_store import SQLiteAuditStore

# Outside business hours so the time-of-day factor never fires.
NIGHT = datetime(2024, 3, 5, 3, 0, 0)

GOOD_ANSWER = (
    "The NAV of a fund is calculated by valuing every security held in the portfolio at its "
    "closing market price and adding accrued income [1]. Liabilities such as management fees "
    "and pending redemptions are then subtracted from total assets [2]. Therefore the net "
    "figure is divided by the number of outstanding shares to obtain the per-share value. "
    "However, illiquid positions require a fair valuation committee to approve prices before "
    "publication [3]. Daily reconciliation against the custodian confirms holdings, and any "
    "break above tolerance must be escalated to operations before the figure is released."
)


@pytest.fixture
def settings():
    """Test settings with temp paths and no backoff between retries."""
    tmp = tempfile.mkdtemp()
    return Settings(
        openai_api_key="test-key",
        google_api_key="test-key",
        sqlite_audit_db_path=str(Path(tmp) / "test_audit.db"),
        generation_max_retries=2,
        generation_backoff_base_s=0.0,
        request_timeout_s=5.0,
        log_json=False,
    )


def make_chunk(
    chunk_id: str,
    source_id: str = "guide-a",
    similarity: float = 0.9,
    quality: float = 0.9,
    tokens: int = 100,
    page: int | None = None,
    content: str | None = None,
) -> CandidateChunk:
    return CandidateChunk(
        id=chunk_id,
        content=content
        or f"Chunk {chunk_id} explains how fund NAV and portfolio valuation are reconciled daily.",
        similarity_score=similarity,
        quality_score=quality,
        source_id=source_id,
        estimated_tokens=tokens,
        page=page,
    )


@pytest.fixture
def sample_chunks():
    """Five strong chunks spread over three sources."""
    return [
        make_chunk("c1", "guide-a", 0.92, 0.9, page=4),
        make_chunk("c2", "guide-b", 0.90, 0.9, page=7),
        make_chunk("c3", "guide-c", 0.88, 0.85, page=2),
        make_chunk("c4", "guide-a", 0.85, 0.9, page=5),
        make_chunk("c5", "guide-b", 0.83, 0.8, page=9),
    ]


class FakeRetriever:
    def __init__(self, chunks=None, error: Exception | None = None) -> None:
        self.chunks = list(chunks or [])
        self.error = error
        self.calls: list[tuple[str, list, RetrievalOptions]] = []

    async def retrieve(self, query, conversation_context, options) -> RetrievalResult:
        self.calls.append((query, conversation_context, options))
        if self.error is not None:
            raise self.error
        return RetrievalResult(chunks=list(self.chunks), confidence_score=0.8)


class FakeGenerator:
    """Returns queued results in order; exceptions in the queue are raised."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls: list[tuple[PromptResult, GenerationOptions]] = []

    async def generate(self, prompt, options) -> GenerationResult:
        self.calls.append((prompt, options))
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeAuditStore:
    def __init__(self, error: Exception | None = None) -> None:
        self.entries = []
        self.error = error

    async def save_entry(self, entry) -> None:
        if self.error is not None:
            raise self.error
        self.entries.append(entry)


def generation_result(
    content: str = GOOD_ANSWER,
    finish_reason: str = "stop",
    prompt_tokens: int = 800,
    completion_tokens: int = 200,
) -> GenerationResult:
    return GenerationResult(
        content=content,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        finish_reason=finish_reason,
        model="gpt-4o",
    )


@pytest.fixture
def build_service(settings):
    """Factory for a chat service wired with fakes."""

    def _build(retriever=None, generator=None, audit_store=None, **overrides) -> RAGChatService:
        parts = dict(
            classifier=QueryClassifier(),
            budget_manager=TokenBudgetManager(),
            selector=ChunkSelector(),
            assessor=ConfidenceAssessor(),
            dispatcher=FallbackDispatcher(),
            retriever=retriever,
            prompt_builder=PromptAssembler(),
            generator=generator,
            audit_store=audit_store,
            settings=settings,
            clock=lambda: NIGHT,
        )
        parts.update(overrides)
        return RAGChatService(**parts)

    return _build


@pytest.fixture
async def audit_store():
    tmp = tempfile.mkdtemp()
    store = SQLiteAuditStore(str(Path(tmp) / "nested" / "audit.db"))
    await store.initialize()
    return store
