"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class HistoryTurn(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str


class ChatRequest(BaseModel):
    query: str = Field(min_length=1, max_length=4000)
    session_id: str = ""
    conversation_history: list[HistoryTurn] = Field(default_factory=list)
    user_tier: str | None = None
    domain: str | None = None
    expected_confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class Citation(BaseModel):
    text: str
    source_id: str | None = None
    chunk_id: str | None = None
    page: int | None = None
    is_valid: bool


class Source(BaseModel):
    source_id: str
    page: int | None = None
    heading: str | None = None
    similarity: float


class TokenOptimization(BaseModel):
    budget: int
    chunk_budget: int
    chunks_evaluated: int
    chunks_selected: int
    estimated_chunk_tokens: int
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class QueryClassificationInfo(BaseModel):
    kind: str
    complexity: str | None = None
    subtype: str | None = None
    confidence: float
    reasoning: str
    skip_rag: bool
    cacheable: bool
    cache_key: str | None = None
    cache_ttl: int = 0


class BudgetAllocationInfo(BaseModel):
    total_budget: int
    chunks: int
    prompt: int
    response: int
    reserve: int
    applied_adjustments: list[str]
    reasoning: str


class IssueInfo(BaseModel):
    type: str
    severity: str
    component: str
    score: float


class ChatResponse(BaseModel):
    message: str
    confidence: float
    confidence_level: str
    citations: list[Citation] = Field(default_factory=list)
    sources: list[Source] = Field(default_factory=list)
    token_optimization: TokenOptimization
    query_classification: QueryClassificationInfo
    budget_allocation: BudgetAllocationInfo
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    clarification_options: list[str] = Field(default_factory=list)
    strategy: str | None = None
    issues: list[IssueInfo] = Field(default_factory=list)
    quality: str | None = None
    session_id: str = ""
    trace_id: str = ""
    is_error: bool = False
    processing_time_ms: float = 0.0


class HealthResponse(BaseModel):
    status: str
    llm_provider: str
    retrieval_service: str
    audit_entries: int


class BudgetRecommendationInfo(BaseModel):
    type: str
    complexity: str
    current_average: float
    suggested_average: int
    reason: str


class BudgetStatsResponse(BaseModel):
    recommendations: list[BudgetRecommendationInfo]
    total_queries: int
    total_allocated: int
    total_used: int
    total_tokens_saved: int
    efficiency_ratio: float
    average_utilization: float
