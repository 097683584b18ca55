"""Core domain objects used throughout the decision layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from rag_decision.models.enums import (
    Complexity,
    ConfidenceLevel,
    FaqCategory,
    IssueType,
    QualityGrade,
    QueryKind,
    Severity,
)


# --- Classification -------------------------------------------------------


@dataclass(frozen=True)
class ClassifierContext:
    user_agent: str | None = None
    timestamp: datetime | None = None


@dataclass(frozen=True)
class Classification:
    kind: QueryKind
    confidence: float
    reasoning: str
    token_budget_hint: int
    max_chunks: int
    complexity: Complexity | None = None
    subtype: FaqCategory | None = None
    skip_rag: bool = False
    cacheable: bool = False
    cache_key: str | None = None
    cache_ttl: int = 0
    error: str | None = None


# --- Budget ---------------------------------------------------------------


@dataclass(frozen=True)
class BudgetContext:
    conversation_history: list[dict] | None = None
    expected_confidence: float | None = None
    query_length: int | None = None
    domain: str | None = None
    user_tier: str | None = None
    timestamp: datetime | None = None


@dataclass(frozen=True)
class BudgetAdjustment:
    name: str
    factor: float
    before: float
    after: float


@dataclass(frozen=True)
class BudgetAllocation:
    total_budget: int
    chunks: int
    prompt: int
    response: int
    reserve: int
    complexity: str
    base_budget: int
    adjusted_budget: int
    adjustments: tuple[BudgetAdjustment, ...] = ()
    reasoning: str = ""
    error: str | None = None

    @property
    def applied_adjustments(self) -> list[str]:
        return [a.name for a in self.adjustments]

    @property
    def safety_limited(self) -> bool:
        return self.adjusted_budget != self.total_budget


# --- Retrieval and selection ----------------------------------------------


@dataclass(frozen=True)
class CandidateChunk:
    id: str
    content: str
    similarity_score: float
    quality_score: float
    source_id: str
    estimated_tokens: int = 0
    page: int | None = None
    heading: str | None = None


@dataclass(frozen=True)
class RetrievalOptions:
    max_results: int
    strategy: str
    threshold: float


@dataclass
class RetrievalResult:
    chunks: list[CandidateChunk]
    confidence_score: float = 0.0
    query_analysis: dict = field(default_factory=dict)


@dataclass(frozen=True)
class SelectionConstraints:
    token_budget: int
    max_chunks: int
    complexity: Complexity | None = None


@dataclass(frozen=True)
class SelectionResult:
    selected_chunks: tuple[CandidateChunk, ...]
    estimated_tokens: int
    dropped_count: int
    per_source_counts: dict[str, int]
    evaluated_count: int
    token_budget: int
    rejected_below_threshold: int = 0
    rejected_irrelevant: int = 0
    rejected_source_cap: int = 0
    rejected_page_cap: int = 0
    rejected_budget: int = 0

    @property
    def utilization_ratio(self) -> float:
        if self.token_budget <= 0:
            return 0.0
        return self.estimated_tokens / self.token_budget


# --- Prompt and generation ------------------------------------------------


@dataclass(frozen=True)
class PromptCitation:
    index: int
    source_id: str
    chunk_id: str
    page: int | None = None


@dataclass
class PromptResult:
    system: str
    user: str
    citations: list[PromptCitation]
    estimated_tokens: int = 0


@dataclass(frozen=True)
class GenerationOptions:
    model: str
    max_tokens: int
    temperature: float


@dataclass
class GenerationResult:
    content: str
    prompt_tokens: int
    completion_tokens: int
    finish_reason: str
    model: str = ""

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class CitationCheck:
    text: str
    is_valid: bool
    source_id: str | None = None
    chunk_id: str | None = None
    page: int | None = None
    position: int = -1
    reason: str = ""


@dataclass(frozen=True)
class CitationReport:
    total_found: int
    valid: tuple[CitationCheck, ...]
    invalid: tuple[CitationCheck, ...]

    @property
    def checks(self) -> list[CitationCheck]:
        return [*self.valid, *self.invalid]

    @property
    def coverage(self) -> float:
        return len(self.valid) / self.total_found if self.total_found else 0.0


# --- Query analysis -------------------------------------------------------


@dataclass(frozen=True)
class QueryAnalysis:
    has_question_words: bool
    intent: tuple[str, ...]
    entities: tuple[str, ...]
    keywords: tuple[str, ...]
    word_count: int
    complexity: str  # "simple", "moderate", "complex"


# --- Confidence -----------------------------------------------------------


@dataclass(frozen=True)
class Issue:
    type: IssueType
    severity: Severity
    component: str
    score: float
    description: str = ""


@dataclass(frozen=True)
class RecommendedAction:
    priority: Severity
    action: str
    reason: str


@dataclass(frozen=True)
class ComponentScore:
    score: float
    subfactors: dict[str, float]
    issues: tuple[str, ...] = ()


@dataclass(frozen=True)
class QualityIndicator:
    grade: QualityGrade
    description: str


@dataclass(frozen=True)
class ReliabilityMetrics:
    source_reliability: float
    information_completeness: float
    response_consistency: float
    citation_reliability: float
    overall_reliability: float


@dataclass(frozen=True)
class ConfidenceAssessment:
    overall: float
    level: ConfidenceLevel
    quality: QualityIndicator
    components: dict[str, ComponentScore]
    issues: tuple[Issue, ...]
    recommended_actions: tuple[RecommendedAction, ...]
    reliability: ReliabilityMetrics

    def has_issue(self, issue_type: IssueType) -> bool:
        return any(i.type == issue_type for i in self.issues)


# --- Fallback -------------------------------------------------------------


@dataclass(frozen=True)
class FallbackContext:
    query: str
    original_response: str | None = None
    original_confidence: float = 0.0


@dataclass(frozen=True)
class FallbackResponse:
    strategy: IssueType
    message: str
    confidence: float
    use_knowledge_base: bool
    suggestions: tuple[str, ...] = ()
    clarification_options: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    is_error: bool = False


# --- Request options --------------------------------------------------


@dataclass(frozen=True)
class ChatOptions:
    conversation_history: list[dict] | None = None
    user_agent: str | None = None
    user_tier: str | None = None
    domain: str | None = None
    expected_confidence: float | None = None


# --- Audit ----------------------------------------------------------------


@dataclass
class AuditEntry:
    trace_id: str
    session_id: str
    query: str
    timestamp: datetime
    latency_ms: float
    kind: str
    complexity: str | None
    confidence: float
    confidence_level: str
    strategy: str | None
    tokens_used: int
    issues: list[str]
    spans: list[dict]
    is_error: bool = False
