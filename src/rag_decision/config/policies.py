"""Immutable pattern and weight tables passed into the pure decision functions."""

from __future__ import annotations

from dataclasses import dataclass, field

from rag_decision.config.settings import Settings
from rag_decision.exceptions import ConfigurationError

WEIGHT_TOLERANCE = 1e-6

DOMAIN_TERMS: tuple[str, ...] = (
    "fund",
    "portfolio",
    "nav",
    "investment",
    "asset",
    "security",
    "compliance",
    "audit",
    "rollforward",
    "hierarchy",
    "valuation",
    "performance",
    "risk",
    "allocation",
    "manager",
)


@dataclass(frozen=True)
class ClassifierPatterns:
    system_exact: frozenset[str] = frozenset({"ping", "pong", "alive", "ready", "ok", "up"})
    system_keywords: tuple[str, ...] = (
        "health check",
        "health test",
        "health status",
        "system status",
        "system check",
        "system test",
        "service test",
        "service status",
        "service check",
        "ping",
        "pong",
        "uptime",
        "alive",
        "ready",
        "readiness",
        "liveness",
        "probe",
    )
    system_session_fragments: tuple[str, ...] = (
        "health-test",
        "health-check",
        "health_test",
        "health_check",
        "system-test",
        "system-check",
        "system_test",
        "system_check",
        "status-test",
        "status-check",
        "status_test",
        "status_check",
        "monitor-",
        "monitoring-",
        "uptime-",
        "probe-",
        "health-session",
        "system-session",
        "monitor-session",
    )
    monitoring_user_agents: tuple[str, ...] = (
        "monitoring",
        "uptime",
        "health-check",
        "pingdom",
        "newrelic",
        "datadog",
        "nagios",
        "zabbix",
        "prometheus",
        "grafana",
        "statuspage",
    )
    system_short_words: frozenset[str] = frozenset(
        {"ping", "pong", "test", "check", "status", "health", "up", "ok"}
    )
    system_short_max_chars: int = 6

    greetings: tuple[str, ...] = (
        "hello",
        "hi",
        "hey",
        "good morning",
        "good afternoon",
        "good evening",
        "how are you",
        "what's up",
    )
    simple_starters: tuple[str, ...] = (
        "what is",
        "what are",
        "how to",
        "can you",
        "do you",
        "are you",
        "will you",
        "help me",
    )
    simple_starter_max_words: int = 8
    common_topics: tuple[str, ...] = (
        "fund creation",
        "create fund",
        "new fund",
        "portfolio management",
        "asset allocation",
        "risk management",
        "compliance",
    )
    domain_terms: tuple[str, ...] = DOMAIN_TERMS

    complex_keywords: tuple[str, ...] = ("analyze", "compare", "evaluate", "calculate", "detailed")
    standard_keywords: tuple[str, ...] = ("explain", "describe", "tell me about", "show me")
    simple_patterns: tuple[str, ...] = ("what is", "how to", "can you", "do you")
    complex_min_words: int = 21
    standard_min_words: int = 16
    simple_max_words: int = 5

    def stats(self) -> dict[str, int]:
        return {
            "system_exact": len(self.system_exact),
            "system_keywords": len(self.system_keywords),
            "system_session_fragments": len(self.system_session_fragments),
            "monitoring_user_agents": len(self.monitoring_user_agents),
            "greetings": len(self.greetings),
            "simple_starters": len(self.simple_starters),
            "common_topics": len(self.common_topics),
        }


@dataclass(frozen=True)
class BudgetPolicy:
    base_budgets: dict[str, int] = field(
        default_factory=lambda: {"simple": 800, "standard": 1500, "complex": 2500, "system": 0}
    )
    minimum: int = 200
    maximum: int = 4000
    chunks_ratio: float = 0.60
    prompt_ratio: float = 0.25
    response_ratio: float = 0.15

    high_confidence: float = 0.8
    high_confidence_factor: float = 0.8
    low_confidence: float = 0.4
    low_confidence_factor: float = 1.3
    history_factor: float = 1.2
    first_turn_factor: float = 0.9
    long_query_chars: int = 100
    long_query_factor: float = 1.2
    short_query_chars: int = 20
    short_query_factor: float = 0.8
    domain_factors: dict[str, float] = field(
        default_factory=lambda: {"technical": 1.3, "simple_faq": 0.7}
    )
    business_hours: tuple[int, int] = (9, 17)
    business_hours_factor: float = 1.1
    tier_factors: dict[str, float] = field(
        default_factory=lambda: {"premium": 1.2, "trial": 0.8}
    )

    # Usage recommendations
    min_observations: int = 10
    underuse_ratio: float = 0.6
    overuse_ratio: float = 0.9
    reduce_factor: float = 0.8
    increase_factor: float = 1.2

    def __post_init__(self) -> None:
        if not 0 <= self.minimum <= self.maximum:
            raise ConfigurationError(
                f"Invalid budget bounds: minimum={self.minimum} maximum={self.maximum}"
            )
        ratio_sum = self.chunks_ratio + self.prompt_ratio + self.response_ratio
        if ratio_sum > 1.0 + WEIGHT_TOLERANCE:
            raise ConfigurationError(f"Budget split ratios exceed 1.0: {ratio_sum}")

    @classmethod
    def from_settings(cls, settings: Settings) -> BudgetPolicy:
        return cls(
            minimum=settings.budget_minimum,
            maximum=settings.budget_maximum,
            business_hours=(settings.business_hours_start, settings.business_hours_end),
        )


@dataclass(frozen=True)
class SelectionPolicy:
    min_similarity: float = 0.3
    min_quality: float = 0.4
    max_per_source: int = 3
    max_per_page: int = 2
    min_content_chars: int = 50
    min_keyword_ratio: float = 0.1
    min_trim_tokens: int = 100
    similarity_weight: float = 0.5
    quality_weight: float = 0.3
    keyword_weight: float = 0.2

    @classmethod
    def from_settings(cls, settings: Settings) -> SelectionPolicy:
        return cls(
            min_similarity=settings.selection_min_similarity,
            min_quality=settings.selection_min_quality,
            max_per_source=settings.selection_max_per_source,
            max_per_page=settings.selection_max_per_page,
            min_content_chars=settings.selection_min_content_chars,
            min_keyword_ratio=settings.selection_min_keyword_ratio,
            min_trim_tokens=settings.selection_min_trim_tokens,
            similarity_weight=settings.selection_w_similarity,
            quality_weight=settings.selection_w_quality,
            keyword_weight=settings.selection_w_keyword,
        )


def _check_weights(name: str, weights: dict[str, float]) -> None:
    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ConfigurationError(f"{name} weights must sum to 1.0, got {total:.6f}")


@dataclass(frozen=True)
class ConfidencePolicy:
    component_weights: dict[str, float] = field(
        default_factory=lambda: {
            "retrieval": 0.35,
            "content": 0.25,
            "context": 0.20,
            "generation": 0.20,
        }
    )
    retrieval_weights: dict[str, float] = field(
        default_factory=lambda: {
            "top_similarity": 0.4,
            "average_similarity": 0.2,
            "chunk_count": 0.15,
            "source_quality": 0.15,
            "diversity": 0.1,
        }
    )
    content_weights: dict[str, float] = field(
        default_factory=lambda: {
            "citation_presence": 0.3,
            "citation_accuracy": 0.3,
            "response_completeness": 0.2,
            "coherence": 0.2,
        }
    )
    context_weights: dict[str, float] = field(
        default_factory=lambda: {
            "query_clarity": 0.3,
            "query_complexity": 0.2,
            "domain_relevance": 0.3,
            "conversation_context": 0.2,
        }
    )
    generation_weights: dict[str, float] = field(
        default_factory=lambda: {
            "model_confidence": 0.4,
            "response_length": 0.2,
            "finish_reason": 0.2,
            "token_utilization": 0.2,
        }
    )

    high_threshold: float = 0.8
    medium_threshold: float = 0.6
    low_threshold: float = 0.4
    minimum_threshold: float = 0.2

    quality_grades: tuple[tuple[str, float, str], ...] = (
        ("excellent", 0.9, "Highly confident, comprehensive answer with strong citations"),
        ("good", 0.75, "Good confidence with reliable sources and citations"),
        ("acceptable", 0.6, "Acceptable answer with some uncertainty or limited sources"),
        ("uncertain", 0.4, "Uncertain answer, may require clarification or additional sources"),
        ("poor", 0.2, "Poor confidence, significant limitations in available information"),
        ("unreliable", 0.0, "Unreliable answer, recommend seeking alternative sources"),
    )

    target_chunk_count: int = 5
    target_source_count: int = 3
    target_citation_count: int = 3
    target_response_chars: int = 500
    citation_accuracy_floor: float = 0.7
    query_clarity_floor: float = 0.5
    finish_reason_floor: float = 0.8
    complexity_scores: dict[str, float] = field(
        default_factory=lambda: {"simple": 1.0, "moderate": 0.7, "complex": 0.5}
    )
    premium_model_markers: tuple[str, ...] = (
        "gpt-4",
        "gpt-5",
        "gemini-2.5-pro",
        "gemini-1.5-pro",
    )
    domain_terms: tuple[str, ...] = DOMAIN_TERMS

    def __post_init__(self) -> None:
        _check_weights("Component", self.component_weights)
        _check_weights("Retrieval", self.retrieval_weights)
        _check_weights("Content", self.content_weights)
        _check_weights("Context", self.context_weights)
        _check_weights("Generation", self.generation_weights)
        thresholds = (
            self.high_threshold,
            self.medium_threshold,
            self.low_threshold,
            self.minimum_threshold,
        )
        if list(thresholds) != sorted(thresholds, reverse=True):
            raise ConfigurationError(f"Confidence thresholds must be descending: {thresholds}")

    @classmethod
    def from_settings(cls, settings: Settings) -> ConfidencePolicy:
        return cls(
            component_weights={
                "retrieval": settings.conf_w_retrieval,
                "content": settings.conf_w_content,
                "context": settings.conf_w_context,
                "generation": settings.conf_w_generation,
            },
            high_threshold=settings.confidence_high_threshold,
            medium_threshold=settings.confidence_medium_threshold,
            low_threshold=settings.confidence_low_threshold,
            minimum_threshold=settings.confidence_minimum_threshold,
        )
