"""Answer confidence: four weighted components, discrete level, quality grade, issues.

overall = w_r*retrieval + w_c*content + w_x*context + w_g*generation, clamped to [0, 1].
Each component is itself a weighted sum of sub-factors already normalised to [0, 1].
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import numpy as np

from rag_decision.config.policies import ConfidencePolicy
from rag_decision.exceptions import ConfidenceComputationError
from rag_decision.models.domain import (
    ComponentScore,
    ConfidenceAssessment,
    Issue,
    QualityIndicator,
    RecommendedAction,
    ReliabilityMetrics,
)
from rag_decision.models.enums import ConfidenceLevel, IssueType, QualityGrade, Severity
from rag_decision.models.signals import (
    ContentSignals,
    ContextSignals,
    GenerationSignals,
    RetrievalSignals,
)
from rag_decision.observability.logger import get_logger
from rag_decision.query.analysis import analyze_query
from rag_decision.scoring.text_signals import coherence_score, domain_relevance, query_clarity

logger = get_logger("confidence")


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def weighted_score(subfactors: dict[str, float], weights: dict[str, float]) -> float:
    return _clamp(sum(weights[name] * _clamp(subfactors.get(name, 0.0)) for name in weights))


# --- Sub-factors ------------------------------------------------------------


def retrieval_subfactors(signals: RetrievalSignals, policy: ConfidencePolicy) -> dict[str, float]:
    if signals.chunks is None:
        return {
            "top_similarity": 0.0,
            "average_similarity": 0.0,
            "chunk_count": 0.0,
            "source_quality": 0.5,
            "diversity": 0.0,
        }

    chunks = signals.chunks
    similarities = [_clamp(c.similarity) for c in chunks if c.similarity is not None]
    qualities = [_clamp(c.quality) if c.quality is not None else 0.5 for c in chunks]
    sources = {c.source_id for c in chunks if c.source_id}

    return {
        "top_similarity": max(similarities) if similarities else 0.0,
        "average_similarity": float(np.mean(similarities)) if similarities else 0.0,
        "chunk_count": min(len(chunks) / policy.target_chunk_count, 1.0),
        "source_quality": float(np.mean(qualities)) if qualities else 0.0,
        "diversity": min(len(sources) / policy.target_source_count, 1.0),
    }


def content_subfactors(signals: ContentSignals, policy: ConfidencePolicy) -> dict[str, float]:
    found = signals.citations_found
    return {
        "citation_presence": min(found / policy.target_citation_count, 1.0),
        "citation_accuracy": signals.citations_valid / found if found else 0.0,
        "response_completeness": min(len(signals.response) / policy.target_response_chars, 1.0),
        "coherence": coherence_score(signals.response),
    }


def context_subfactors(signals: ContextSignals, policy: ConfidencePolicy) -> dict[str, float]:
    analysis = signals.analysis
    if analysis is None and signals.query:
        analysis = analyze_query(signals.query, policy.domain_terms)
    complexity = analysis.complexity if analysis is not None else ""
    return {
        "query_clarity": query_clarity(analysis),
        "query_complexity": policy.complexity_scores.get(complexity, 0.5),
        "domain_relevance": domain_relevance(analysis, policy.domain_terms),
        "conversation_context": 0.8 if signals.has_history else 0.5,
    }


def _model_confidence(model: str, temperature: float, policy: ConfidencePolicy) -> float:
    confidence = 0.7
    if any(marker in model.lower() for marker in policy.premium_model_markers):
        confidence += 0.2
    confidence += (1 - temperature) * 0.1
    return min(confidence, 1.0)


def _token_utilization(prompt_tokens: int, completion_tokens: int) -> float:
    if prompt_tokens + completion_tokens == 0:
        return 0.5
    if prompt_tokens == 0:
        return 0.6
    ratio = completion_tokens / prompt_tokens
    if 0.1 < ratio < 2:
        return 1.0
    if 0.05 < ratio < 3:
        return 0.8
    return 0.6


def _finish_reason_score(finish_reason: str) -> float:
    if finish_reason == "stop":
        return 1.0
    if finish_reason == "length":
        return 0.7
    return 0.5


def generation_subfactors(signals: GenerationSignals, policy: ConfidencePolicy) -> dict[str, float]:
    return {
        "model_confidence": _model_confidence(signals.model, signals.temperature, policy),
        "response_length": 1.0 if 50 < signals.response_length < 2000 else 0.7,
        "finish_reason": _finish_reason_score(signals.finish_reason),
        "token_utilization": _token_utilization(signals.prompt_tokens, signals.completion_tokens),
    }


# --- Component text issues -------------------------------------------------


def _retrieval_notes(details: dict[str, float], signals: RetrievalSignals) -> list[str]:
    if not signals.supplied:
        return []
    notes = []
    if not signals.chunks:
        notes.append("No relevant sources found")
    elif details["top_similarity"] < 0.7:
        notes.append("Low similarity scores for retrieved sources")
    if details["diversity"] < 0.3:
        notes.append("Limited source diversity")
    if details["source_quality"] < 0.6:
        notes.append("Low quality source documents")
    return notes


def _content_notes(details: dict[str, float], signals: ContentSignals) -> list[str]:
    if not signals.supplied:
        return []
    notes = []
    if details["citation_presence"] < 0.3:
        notes.append("Insufficient citations in response")
    if details["citation_accuracy"] < 0.7:
        notes.append("Inaccurate or invalid citations")
    if details["response_completeness"] < 0.5:
        notes.append("Response appears incomplete")
    if details["coherence"] < 0.6:
        notes.append("Response lacks coherence or structure")
    return notes


def _context_notes(details: dict[str, float], signals: ContextSignals) -> list[str]:
    if not signals.supplied:
        return []
    notes = []
    if details["query_clarity"] < 0.5:
        notes.append("Query is unclear or ambiguous")
    if details["domain_relevance"] < 0.4:
        notes.append("Query may be outside the supported domain")
    if details["query_complexity"] < 0.6:
        notes.append("Query is highly complex and may require clarification")
    return notes


def _generation_notes(details: dict[str, float], signals: GenerationSignals) -> list[str]:
    if not signals.supplied:
        return []
    notes = []
    if details["finish_reason"] < 0.8:
        notes.append("Response generation was interrupted or incomplete")
    if details["model_confidence"] < 0.7:
        notes.append("Model confidence is below optimal levels")
    return notes


# --- Assessment --------------------------------------------------------------


def confidence_level(overall: float, policy: ConfidencePolicy) -> ConfidenceLevel:
    if overall >= policy.high_threshold:
        return ConfidenceLevel.HIGH
    if overall >= policy.medium_threshold:
        return ConfidenceLevel.MEDIUM
    if overall >= policy.low_threshold:
        return ConfidenceLevel.LOW
    return ConfidenceLevel.VERY_LOW


def quality_indicator(overall: float, policy: ConfidencePolicy) -> QualityIndicator:
    for grade, minimum, description in policy.quality_grades:
        if overall >= minimum:
            return QualityIndicator(grade=QualityGrade(grade), description=description)
    _, _, description = policy.quality_grades[-1]
    return QualityIndicator(grade=QualityGrade.UNRELIABLE, description=description)


def _evaluate(
    name: str,
    subfactor_fn: Callable[[Any, ConfidencePolicy], dict[str, float]],
    notes_fn: Callable[[dict[str, float], Any], list[str]],
    signals: Any,
    policy: ConfidencePolicy,
) -> tuple[dict[str, float], list[str]]:
    try:
        details = subfactor_fn(signals, policy)
        return details, notes_fn(details, signals)
    except (TypeError, ValueError, AttributeError, ZeroDivisionError) as e:
        raise ConfidenceComputationError(f"{name} component failed: {e}") from e


def _score_component(
    name: str,
    subfactor_fn: Callable[[Any, ConfidencePolicy], dict[str, float]],
    notes_fn: Callable[[dict[str, float], Any], list[str]],
    signals: Any,
    neutral: Any,
    weights: dict[str, float],
    policy: ConfidencePolicy,
) -> tuple[ComponentScore, Any]:
    """Score one component; unusable input is replaced by the neutral signals."""
    try:
        details, notes = _evaluate(name, subfactor_fn, notes_fn, signals, policy)
    except ConfidenceComputationError as e:
        logger.warning("confidence_component_defaulted", component=name, error=str(e))
        signals = neutral
        details = subfactor_fn(signals, policy)
        notes = []
    score = weighted_score(details, weights)
    return ComponentScore(score=score, subfactors=details, issues=tuple(notes)), signals


def _typed_issues(
    components: dict[str, ComponentScore],
    overall: float,
    retrieval: RetrievalSignals,
    content: ContentSignals,
    context: ContextSignals,
    generation: GenerationSignals,
    policy: ConfidencePolicy,
) -> list[Issue]:
    issues: list[Issue] = []

    if retrieval.supplied:
        if not retrieval.chunks:
            issues.append(
                Issue(
                    type=IssueType.NO_RELEVANT_SOURCES,
                    severity=Severity.HIGH,
                    component="retrieval",
                    score=0.0,
                    description="No sources were found for the query",
                )
            )
        score = components["retrieval"].score
        if score < policy.medium_threshold:
            issues.append(
                Issue(
                    type=IssueType.LOW_RETRIEVAL_CONFIDENCE,
                    severity=Severity.MEDIUM,
                    component="retrieval",
                    score=score,
                    description="Retrieved sources have low relevance to the query",
                )
            )

    if content.supplied:
        accuracy = components["content"].subfactors["citation_accuracy"]
        if accuracy < policy.citation_accuracy_floor:
            issues.append(
                Issue(
                    type=IssueType.POOR_CITATION_QUALITY,
                    severity=Severity.MEDIUM,
                    component="content",
                    score=accuracy,
                    description="Citations are missing or inaccurate",
                )
            )

    if context.supplied:
        clarity = components["context"].subfactors["query_clarity"]
        if clarity < policy.query_clarity_floor:
            issues.append(
                Issue(
                    type=IssueType.QUERY_AMBIGUITY,
                    severity=Severity.LOW,
                    component="context",
                    score=clarity,
                    description="Query is unclear or ambiguous",
                )
            )

    if generation.supplied:
        finish = components["generation"].subfactors["finish_reason"]
        if finish < policy.finish_reason_floor:
            issues.append(
                Issue(
                    type=IssueType.INCOMPLETE_RESPONSE,
                    severity=Severity.MEDIUM,
                    component="generation",
                    score=finish,
                    description="Response may be incomplete or truncated",
                )
            )

    if overall < policy.minimum_threshold:
        issues.append(
            Issue(
                type=IssueType.SYSTEM_ERROR,
                severity=Severity.HIGH,
                component="overall",
                score=overall,
                description="Overall confidence is critically low",
            )
        )

    return issues


def recommended_actions(
    issues: Iterable[Issue], overall: float, policy: ConfidencePolicy
) -> list[RecommendedAction]:
    actions: list[RecommendedAction] = []
    if overall < policy.minimum_threshold:
        actions.append(
            RecommendedAction(
                priority=Severity.HIGH,
                action="Consider rephrasing the query or seeking alternative sources",
                reason="Confidence is critically low",
            )
        )

    seen: set[IssueType] = set()
    for issue in issues:
        if issue.type in seen:
            continue
        seen.add(issue.type)
        match issue.type:
            case IssueType.LOW_RETRIEVAL_CONFIDENCE:
                actions.append(
                    RecommendedAction(
                        Severity.MEDIUM,
                        "Try using more specific keywords or alternative phrasing",
                        "Improve source relevance",
                    )
                )
            case IssueType.NO_RELEVANT_SOURCES:
                actions.append(
                    RecommendedAction(
                        Severity.HIGH,
                        "Ask about a topic covered by the documentation",
                        "No matching sources were found",
                    )
                )
            case IssueType.POOR_CITATION_QUALITY:
                actions.append(
                    RecommendedAction(
                        Severity.MEDIUM,
                        "Verify information with original source documents",
                        "Citations may be inaccurate",
                    )
                )
            case IssueType.QUERY_AMBIGUITY:
                actions.append(
                    RecommendedAction(
                        Severity.LOW,
                        "Provide more context or clarify the question",
                        "Query interpretation may be uncertain",
                    )
                )
            case IssueType.INCOMPLETE_RESPONSE:
                actions.append(
                    RecommendedAction(
                        Severity.MEDIUM,
                        "Request continuation or ask follow-up questions",
                        "Response may be incomplete",
                    )
                )
            case IssueType.SYSTEM_ERROR:
                pass
    return actions


def reliability_metrics(
    retrieval: RetrievalSignals,
    content: ContentSignals,
    coherence: float,
    policy: ConfidencePolicy,
) -> ReliabilityMetrics:
    source_reliability = 0.0
    if retrieval.chunks:
        qualities = [_clamp(c.quality) if c.quality is not None else 0.5 for c in retrieval.chunks]
        sources = {c.source_id for c in retrieval.chunks if c.source_id}
        diversity = min(len(sources) / policy.target_source_count, 1.0)
        source_reliability = (float(np.mean(qualities)) + diversity) / 2

    completeness = min(
        (len(content.response) / policy.target_response_chars) * 0.7
        + (content.citations_found / policy.target_citation_count) * 0.3,
        1.0,
    )
    citation_accuracy = (
        content.citations_valid / content.citations_found if content.citations_found else 0.0
    )
    consistency = (coherence + citation_accuracy) / 2
    overall = (
        source_reliability * 0.3
        + completeness * 0.25
        + consistency * 0.25
        + citation_accuracy * 0.2
    )
    return ReliabilityMetrics(
        source_reliability=source_reliability,
        information_completeness=completeness,
        response_consistency=consistency,
        citation_reliability=citation_accuracy,
        overall_reliability=_clamp(overall),
    )


def calculate_confidence(
    retrieval: Any = None,
    content: Any = None,
    context: Any = None,
    generation: Any = None,
    policy: ConfidencePolicy | None = None,
    extra_issues: Iterable[Issue] = (),
) -> ConfidenceAssessment:
    """Assess an answer from whatever signals are available. Never raises on bad input."""
    policy = policy or ConfidencePolicy()

    retrieval_score, retrieval_s = _score_component(
        "retrieval",
        retrieval_subfactors,
        _retrieval_notes,
        RetrievalSignals.from_partial(retrieval),
        RetrievalSignals(chunks=None),
        policy.retrieval_weights,
        policy,
    )
    content_score, content_s = _score_component(
        "content",
        content_subfactors,
        _content_notes,
        ContentSignals.from_partial(content),
        ContentSignals.from_partial(None),
        policy.content_weights,
        policy,
    )
    context_score, context_s = _score_component(
        "context",
        context_subfactors,
        _context_notes,
        ContextSignals.from_partial(context),
        ContextSignals.from_partial(None),
        policy.context_weights,
        policy,
    )
    generation_score, generation_s = _score_component(
        "generation",
        generation_subfactors,
        _generation_notes,
        GenerationSignals.from_partial(generation),
        GenerationSignals.from_partial(None),
        policy.generation_weights,
        policy,
    )

    components = {
        "retrieval": retrieval_score,
        "content": content_score,
        "context": context_score,
        "generation": generation_score,
    }
    overall = _clamp(
        sum(policy.component_weights[name] * comp.score for name, comp in components.items())
    )

    issues = _typed_issues(
        components, overall, retrieval_s, content_s, context_s, generation_s, policy
    )
    known = {i.type for i in issues}
    for issue in extra_issues:
        if issue.type not in known:
            known.add(issue.type)
            issues.append(issue)

    return ConfidenceAssessment(
        overall=overall,
        level=confidence_level(overall, policy),
        quality=quality_indicator(overall, policy),
        components=components,
        issues=tuple(issues),
        recommended_actions=tuple(recommended_actions(issues, overall, policy)),
        reliability=reliability_metrics(
            retrieval_s, content_s, content_score.subfactors["coherence"], policy
        ),
    )


class ConfidenceAssessor:
    def __init__(self, policy: ConfidencePolicy | None = None) -> None:
        self.policy = policy or ConfidencePolicy()

    def assess(
        self,
        retrieval: Any = None,
        content: Any = None,
        context: Any = None,
        generation: Any = None,
        extra_issues: Iterable[Issue] = (),
    ) -> ConfidenceAssessment:
        assessment = calculate_confidence(
            retrieval, content, context, generation, self.policy, extra_issues
        )
        logger.debug(
            "confidence_assessed",
            overall=round(assessment.overall, 3),
            level=assessment.level,
            issues=[i.type for i in assessment.issues],
        )
        return assessment
