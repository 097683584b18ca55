"""Metric recording helpers: one structured event per pipeline decision."""

from __future__ import annotations

from rag_decision.models.domain import (
    BudgetAllocation,
    Classification,
    ConfidenceAssessment,
    SelectionResult,
)
from rag_decision.observability.logger import get_logger

logger = get_logger("metrics")


def log_classification_metrics(trace_id: str, classification: Classification) -> None:
    logger.info(
        "classification_metrics",
        trace_id=trace_id,
        kind=classification.kind,
        complexity=classification.complexity,
        subtype=classification.subtype,
        confidence=classification.confidence,
        max_chunks=classification.max_chunks,
    )


def log_budget_metrics(trace_id: str, allocation: BudgetAllocation) -> None:
    logger.info(
        "budget_metrics",
        trace_id=trace_id,
        total=allocation.total_budget,
        chunks=allocation.chunks,
        base=allocation.base_budget,
        adjustments=allocation.applied_adjustments,
        safety_limited=allocation.safety_limited,
    )


def log_selection_metrics(trace_id: str, selection: SelectionResult) -> None:
    logger.info(
        "selection_metrics",
        trace_id=trace_id,
        evaluated=selection.evaluated_count,
        selected=len(selection.selected_chunks),
        estimated_tokens=selection.estimated_tokens,
        utilization=round(selection.utilization_ratio, 4),
        rejected_threshold=selection.rejected_below_threshold,
        rejected_irrelevant=selection.rejected_irrelevant,
        rejected_source_cap=selection.rejected_source_cap,
        rejected_page_cap=selection.rejected_page_cap,
        rejected_budget=selection.rejected_budget,
    )


def log_confidence_metrics(trace_id: str, assessment: ConfidenceAssessment) -> None:
    logger.info(
        "confidence_metrics",
        trace_id=trace_id,
        overall=round(assessment.overall, 4),
        level=assessment.level,
        quality=assessment.quality.grade,
        components={k: round(v.score, 4) for k, v in assessment.components.items()},
        issues=[i.type for i in assessment.issues],
    )
