"""Token budget allocation: base table, multiplicative adjustments, clamp, split."""

from __future__ import annotations

import math

from rag_decision.budget.usage_stats import UsageReport, UsageStatsAccumulator
from rag_decision.config.policies import BudgetPolicy
from rag_decision.exceptions import BudgetError
from rag_decision.models.domain import (
    BudgetAdjustment,
    BudgetAllocation,
    BudgetContext,
    Classification,
)
from rag_decision.models.enums import Complexity, QueryKind
from rag_decision.observability.logger import get_logger

logger = get_logger("token_budget")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def split_budget(total: int, policy: BudgetPolicy) -> tuple[int, int, int, int]:
    """Split ``total`` into (chunks, prompt, response, reserve); parts always sum to total."""
    chunks = math.floor(total * policy.chunks_ratio)
    prompt = math.floor(total * policy.prompt_ratio)
    response = math.floor(total * policy.response_ratio)
    return chunks, prompt, response, total - chunks - prompt - response


def _adjustment_factors(
    context: BudgetContext, policy: BudgetPolicy
) -> list[tuple[str, float]]:
    """Factors that fire for ``context``, in application order."""
    factors: list[tuple[str, float]] = []

    confidence = context.expected_confidence
    if confidence is not None:
        if confidence > policy.high_confidence:
            factors.append(("high_confidence_reduction", policy.high_confidence_factor))
        elif confidence < policy.low_confidence:
            factors.append(("low_confidence_increase", policy.low_confidence_factor))

    if context.conversation_history is not None:
        if len(context.conversation_history) > 0:
            factors.append(("multi_turn_increase", policy.history_factor))
        else:
            factors.append(("first_turn_reduction", policy.first_turn_factor))

    if context.query_length is not None:
        if context.query_length > policy.long_query_chars:
            factors.append(("long_query_increase", policy.long_query_factor))
        elif context.query_length < policy.short_query_chars:
            factors.append(("short_query_reduction", policy.short_query_factor))

    if context.domain is not None and context.domain in policy.domain_factors:
        factors.append((f"domain_{context.domain}", policy.domain_factors[context.domain]))

    if context.timestamp is not None:
        start, end = policy.business_hours
        if start <= context.timestamp.hour <= end:
            factors.append(("business_hours_increase", policy.business_hours_factor))

    if context.user_tier is not None and context.user_tier in policy.tier_factors:
        factors.append((f"tier_{context.user_tier}", policy.tier_factors[context.user_tier]))

    return factors


def _reasoning(complexity: str, base: int, total: int, adjustments: list[BudgetAdjustment]) -> str:
    reasons = [f"Base budget for {complexity} query: {base} tokens"]
    if adjustments:
        reasons.append("Applied " + ", ".join(a.name for a in adjustments))
    if total != base:
        change = total - base
        direction = "increased" if change > 0 else "decreased"
        reasons.append(f"Final budget {direction} by {abs(change)} tokens")
    return ". ".join(reasons)


def calculate_budget(
    classification: Classification,
    context: BudgetContext | None = None,
    policy: BudgetPolicy | None = None,
) -> BudgetAllocation:
    """Compute the allocation for one request. Pure; never raises."""
    policy = policy or BudgetPolicy()
    context = context or BudgetContext()

    if classification.kind == QueryKind.SYSTEM:
        return BudgetAllocation(
            total_budget=0,
            chunks=0,
            prompt=0,
            response=0,
            reserve=0,
            complexity="system",
            base_budget=0,
            adjusted_budget=0,
            reasoning="System query - no tokens needed",
        )

    try:
        return _calculate(classification, context, policy)
    except Exception as e:
        logger.error("budget_calculation_failed", error=str(e), exc_info=True)
        return _standard_fallback(policy, str(e))


def _calculate(
    classification: Classification, context: BudgetContext, policy: BudgetPolicy
) -> BudgetAllocation:
    complexity = str(classification.complexity or Complexity.STANDARD)
    base = policy.base_budgets.get(complexity)
    if base is None:
        raise BudgetError(f"No base budget configured for complexity '{complexity}'")

    value = float(base)
    adjustments: list[BudgetAdjustment] = []
    for name, factor in _adjustment_factors(context, policy):
        after = value * factor
        adjustments.append(BudgetAdjustment(name=name, factor=factor, before=value, after=after))
        value = after

    adjusted = _round_half_up(value)
    total = min(max(adjusted, policy.minimum), policy.maximum)
    chunks, prompt, response, reserve = split_budget(total, policy)

    return BudgetAllocation(
        total_budget=total,
        chunks=chunks,
        prompt=prompt,
        response=response,
        reserve=reserve,
        complexity=complexity,
        base_budget=base,
        adjusted_budget=adjusted,
        adjustments=tuple(adjustments),
        reasoning=_reasoning(complexity, base, total, adjustments),
    )


def _standard_fallback(policy: BudgetPolicy, error: str) -> BudgetAllocation:
    base = 1500
    total = min(max(base, policy.minimum), policy.maximum)
    chunks, prompt, response, reserve = split_budget(total, policy)
    return BudgetAllocation(
        total_budget=total,
        chunks=chunks,
        prompt=prompt,
        response=response,
        reserve=reserve,
        complexity="standard",
        base_budget=base,
        adjusted_budget=base,
        reasoning="Fallback budget due to error",
        error=error,
    )


class TokenBudgetManager:
    """Budget calculation plus the owned usage-feedback accumulator."""

    def __init__(
        self,
        policy: BudgetPolicy | None = None,
        stats: UsageStatsAccumulator | None = None,
    ) -> None:
        self.policy = policy or BudgetPolicy()
        self.stats = stats or UsageStatsAccumulator(self.policy)

    def calculate_budget(
        self, classification: Classification, context: BudgetContext | None = None
    ) -> BudgetAllocation:
        allocation = calculate_budget(classification, context, self.policy)
        logger.debug(
            "budget_calculated",
            total=allocation.total_budget,
            complexity=allocation.complexity,
            adjustments=allocation.applied_adjustments,
        )
        return allocation

    def record_usage(self, complexity: str, allocated: int, used: int) -> None:
        self.stats.record_usage(complexity, allocated, used)

    def recommendations(self) -> UsageReport:
        return self.stats.recommendations()

    def reset(self) -> None:
        self.stats.reset()
