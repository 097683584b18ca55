"""Per-complexity token utilisation accumulator shared across requests."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from rag_decision.config.policies import BudgetPolicy


@dataclass
class ComplexityUsage:
    count: int = 0
    allocated: int = 0
    used: int = 0

    @property
    def utilization(self) -> float:
        return self.used / self.allocated if self.allocated > 0 else 0.0


@dataclass(frozen=True)
class BudgetRecommendation:
    type: str  # "reduce_budget" or "increase_budget"
    complexity: str
    current_average: float
    suggested_average: int
    reason: str


@dataclass(frozen=True)
class UsageReport:
    recommendations: list[BudgetRecommendation]
    total_queries: int
    total_allocated: int
    total_used: int
    total_tokens_saved: int
    efficiency_ratio: float
    average_utilization: float
    by_complexity: dict[str, ComplexityUsage]


class UsageStatsAccumulator:
    """Running totals only. Every mutation happens under one lock."""

    def __init__(self, policy: BudgetPolicy | None = None) -> None:
        self._policy = policy or BudgetPolicy()
        self._lock = threading.Lock()
        self._by_complexity: dict[str, ComplexityUsage] = {}
        self._utilization_sum = 0.0

    def record_usage(self, complexity: str, allocated: int, used: int) -> None:
        if allocated <= 0:
            return
        used = max(used, 0)
        with self._lock:
            bucket = self._by_complexity.setdefault(complexity, ComplexityUsage())
            bucket.count += 1
            bucket.allocated += allocated
            bucket.used += used
            self._utilization_sum += used / allocated

    def snapshot(self) -> dict[str, ComplexityUsage]:
        with self._lock:
            return {
                k: ComplexityUsage(v.count, v.allocated, v.used)
                for k, v in self._by_complexity.items()
            }

    def recommendations(self) -> UsageReport:
        with self._lock:
            buckets = {
                k: ComplexityUsage(v.count, v.allocated, v.used)
                for k, v in self._by_complexity.items()
            }
            utilization_sum = self._utilization_sum

        policy = self._policy
        recs: list[BudgetRecommendation] = []
        for complexity, usage in sorted(buckets.items()):
            if usage.count <= policy.min_observations:
                continue
            avg_budget = usage.allocated / usage.count
            utilization = usage.utilization
            if utilization < policy.underuse_ratio:
                recs.append(
                    BudgetRecommendation(
                        type="reduce_budget",
                        complexity=complexity,
                        current_average=avg_budget,
                        suggested_average=round(avg_budget * policy.reduce_factor),
                        reason=f"Low utilization ({utilization:.1%}) for {complexity} queries",
                    )
                )
            elif utilization > policy.overuse_ratio:
                recs.append(
                    BudgetRecommendation(
                        type="increase_budget",
                        complexity=complexity,
                        current_average=avg_budget,
                        suggested_average=round(avg_budget * policy.increase_factor),
                        reason=f"High utilization ({utilization:.1%}) for {complexity} queries",
                    )
                )

        total_queries = sum(u.count for u in buckets.values())
        total_allocated = sum(u.allocated for u in buckets.values())
        total_used = sum(u.used for u in buckets.values())
        return UsageReport(
            recommendations=recs,
            total_queries=total_queries,
            total_allocated=total_allocated,
            total_used=total_used,
            total_tokens_saved=max(0, total_allocated - total_used),
            efficiency_ratio=total_used / total_allocated if total_allocated else 0.0,
            average_utilization=utilization_sum / total_queries if total_queries else 0.0,
            by_complexity=buckets,
        )

    def reset(self) -> None:
        with self._lock:
            self._by_complexity.clear()
            self._utilization_sum = 0.0
