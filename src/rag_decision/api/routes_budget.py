"""Token budget usage statistics and tuning recommendations."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from rag_decision.api.dependencies import get_chat_service
from rag_decision.models.schemas import BudgetRecommendationInfo, BudgetStatsResponse
from rag_decision.pipeline.chat_service import RAGChatService

router = APIRouter()


@router.get("/budget/stats", response_model=BudgetStatsResponse)
async def budget_stats(
    service: RAGChatService = Depends(get_chat_service),
) -> BudgetStatsResponse:
    report = service.budget_manager.recommendations()
    return BudgetStatsResponse(
        recommendations=[
            BudgetRecommendationInfo(
                type=r.type,
                complexity=r.complexity,
                current_average=r.current_average,
                suggested_average=r.suggested_average,
                reason=r.reason,
            )
            for r in report.recommendations
        ],
        total_queries=report.total_queries,
        total_allocated=report.total_allocated,
        total_used=report.total_used,
        total_tokens_saved=report.total_tokens_saved,
        efficiency_ratio=report.efficiency_ratio,
        average_utilization=report.average_utilization,
    )
