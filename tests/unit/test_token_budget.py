"""Tests for token budget allocation."""

from datetime import datetime

import pytest

from rag_decision.budget.token_budget import TokenBudgetManager, calculate_budget, split_budget
from rag_decision.config.policies import BudgetPolicy
from rag_decision.exceptions import ConfigurationError
from rag_decision.models.domain import BudgetContext, Classification
from rag_decision.models.enums import Complexity, QueryKind

NIGHT = datetime(2024, 3, 5, 3, 0)
NOON = datetime(2024, 3, 5, 12, 0)


def _user(complexity: Complexity | None) -> Classification:
    return Classification(
        kind=QueryKind.USER,
        complexity=complexity,
        confidence=0.8,
        reasoning="test",
        token_budget_hint=0,
        max_chunks=5,
    )


@pytest.mark.parametrize(
    "complexity,expected",
    [(Complexity.SIMPLE, 800), (Complexity.STANDARD, 1500), (Complexity.COMPLEX, 2500)],
)
def test_base_budgets(complexity, expected):
    allocation = calculate_budget(_user(complexity))
    assert allocation.total_budget == expected
    assert allocation.adjustments == ()
    assert not allocation.safety_limited


def test_split_standard_budget():
    allocation = calculate_budget(_user(Complexity.STANDARD))
    assert (allocation.chunks, allocation.prompt, allocation.response, allocation.reserve) == (
        900,
        375,
        225,
        0,
    )


def test_split_remainder_goes_to_reserve():
    chunks, prompt, response, reserve = split_budget(1001, BudgetPolicy())
    assert (chunks, prompt, response) == (600, 250, 150)
    assert reserve == 1


def test_system_query_gets_zero_budget():
    system = Classification(
        kind=QueryKind.SYSTEM,
        confidence=1.0,
        reasoning="ping",
        token_budget_hint=0,
        max_chunks=0,
        skip_rag=True,
    )
    allocation = calculate_budget(system, BudgetContext(user_tier="premium", timestamp=NOON))
    assert allocation.total_budget == 0
    assert allocation.chunks == allocation.prompt == allocation.response == allocation.reserve == 0
    assert allocation.complexity == "system"


def test_faq_without_complexity_priced_as_standard():
    faq = Classification(
        kind=QueryKind.FAQ,
        confidence=0.9,
        reasoning="greeting",
        token_budget_hint=200,
        max_chunks=3,
    )
    assert calculate_budget(faq).total_budget == 1500


def test_adjustments_multiply_in_order():
    ctx = BudgetContext(
        conversation_history=[{"role": "user", "content": "hi"}],
        expected_confidence=0.3,
        query_length=150,
        domain="technical",
        user_tier="premium",
        timestamp=NOON,
    )
    allocation = calculate_budget(_user(Complexity.SIMPLE), ctx)
    assert allocation.applied_adjustments == [
        "low_confidence_increase",
        "multi_turn_increase",
        "long_query_increase",
        "domain_technical",
        "business_hours_increase",
        "tier_premium",
    ]
    # 800 * 1.3 * 1.2 * 1.2 * 1.3 * 1.1 * 1.2 = 2569.8816
    assert allocation.adjusted_budget == 2570
    assert allocation.total_budget == 2570
    assert allocation.adjustments[0].before == 800
    assert allocation.adjustments[-1].after == pytest.approx(2569.8816)


def test_reductions_apply():
    ctx = BudgetContext(
        conversation_history=[],
        expected_confidence=0.9,
        query_length=10,
        domain="simple_faq",
        user_tier="trial",
        timestamp=NIGHT,
    )
    allocation = calculate_budget(_user(Complexity.STANDARD), ctx)
    assert allocation.applied_adjustments == [
        "high_confidence_reduction",
        "first_turn_reduction",
        "short_query_reduction",
        "domain_simple_faq",
        "tier_trial",
    ]
    # 1500 * 0.8 * 0.9 * 0.8 * 0.7 * 0.8 = 483.84
    assert allocation.total_budget == 484


def test_missing_history_applies_no_turn_factor():
    allocation = calculate_budget(_user(Complexity.STANDARD), BudgetContext(timestamp=NIGHT))
    assert allocation.applied_adjustments == []


def test_business_hours_inclusive_of_end_hour():
    late = datetime(2024, 3, 5, 17, 45)
    allocation = calculate_budget(_user(Complexity.STANDARD), BudgetContext(timestamp=late))
    assert allocation.applied_adjustments == ["business_hours_increase"]
    assert allocation.total_budget == 1650


def test_unknown_domain_and_tier_are_ignored():
    ctx = BudgetContext(domain="legal", user_tier="gold", timestamp=NIGHT)
    assert calculate_budget(_user(Complexity.STANDARD), ctx).applied_adjustments == []


def test_clamped_to_maximum():
    ctx = BudgetContext(
        conversation_history=[{"role": "user", "content": "x"}],
        expected_confidence=0.1,
        query_length=500,
        domain="technical",
        user_tier="premium",
        timestamp=NOON,
    )
    allocation = calculate_budget(_user(Complexity.COMPLEX), ctx)
    assert allocation.total_budget == 4000
    assert allocation.adjusted_budget > 4000
    assert allocation.safety_limited


def test_clamped_to_minimum():
    policy = BudgetPolicy(minimum=700)
    ctx = BudgetContext(
        conversation_history=[],
        expected_confidence=0.95,
        query_length=5,
        domain="simple_faq",
        user_tier="trial",
    )
    allocation = calculate_budget(_user(Complexity.SIMPLE), ctx, policy)
    assert allocation.total_budget == 700
    assert allocation.safety_limited


@pytest.mark.parametrize("complexity", list(Complexity))
@pytest.mark.parametrize("confidence", [None, 0.1, 0.5, 0.95])
@pytest.mark.parametrize("history", [None, [], [{"role": "user", "content": "x"}]])
@pytest.mark.parametrize("tier", [None, "premium", "trial"])
def test_split_always_sums_to_total_within_bounds(complexity, confidence, history, tier):
    ctx = BudgetContext(
        conversation_history=history,
        expected_confidence=confidence,
        query_length=60,
        user_tier=tier,
        timestamp=NOON,
    )
    allocation = calculate_budget(_user(complexity), ctx)
    policy = BudgetPolicy()
    assert policy.minimum <= allocation.total_budget <= policy.maximum
    parts = allocation.chunks + allocation.prompt + allocation.response + allocation.reserve
    assert parts == allocation.total_budget
    assert min(allocation.chunks, allocation.prompt, allocation.response, allocation.reserve) >= 0


def test_missing_base_budget_falls_back_to_standard():
    policy = BudgetPolicy(base_budgets={"standard": 1500})
    allocation = calculate_budget(_user(Complexity.COMPLEX), policy=policy)
    assert allocation.total_budget == 1500
    assert allocation.error is not None
    assert allocation.chunks + allocation.prompt + allocation.response + allocation.reserve == 1500


def test_invalid_policy_rejected():
    with pytest.raises(ConfigurationError):
        BudgetPolicy(minimum=5000, maximum=4000)
    with pytest.raises(ConfigurationError):
        BudgetPolicy(chunks_ratio=0.8, prompt_ratio=0.3)


def test_manager_records_usage_and_resets():
    manager = TokenBudgetManager()
    manager.record_usage("standard", 1500, 900)
    assert manager.recommendations().total_queries == 1
    manager.reset()
    assert manager.recommendations().total_queries == 0
