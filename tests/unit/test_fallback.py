"""Tests for fallback strategy dispatch."""

import pytest

from rag_decision.fallback.dispatcher import (
    FallbackCopy,
    FallbackDispatcher,
    select_issue,
    system_error_response,
)
from rag_decision.models.domain import FallbackContext, Issue
from rag_decision.models.enums import IssueType, Severity


def _issue(issue_type: IssueType, severity: Severity) -> Issue:
    return Issue(type=issue_type, severity=severity, component="test", score=0.1, description="")


def test_no_issues_returns_none():
    assert FallbackDispatcher().dispatch([], FallbackContext(query="q")) is None


def test_high_severity_beats_medium():
    issues = [
        _issue(IssueType.LOW_RETRIEVAL_CONFIDENCE, Severity.MEDIUM),
        _issue(IssueType.NO_RELEVANT_SOURCES, Severity.HIGH),
    ]
    assert select_issue(issues).type == IssueType.NO_RELEVANT_SOURCES


def test_equal_severity_uses_fixed_priority():
    issues = [
        _issue(IssueType.POOR_CITATION_QUALITY, Severity.MEDIUM),
        _issue(IssueType.INCOMPLETE_RESPONSE, Severity.MEDIUM),
        _issue(IssueType.LOW_RETRIEVAL_CONFIDENCE, Severity.MEDIUM),
    ]
    assert select_issue(issues).type == IssueType.LOW_RETRIEVAL_CONFIDENCE
    assert select_issue(issues[:2]).type == IssueType.INCOMPLETE_RESPONSE


def test_no_sources_beats_system_error_on_tie():
    issues = [
        _issue(IssueType.SYSTEM_ERROR, Severity.HIGH),
        _issue(IssueType.NO_RELEVANT_SOURCES, Severity.HIGH),
    ]
    assert select_issue(issues).type == IssueType.NO_RELEVANT_SOURCES


def test_low_retrieval_response():
    response = FallbackDispatcher().dispatch(
        [_issue(IssueType.LOW_RETRIEVAL_CONFIDENCE, Severity.MEDIUM)],
        FallbackContext(query="fee waivers"),
    )
    assert response.strategy == IssueType.LOW_RETRIEVAL_CONFIDENCE
    assert response.confidence == 0.3
    assert '"fee waivers"' in response.message
    assert "Try using more specific fund management terminology" in response.suggestions


def test_no_sources_response_lists_suggestions():
    response = FallbackDispatcher().dispatch(
        [_issue(IssueType.NO_RELEVANT_SOURCES, Severity.HIGH)],
        FallbackContext(query="crypto staking"),
    )
    assert response.confidence == 0.2
    assert response.use_knowledge_base is False
    for suggestion in response.suggestions:
        assert suggestion in response.message


def test_poor_citations_keeps_answer_and_lowers_confidence():
    response = FallbackDispatcher().dispatch(
        [_issue(IssueType.POOR_CITATION_QUALITY, Severity.MEDIUM)],
        FallbackContext(query="q", original_response="The answer.", original_confidence=0.7),
    )
    assert response.message.startswith("The answer.")
    assert response.confidence == pytest.approx(0.5)
    assert response.use_knowledge_base is True
    assert response.warnings


def test_poor_citations_confidence_floor():
    response = FallbackDispatcher().dispatch(
        [_issue(IssueType.POOR_CITATION_QUALITY, Severity.MEDIUM)],
        FallbackContext(query="q", original_response="x", original_confidence=0.15),
    )
    assert response.confidence == 0.1


def test_incomplete_offers_continuation():
    response = FallbackDispatcher().dispatch(
        [_issue(IssueType.INCOMPLETE_RESPONSE, Severity.MEDIUM)],
        FallbackContext(query="q", original_response="Partial answer", original_confidence=0.25),
    )
    assert response.message.startswith("Partial answer")
    assert "This response may be incomplete. Would you like me to:" in response.message
    assert response.confidence == 0.2


def test_ambiguity_enumerates_options():
    copy = FallbackCopy(clarification_options=("Fees", "Taxes"))
    response = FallbackDispatcher(copy).dispatch(
        [_issue(IssueType.QUERY_AMBIGUITY, Severity.LOW)], FallbackContext(query="charges")
    )
    assert response.confidence == 0.4
    assert "1. Fees" in response.message
    assert "2. Taxes" in response.message
    assert response.clarification_options == ("Fees", "Taxes")


def test_system_error_response():
    response = system_error_response("q", FallbackCopy(domain="pension"))
    assert response.is_error
    assert response.confidence == 0.1
    assert "pension" in response.message


def test_every_issue_type_has_a_strategy():
    dispatcher = FallbackDispatcher()
    for issue_type in IssueType:
        response = dispatcher.dispatch(
            [_issue(issue_type, Severity.MEDIUM)],
            FallbackContext(query="q", original_response="a", original_confidence=0.5),
        )
        assert response.strategy == issue_type
        assert 0.0 <= response.confidence <= 1.0


def test_malformed_context_degrades_to_system_error():
    response = FallbackDispatcher().dispatch(
        [_issue(IssueType.POOR_CITATION_QUALITY, Severity.MEDIUM)],
        FallbackContext(query="q", original_response="a", original_confidence="high"),
    )
    assert response.strategy == IssueType.SYSTEM_ERROR
    assert response.is_error
