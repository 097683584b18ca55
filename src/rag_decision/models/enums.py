"""Closed vocabularies shared across the decision layer."""

from __future__ import annotations

from enum import StrEnum


class QueryKind(StrEnum):
    SYSTEM = "SYSTEM"
    FAQ = "FAQ"
    USER = "USER"


class Complexity(StrEnum):
    SIMPLE = "simple"
    STANDARD = "standard"
    COMPLEX = "complex"


class FaqCategory(StrEnum):
    GREETING = "greeting"
    SIMPLE = "simple"
    COMMON = "common"


class ConfidenceLevel(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"


class QualityGrade(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    UNCERTAIN = "uncertain"
    POOR = "poor"
    UNRELIABLE = "unreliable"


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


class IssueType(StrEnum):
    NO_RELEVANT_SOURCES = "no_relevant_sources"
    SYSTEM_ERROR = "system_error"
    LOW_RETRIEVAL_CONFIDENCE = "low_retrieval_confidence"
    INCOMPLETE_RESPONSE = "incomplete_response"
    POOR_CITATION_QUALITY = "poor_citation_quality"
    QUERY_AMBIGUITY = "query_ambiguity"

    @property
    def priority(self) -> int:
        """Tie-break order among equal severities; lower wins."""
        return _ISSUE_PRIORITY.index(self)


# Declaration order above is the tie-break order.
_ISSUE_PRIORITY = list(IssueType)
