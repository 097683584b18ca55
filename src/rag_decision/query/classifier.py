"""Routes a raw query to SYSTEM, FAQ, or USER{complexity} handling."""

from __future__ import annotations

import re

from rag_decision.config.policies import ClassifierPatterns
from rag_decision.exceptions import ClassificationError
from rag_decision.models.domain import Classification, ClassifierContext
from rag_decision.models.enums import Complexity, FaqCategory, QueryKind
from rag_decision.observability.logger import get_logger
from rag_decision.scoring.text_signals import any_phrase, domain_terms_in

logger = get_logger("query_classifier")

FAQ_BUDGET = 200
FAQ_MAX_CHUNKS = 3
FAQ_CACHE_TTL = 86400
SIMPLE_CACHE_TTL = 3600

_COMPLEXITY_TABLE: dict[Complexity, tuple[int, int]] = {
    Complexity.SIMPLE: (800, 3),
    Complexity.STANDARD: (1500, 5),
    Complexity.COMPLEX: (2000, 8),
}

_FAQ_CONFIDENCE = {
    FaqCategory.GREETING: 0.9,
    FaqCategory.SIMPLE: 0.8,
    FaqCategory.COMMON: 0.7,
}

_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")
_ALPHA_RE = re.compile(r"^[a-z]+$")


def cache_key(query: str) -> str:
    normalized = _NON_WORD_RE.sub("", query.lower().strip())
    return _SPACE_RE.sub("_", normalized)[:50]


def classify(
    query: str,
    session_hint: str = "",
    context: ClassifierContext | None = None,
    patterns: ClassifierPatterns | None = None,
) -> Classification:
    """Classify ``query``. Never raises; falls back to USER{standard}."""
    patterns = patterns or ClassifierPatterns()
    context = context or ClassifierContext()
    try:
        return _classify(query, session_hint or "", context, patterns)
    except Exception as e:
        logger.error("classification_failed", error=str(e), exc_info=True)
        return Classification(
            kind=QueryKind.USER,
            complexity=Complexity.STANDARD,
            confidence=0.5,
            reasoning="Fallback classification due to error",
            token_budget_hint=1500,
            max_chunks=5,
            error=str(e),
        )


def _classify(
    query: str,
    session_hint: str,
    context: ClassifierContext,
    patterns: ClassifierPatterns,
) -> Classification:
    if not isinstance(query, str):
        raise ClassificationError(f"Query must be text, got {type(query).__name__}")

    query_lower = query.lower().strip()

    reason = _system_reason(query_lower, session_hint.lower(), context, patterns)
    if reason:
        return Classification(
            kind=QueryKind.SYSTEM,
            confidence=1.0,
            reasoning=f"Detected system/health check query ({reason})",
            token_budget_hint=0,
            max_chunks=0,
            skip_rag=True,
            cacheable=True,
            cache_key=f"system:{cache_key(query)}",
        )

    category = _faq_category(query_lower, patterns)
    if category is not None:
        return Classification(
            kind=QueryKind.FAQ,
            subtype=category,
            confidence=_FAQ_CONFIDENCE[category],
            reasoning=f"FAQ query detected: {category}",
            token_budget_hint=FAQ_BUDGET,
            max_chunks=FAQ_MAX_CHUNKS,
            cacheable=True,
            cache_key=f"faq:{cache_key(query)}",
            cache_ttl=FAQ_CACHE_TTL,
        )

    complexity, reasoning = _analyze_complexity(query_lower, patterns)
    budget, max_chunks = _COMPLEXITY_TABLE[complexity]
    is_simple = complexity == Complexity.SIMPLE
    return Classification(
        kind=QueryKind.USER,
        complexity=complexity,
        confidence=0.8,
        reasoning=f"User query - {complexity} complexity: {reasoning}",
        token_budget_hint=budget,
        max_chunks=max_chunks,
        cacheable=is_simple,
        cache_key=f"simple:{cache_key(query)}" if is_simple else None,
        cache_ttl=SIMPLE_CACHE_TTL if is_simple else 0,
    )


def _system_reason(
    query_lower: str,
    session_lower: str,
    context: ClassifierContext,
    patterns: ClassifierPatterns,
) -> str | None:
    if query_lower in patterns.system_exact:
        return "exact match"

    if any_phrase(query_lower, patterns.system_keywords):
        return "system keyword"

    if session_lower and any(f in session_lower for f in patterns.system_session_fragments):
        return "monitoring session"

    user_agent = (context.user_agent or "").lower()
    if user_agent and any(f in user_agent for f in patterns.monitoring_user_agents):
        return "monitoring user agent"

    if (
        len(query_lower) <= patterns.system_short_max_chars
        and _ALPHA_RE.match(query_lower)
        and query_lower in patterns.system_short_words
    ):
        return "short system word"

    return None


def _faq_category(query_lower: str, patterns: ClassifierPatterns) -> FaqCategory | None:
    if any_phrase(query_lower, patterns.greetings):
        return FaqCategory.GREETING

    # Starters that name a domain term are real questions, not small talk.
    if (
        any(query_lower.startswith(s) for s in patterns.simple_starters)
        and len(query_lower.split()) <= patterns.simple_starter_max_words
        and not domain_terms_in(query_lower, patterns.domain_terms)
    ):
        return FaqCategory.SIMPLE

    if any_phrase(query_lower, patterns.common_topics):
        return FaqCategory.COMMON

    return None


def _analyze_complexity(
    query_lower: str, patterns: ClassifierPatterns
) -> tuple[Complexity, str]:
    word_count = len(query_lower.split())

    if any(p in query_lower for p in patterns.complex_keywords) or (
        word_count >= patterns.complex_min_words
    ):
        return Complexity.COMPLEX, "complex patterns or long query detected"

    if any(p in query_lower for p in patterns.standard_keywords) or (
        word_count >= patterns.standard_min_words
    ):
        return Complexity.STANDARD, "standard complexity patterns detected"

    if word_count <= patterns.simple_max_words and any(
        p in query_lower for p in patterns.simple_patterns
    ):
        return Complexity.SIMPLE, "simple query patterns detected"

    return Complexity.STANDARD, "default standard classification"


class QueryClassifier:
    """Holds one pattern table and classifies queries against it."""

    def __init__(self, patterns: ClassifierPatterns | None = None) -> None:
        self.patterns = patterns or ClassifierPatterns()

    def classify(
        self,
        query: str,
        session_hint: str = "",
        context: ClassifierContext | None = None,
    ) -> Classification:
        result = classify(query, session_hint, context, self.patterns)
        logger.debug(
            "query_classified",
            kind=result.kind,
            complexity=result.complexity,
            confidence=result.confidence,
        )
        return result

    def stats(self) -> dict[str, int]:
        return self.patterns.stats()
