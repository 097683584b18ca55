"""Query analysis feeding the context component of confidence scoring."""

from __future__ import annotations

import re

from rag_decision.config.policies import DOMAIN_TERMS
from rag_decision.models.domain import QueryAnalysis
from rag_decision.scoring.text_signals import domain_terms_in

QUESTION_WORD_RE = re.compile(r"\b(what|how|when|where|why|which|who)\b", re.I)

INTENT_PATTERNS: dict[str, re.Pattern[str]] = {
    "definition": re.compile(r"what is|define|definition of|meaning of", re.I),
    "procedure": re.compile(r"how to|steps to|process for|procedure", re.I),
    "comparison": re.compile(r"difference between|compare|versus|\bvs\b", re.I),
    "list": re.compile(r"\blist\b|enumerate|what are", re.I),
    "example": re.compile(r"example|instance|sample", re.I),
    "troubleshooting": re.compile(r"error|problem|issue|\bfix\b|solve", re.I),
}

STOPWORDS = frozenset(
    {"what", "how", "when", "where", "why", "which", "who", "the", "and", "or", "but", "for", "with"}
)


def analyze_query(query: str, domain_terms: tuple[str, ...] = DOMAIN_TERMS) -> QueryAnalysis:
    word_count = len(query.split())
    intent = tuple(name for name, pattern in INTENT_PATTERNS.items() if pattern.search(query))

    if word_count > 15 or len(intent) > 2:
        complexity = "complex"
    elif word_count > 8 or len(intent) > 1:
        complexity = "moderate"
    else:
        complexity = "simple"

    cleaned = re.sub(r"[^\w\s]", " ", query.lower())
    keywords = tuple(w for w in cleaned.split() if len(w) > 3 and w not in STOPWORDS)

    return QueryAnalysis(
        has_question_words=bool(QUESTION_WORD_RE.search(query)),
        intent=intent,
        entities=tuple(domain_terms_in(query, domain_terms)),
        keywords=keywords,
        word_count=word_count,
        complexity=complexity,
    )
