"""Lightweight text heuristics: phrase matching, coherence, clarity, domain overlap."""

from __future__ import annotations

import re
from collections.abc import Iterable

from rag_decision.models.domain import QueryAnalysis

WORD_RE = re.compile(r"[a-z0-9']+")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

TRANSITION_WORDS = (
    "however",
    "therefore",
    "additionally",
    "furthermore",
    "moreover",
    "consequently",
)
CORE_TERMS = ("fund", "portfolio", "nav", "investment")


def words(text: str) -> list[str]:
    return WORD_RE.findall(text.lower())


def contains_phrase(text: str, phrase: str) -> bool:
    """Whole-word match of ``phrase`` inside ``text`` (both compared lower-case)."""
    pattern = r"(?<![\w'])" + re.escape(phrase.lower()) + r"(?![\w'])"
    return re.search(pattern, text.lower()) is not None


def any_phrase(text: str, phrases: Iterable[str]) -> str | None:
    for phrase in phrases:
        if contains_phrase(text, phrase):
            return phrase
    return None


def domain_terms_in(text: str, terms: Iterable[str]) -> list[str]:
    """Domain terms present in ``text`` as whole words, allowing a plural ``s``."""
    tokens = set(words(text))
    return [t for t in terms if t in tokens or f"{t}s" in tokens]


def coherence_score(text: str | None) -> float:
    if not text or len(text) < 10:
        return 0.0

    lowered = text.lower()
    score = 0.5

    sentences = [s for s in SENTENCE_SPLIT_RE.split(text) if len(s.strip()) > 5]
    if sentences:
        score += 0.2

    if any(contains_phrase(lowered, w) for w in TRANSITION_WORDS):
        score += 0.1

    if len(domain_terms_in(lowered, CORE_TERMS)) > 1:
        score += 0.1

    tokens = lowered.split()
    if tokens and len(set(tokens)) / len(tokens) < 0.5:
        score -= 0.1

    return max(0.0, min(1.0, score))


def query_clarity(analysis: QueryAnalysis | None) -> float:
    if analysis is None:
        # Nothing known about the query: base score with the short-query penalty.
        return 0.4

    clarity = 0.5
    if analysis.has_question_words:
        clarity += 0.2
    if analysis.intent:
        clarity += 0.2
    if analysis.entities:
        clarity += 0.1
    if analysis.word_count < 3 or analysis.word_count > 30:
        clarity -= 0.1
    return max(0.0, min(1.0, clarity))


def domain_relevance(analysis: QueryAnalysis | None, terms: Iterable[str]) -> float:
    if analysis is None:
        return 0.0
    vocabulary = tuple(terms)
    relevant = [
        term
        for term in (*analysis.entities, *analysis.keywords)
        if any(d in term.lower() for d in vocabulary)
    ]
    return min(len(relevant) / 3, 1.0)
