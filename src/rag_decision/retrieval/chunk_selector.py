"""Greedy, budget-constrained selection of retrieved chunks."""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Sequence
from functools import lru_cache

import tiktoken

from rag_decision.config.constants import TIKTOKEN_ENCODING
from rag_decision.config.policies import SelectionPolicy
from rag_decision.models.domain import CandidateChunk, SelectionConstraints, SelectionResult
from rag_decision.observability.logger import get_logger

logger = get_logger("chunk_selector")

_WORD_RE = re.compile(r"\w+")
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)")


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding:
    return tiktoken.get_encoding(TIKTOKEN_ENCODING)


def count_tokens(text: str) -> int:
    return len(_encoding().encode(text))


def estimate_tokens(chunk: CandidateChunk) -> int:
    """Supplied estimate when positive, otherwise a tiktoken count of the content."""
    if chunk.estimated_tokens > 0:
        return chunk.estimated_tokens
    return count_tokens(chunk.content)


def query_keywords(query: str) -> tuple[str, ...]:
    return tuple(w for w in _WORD_RE.findall(query.lower()) if len(w) > 2)


def keyword_density(chunk: CandidateChunk, keywords: Sequence[str]) -> float:
    """Fraction of query keywords found in the chunk. 1.0 when the query has none."""
    if not keywords:
        return 1.0
    content = chunk.content.lower()
    return sum(1 for word in keywords if word in content) / len(keywords)


def composite_score(
    chunk: CandidateChunk,
    policy: SelectionPolicy,
    density: float = 0.0,
) -> float:
    return (
        policy.similarity_weight * chunk.similarity_score
        + policy.quality_weight * chunk.quality_score
        + policy.keyword_weight * density
    )


def _passes_thresholds(chunk: CandidateChunk, policy: SelectionPolicy) -> bool:
    return (
        chunk.similarity_score >= policy.min_similarity
        and chunk.quality_score >= policy.min_quality
        and len(chunk.content) >= policy.min_content_chars
    )


def trim_to_tokens(text: str, max_tokens: int) -> str:
    """Cut ``text`` to at most ``max_tokens``, preferring a sentence then a word boundary."""
    tokens = _encoding().encode(text)
    if len(tokens) <= max_tokens:
        return text
    head = _encoding().decode(tokens[: max(max_tokens, 0)])

    sentence_ends = [m.end() for m in _SENTENCE_END_RE.finditer(head)]
    if sentence_ends and sentence_ends[-1] >= len(head) // 2:
        return head[: sentence_ends[-1]].strip()
    cut = head.rfind(" ")
    return (head[:cut] if cut > 0 else head).strip()


def trim_chunk(
    chunk: CandidateChunk,
    max_tokens: int,
    policy: SelectionPolicy,
) -> CandidateChunk | None:
    """Copy of ``chunk`` cut to ``max_tokens``, or None when too little text survives."""
    content = trim_to_tokens(chunk.content, max_tokens)
    tokens = count_tokens(content)
    if len(content) < policy.min_content_chars or tokens > max_tokens:
        return None
    return dataclasses.replace(chunk, content=content, estimated_tokens=tokens)


def select_optimal_chunks(
    candidates: Sequence[CandidateChunk],
    query: str,
    constraints: SelectionConstraints,
    policy: SelectionPolicy | None = None,
) -> SelectionResult:
    """Pick chunks under ``constraints``.

    Candidates below the similarity, quality or length thresholds, or matching
    fewer than ``min_keyword_ratio`` of the query keywords, are dropped first.
    At every step the best remaining candidate is the one with the highest
    composite score; ties go to the source with fewer chunks already selected,
    then to the earlier position in ``candidates``. A candidate that would
    overflow the budget is trimmed to fit when more than ``min_trim_tokens``
    remain, which ends selection; otherwise it is skipped and the next one is
    considered. Inputs are never modified; trimmed chunks are new objects.
    """
    policy = policy or SelectionPolicy()
    budget = max(constraints.token_budget, 0)
    max_chunks = max(constraints.max_chunks, 0)
    keywords = query_keywords(query)

    eligible: list[tuple[int, CandidateChunk, float, int]] = []
    rejected_threshold = 0
    rejected_irrelevant = 0
    for index, chunk in enumerate(candidates):
        if not _passes_thresholds(chunk, policy):
            rejected_threshold += 1
            continue
        density = keyword_density(chunk, keywords)
        if density < policy.min_keyword_ratio:
            rejected_irrelevant += 1
            continue
        eligible.append(
            (index, chunk, composite_score(chunk, policy, density), estimate_tokens(chunk))
        )

    selected: list[CandidateChunk] = []
    per_source: dict[str, int] = {}
    per_page: dict[tuple[str, int], int] = {}
    used = 0
    rejected_cap = 0
    rejected_page = 0
    rejected_budget = 0

    remaining = eligible
    while remaining and len(selected) < max_chunks and used < budget:
        remaining.sort(key=lambda e: (-e[2], per_source.get(e[1].source_id, 0), e[0]))
        index, chunk, _, tokens = remaining.pop(0)

        if per_source.get(chunk.source_id, 0) >= policy.max_per_source:
            rejected_cap += 1
            continue
        page_key = (chunk.source_id, chunk.page) if chunk.page is not None else None
        if page_key is not None and per_page.get(page_key, 0) >= policy.max_per_page:
            rejected_page += 1
            continue

        trimmed = False
        if used + tokens > budget:
            left = budget - used
            copy = trim_chunk(chunk, left, policy) if left > policy.min_trim_tokens else None
            if copy is None:
                rejected_budget += 1
                continue
            chunk, tokens, trimmed = copy, copy.estimated_tokens, True

        selected.append(chunk)
        per_source[chunk.source_id] = per_source.get(chunk.source_id, 0) + 1
        if page_key is not None:
            per_page[page_key] = per_page.get(page_key, 0) + 1
        used += tokens
        if trimmed:
            break

    result = SelectionResult(
        selected_chunks=tuple(selected),
        estimated_tokens=used,
        dropped_count=len(candidates) - len(selected),
        per_source_counts=per_source,
        evaluated_count=len(candidates),
        token_budget=budget,
        rejected_below_threshold=rejected_threshold,
        rejected_irrelevant=rejected_irrelevant,
        rejected_source_cap=rejected_cap,
        rejected_page_cap=rejected_page,
        rejected_budget=rejected_budget,
    )
    logger.debug(
        "chunks_selected",
        keywords=len(keywords),
        evaluated=result.evaluated_count,
        selected=len(selected),
        tokens=used,
        budget=budget,
    )
    return result


class ChunkSelector:
    def __init__(self, policy: SelectionPolicy | None = None) -> None:
        self.policy = policy or SelectionPolicy()

    def select(
        self,
        candidates: Sequence[CandidateChunk],
        query: str,
        constraints: SelectionConstraints,
    ) -> SelectionResult:
        return select_optimal_chunks(candidates, query, constraints, self.policy)
