"""Partial inputs for the confidence components.

Every field here may be missing or malformed at the call site. Each
``from_partial`` constructor documents, in one place, what a missing or
unusable value turns into, so that the scoring code never has to guess.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from rag_decision.models.domain import CandidateChunk, CitationReport, QueryAnalysis


def coerce_float(value: Any, default: float | None = None) -> float | None:
    """Return ``value`` as a finite float, or ``default`` if it is not one."""
    if isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def coerce_int(value: Any, default: int = 0) -> int:
    number = coerce_float(value)
    if number is None:
        return default
    return int(number)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


@dataclass(frozen=True)
class ChunkSignal:
    similarity: float | None
    quality: float | None
    source_id: str | None


@dataclass(frozen=True)
class RetrievalSignals:
    """Retrieval input.

    ``chunks is None`` means retrieval metadata was not supplied at all;
    an empty tuple means retrieval ran and found nothing. Chunks whose
    similarity is not a number are kept for counting but excluded from
    similarity statistics.
    """

    chunks: tuple[ChunkSignal, ...] | None

    @classmethod
    def from_chunks(cls, chunks: Sequence[CandidateChunk]) -> RetrievalSignals:
        return cls(
            chunks=tuple(
                ChunkSignal(c.similarity_score, c.quality_score, c.source_id) for c in chunks
            )
        )

    @classmethod
    def from_partial(cls, raw: Any) -> RetrievalSignals:
        if isinstance(raw, RetrievalSignals):
            return raw
        items = raw if isinstance(raw, (list, tuple)) else _field(raw, "chunks")
        if items is None or not isinstance(items, (list, tuple)):
            return cls(chunks=None)
        signals = []
        for item in items:
            if item is None:
                continue
            source = _field(item, "source_id")
            signals.append(
                ChunkSignal(
                    similarity=coerce_float(_field(item, "similarity_score")),
                    quality=coerce_float(_field(item, "quality_score")),
                    source_id=str(source) if source is not None else None,
                )
            )
        return cls(chunks=tuple(signals))

    @property
    def supplied(self) -> bool:
        return self.chunks is not None


@dataclass(frozen=True)
class ContentSignals:
    """Generated-content input. A missing response is treated as empty text."""

    response: str
    citations_found: int
    citations_valid: int
    supplied: bool = True

    @classmethod
    def from_report(cls, response: str, report: CitationReport) -> ContentSignals:
        return cls(
            response=response,
            citations_found=report.total_found,
            citations_valid=len(report.valid),
        )

    @classmethod
    def from_partial(cls, raw: Any) -> ContentSignals:
        if isinstance(raw, ContentSignals):
            return raw
        if raw is None:
            return cls(response="", citations_found=0, citations_valid=0, supplied=False)
        response = _field(raw, "response")
        found = max(coerce_int(_field(raw, "citations_found")), 0)
        valid = min(max(coerce_int(_field(raw, "citations_valid")), 0), found)
        return cls(
            response=response if isinstance(response, str) else "",
            citations_found=found,
            citations_valid=valid,
        )


@dataclass(frozen=True)
class ContextSignals:
    """Query context. Missing analysis means no question words, intent or entities."""

    query: str
    analysis: QueryAnalysis | None
    has_history: bool
    supplied: bool = True

    @classmethod
    def from_partial(cls, raw: Any) -> ContextSignals:
        if isinstance(raw, ContextSignals):
            return raw
        if raw is None:
            return cls(query="", analysis=None, has_history=False, supplied=False)
        query = _field(raw, "query")
        analysis = _field(raw, "analysis")
        history = _field(raw, "conversation_history")
        return cls(
            query=query if isinstance(query, str) else "",
            analysis=analysis if isinstance(analysis, QueryAnalysis) else None,
            has_history=bool(history) if isinstance(history, (list, tuple)) else False,
        )


@dataclass(frozen=True)
class GenerationSignals:
    """Generation metadata.

    Missing model name scores as a baseline model; missing temperature uses
    0.3; missing token counts fall into the neutral token-ratio branch; a
    missing finish reason scores as "other".
    """

    model: str
    temperature: float
    response_length: int
    finish_reason: str
    prompt_tokens: int
    completion_tokens: int
    supplied: bool = True

    @classmethod
    def from_partial(cls, raw: Any) -> GenerationSignals:
        if isinstance(raw, GenerationSignals):
            return raw
        if raw is None:
            return cls(
                model="",
                temperature=0.3,
                response_length=0,
                finish_reason="",
                prompt_tokens=0,
                completion_tokens=0,
                supplied=False,
            )
        model = _field(raw, "model")
        finish = _field(raw, "finish_reason")
        temperature = coerce_float(_field(raw, "temperature"), 0.3)
        return cls(
            model=model if isinstance(model, str) else "",
            temperature=min(max(temperature, 0.0), 1.0),
            response_length=max(coerce_int(_field(raw, "response_length")), 0),
            finish_reason=finish if isinstance(finish, str) else "",
            prompt_tokens=max(coerce_int(_field(raw, "prompt_tokens")), 0),
            completion_tokens=max(coerce_int(_field(raw, "completion_tokens")), 0),
        )
