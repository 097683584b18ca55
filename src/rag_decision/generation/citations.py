"""Extract citation markers from generated text and validate them against the sources."""

from __future__ import annotations

import re
from collections.abc import Sequence

from rag_decision.models.domain import CandidateChunk, CitationCheck, CitationReport, PromptCitation
from rag_decision.observability.logger import get_logger

logger = get_logger("citations")

CITATION_RE = re.compile(
    r"\(Guide (?P<guide_src>[^,()]+), p\.(?P<guide_page>\d+)\)"
    r"|\(Source: (?P<src_src>[^,()]+), Page: (?P<src_page>\d+)[^)]*\)"
    r"|\[(?P<bracket_src>[^\]\[]+?), p\.(?P<bracket_page>\d+)\]"
    r"|\[(?P<index>\d+)\]"
)


def _parse(match: re.Match[str]) -> tuple[int | None, str | None, int | None]:
    """Return (index, source, page) for one marker."""
    if match.group("index"):
        return int(match.group("index")), None, None
    for prefix in ("guide", "src", "bracket"):
        source = match.group(f"{prefix}_src")
        if source:
            return None, source.strip(), int(match.group(f"{prefix}_page"))
    return None, None, None


def _same_source(cited: str, source_id: str) -> bool:
    a, b = cited.lower(), source_id.lower()
    return a == b or a in b or b in a


def _validate(
    text: str,
    position: int,
    index: int | None,
    source: str | None,
    page: int | None,
    available: Sequence[PromptCitation],
    chunks: Sequence[CandidateChunk],
) -> CitationCheck:
    if index is not None:
        for citation in available:
            if citation.index == index:
                return CitationCheck(
                    text=text,
                    is_valid=True,
                    source_id=citation.source_id,
                    chunk_id=citation.chunk_id,
                    page=citation.page,
                    position=position,
                )
        return CitationCheck(
            text=text, is_valid=False, position=position, reason="Citation number out of range"
        )

    if source is not None:
        for citation in available:
            if _same_source(source, citation.source_id) and citation.page in (None, page):
                return CitationCheck(
                    text=text,
                    is_valid=True,
                    source_id=citation.source_id,
                    chunk_id=citation.chunk_id,
                    page=page,
                    position=position,
                )
        for chunk in chunks:
            if _same_source(source, chunk.source_id) and chunk.page in (None, page):
                return CitationCheck(
                    text=text,
                    is_valid=True,
                    source_id=chunk.source_id,
                    chunk_id=chunk.id,
                    page=page,
                    position=position,
                )

    return CitationCheck(
        text=text,
        is_valid=False,
        position=position,
        reason="Citation does not match any retrieved sources",
    )


def extract_and_validate(
    response: str,
    available: Sequence[PromptCitation],
    chunks: Sequence[CandidateChunk] = (),
) -> CitationReport:
    valid: list[CitationCheck] = []
    invalid: list[CitationCheck] = []
    for match in CITATION_RE.finditer(response or ""):
        index, source, page = _parse(match)
        check = _validate(match.group(0), match.start(), index, source, page, available, chunks)
        (valid if check.is_valid else invalid).append(check)

    report = CitationReport(
        total_found=len(valid) + len(invalid),
        valid=tuple(valid),
        invalid=tuple(invalid),
    )
    logger.debug(
        "citations_checked",
        found=report.total_found,
        valid=len(report.valid),
        invalid=len(report.invalid),
    )
    return report
