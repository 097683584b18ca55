"""Builds the system/user prompt pair and its numbered citation list."""

from __future__ import annotations

import math
from collections.abc import Sequence

from rag_decision.generation.prompt_templates import (
    ANSWER_PROMPT,
    ANSWER_SYSTEM,
    EVIDENCE_ENTRY,
    HISTORY_ENTRY,
)
from rag_decision.models.domain import BudgetAllocation, CandidateChunk, PromptCitation, PromptResult
from rag_decision.retrieval.chunk_selector import estimate_tokens

MAX_HISTORY_TURNS = 6


class PromptAssembler:
    def __init__(self, domain: str = "fund management") -> None:
        self._domain = domain

    def assemble_prompt(
        self,
        query: str,
        chunks: Sequence[CandidateChunk],
        history: Sequence[dict] | None = None,
        allocation: BudgetAllocation | None = None,
    ) -> PromptResult:
        citations: list[PromptCitation] = []
        entries: list[str] = []
        for index, chunk in enumerate(chunks, start=1):
            page_part = f", Page: {chunk.page}" if chunk.page is not None else ""
            entries.append(
                EVIDENCE_ENTRY.format(
                    index=index,
                    source=chunk.source_id,
                    page_part=page_part,
                    content=chunk.content,
                )
            )
            citations.append(
                PromptCitation(
                    index=index,
                    source_id=chunk.source_id,
                    chunk_id=chunk.id,
                    page=chunk.page,
                )
            )

        history_block = ""
        if history:
            turns = [
                HISTORY_ENTRY.format(role=t.get("role", "user"), content=t.get("content", ""))
                for t in list(history)[-MAX_HISTORY_TURNS:]
            ]
            history_block = "Conversation so far:\n" + "\n".join(turns) + "\n\n"

        response_tokens = allocation.response if allocation and allocation.response else 500
        system = ANSWER_SYSTEM.format(domain=self._domain, response_tokens=response_tokens)
        user = ANSWER_PROMPT.format(
            history_block=history_block,
            query=query,
            evidence_block="\n\n".join(entries),
        )

        # Chunk text uses the selector's estimates; the scaffold is approximated at 4 chars/token.
        chunk_tokens = sum(estimate_tokens(c) for c in chunks)
        scaffold_chars = len(system) + len(user) - sum(len(c.content) for c in chunks)
        return PromptResult(
            system=system,
            user=user,
            citations=citations,
            estimated_tokens=chunk_tokens + math.ceil(max(scaffold_chars, 0) / 4),
        )
