"""Protocols for prompt assembly and answer generation."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from rag_decision.models.domain import (
    BudgetAllocation,
    CandidateChunk,
    GenerationOptions,
    GenerationResult,
    PromptResult,
)


class PromptBuilder(Protocol):
    def assemble_prompt(
        self,
        query: str,
        chunks: Sequence[CandidateChunk],
        history: Sequence[dict] | None = None,
        allocation: BudgetAllocation | None = None,
    ) -> PromptResult: ...


class Generator(Protocol):
    async def generate(
        self, prompt: PromptResult, options: GenerationOptions
    ) -> GenerationResult: ...
