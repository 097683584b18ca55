"""Bounded timeout and retry around the generation call."""

from __future__ import annotations

import asyncio

from rag_decision.exceptions import GenerationFailure, GenerationTimeout
from rag_decision.models.domain import GenerationOptions, GenerationResult, PromptResult
from rag_decision.observability.logger import get_logger
from rag_decision.protocols.generator import Generator

logger = get_logger("generation_retry")


async def generate_with_retry(
    generator: Generator,
    prompt: PromptResult,
    options: GenerationOptions,
    timeout_s: float,
    max_attempts: int = 3,
    backoff_base_s: float = 0.5,
) -> GenerationResult:
    """Call ``generator.generate`` with a per-attempt timeout.

    Only ``GenerationFailure`` (timeouts included) is retried, with
    ``backoff_base_s * 2**attempt`` seconds between attempts. Cancellation
    propagates immediately.
    """
    attempts = max(max_attempts, 1)
    last_error: GenerationFailure | None = None
    for attempt in range(attempts):
        try:
            async with asyncio.timeout(timeout_s):
                return await generator.generate(prompt, options)
        except TimeoutError as e:
            last_error = GenerationTimeout(f"Generation timed out after {timeout_s}s")
            last_error.__cause__ = e
        except GenerationFailure as e:
            last_error = e

        logger.warning(
            "generation_attempt_failed",
            attempt=attempt + 1,
            max_attempts=attempts,
            error=str(last_error),
        )
        if attempt + 1 < attempts:
            await asyncio.sleep(backoff_base_s * 2**attempt)

    assert last_error is not None
    raise last_error
