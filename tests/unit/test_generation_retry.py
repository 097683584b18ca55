"""Tests for the bounded generation retry loop."""

import asyncio

import pytest
from conftest import FakeGenerator, generation_result

from rag_decision.exceptions import GenerationFailure, GenerationTimeout
from rag_decision.generation.retry import generate_with_retry
from rag_decision.models.domain import GenerationOptions, PromptResult

PROMPT = PromptResult(system="s", user="u", citations=[], estimated_tokens=10)
OPTIONS = GenerationOptions(model="gpt-4o", max_tokens=100, temperature=0.3)


@pytest.mark.asyncio
async def test_first_attempt_succeeds():
    generator = FakeGenerator(generation_result())
    result = await generate_with_retry(generator, PROMPT, OPTIONS, timeout_s=1, backoff_base_s=0)
    assert result.finish_reason == "stop"
    assert len(generator.calls) == 1


@pytest.mark.asyncio
async def test_retries_then_succeeds():
    generator = FakeGenerator(GenerationFailure("boom"), generation_result())
    result = await generate_with_retry(
        generator, PROMPT, OPTIONS, timeout_s=1, max_attempts=3, backoff_base_s=0
    )
    assert result.content
    assert len(generator.calls) == 2


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    generator = FakeGenerator(GenerationFailure("boom"))
    with pytest.raises(GenerationFailure):
        await generate_with_retry(
            generator, PROMPT, OPTIONS, timeout_s=1, max_attempts=3, backoff_base_s=0
        )
    assert len(generator.calls) == 3


@pytest.mark.asyncio
async def test_timeout_becomes_generation_timeout():
    class SlowGenerator:
        async def generate(self, prompt, options):
            await asyncio.sleep(5)

    with pytest.raises(GenerationTimeout):
        await generate_with_retry(
            SlowGenerator(), PROMPT, OPTIONS, timeout_s=0.01, max_attempts=2, backoff_base_s=0
        )


@pytest.mark.asyncio
async def test_unexpected_errors_are_not_retried():
    generator = FakeGenerator(KeyError("bug"))
    with pytest.raises(KeyError):
        await generate_with_retry(generator, PROMPT, OPTIONS, timeout_s=1, backoff_base_s=0)
    assert len(generator.calls) == 1
