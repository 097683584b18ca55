"""OpenAI chat-completions generator."""

from __future__ import annotations

from openai import AsyncOpenAI

from rag_decision.exceptions import GenerationFailure
from rag_decision.models.domain import GenerationOptions, GenerationResult, PromptResult
from rag_decision.observability.logger import get_logger

logger = get_logger("openai_generator")


class OpenAIGenerator:
    def __init__(self, api_key: str, client: AsyncOpenAI | None = None) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def generate(self, prompt: PromptResult, options: GenerationOptions) -> GenerationResult:
        try:
            response = await self._client.chat.completions.create(
                model=options.model,
                messages=[
                    {"role": "system", "content": prompt.system},
                    {"role": "user", "content": prompt.user},
                ],
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        except Exception as e:
            raise GenerationFailure(f"OpenAI generation failed: {e}") from e

        if not response.choices:
            raise GenerationFailure("OpenAI returned no choices")

        choice = response.choices[0]
        usage = response.usage
        result = GenerationResult(
            content=choice.message.content or "",
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            finish_reason=choice.finish_reason or "",
            model=response.model or options.model,
        )
        logger.info(
            "generation_completed",
            model=result.model,
            finish_reason=result.finish_reason,
            total_tokens=result.total_tokens,
        )
        return result
