"""Google Gemini generator using the google-genai SDK."""

from __future__ import annotations

from google import genai
from google.genai import types

from rag_decision.exceptions import GenerationFailure
from rag_decision.models.domain import GenerationOptions, GenerationResult, PromptResult
from rag_decision.observability.logger import get_logger

logger = get_logger("gemini")

# Gemini finish reasons mapped onto the OpenAI vocabulary the scorer understands.
_FINISH_REASONS = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content_filter",
}


class GeminiGenerator:
    def __init__(self, api_key: str) -> None:
        self._client = genai.Client(api_key=api_key)

    async def generate(self, prompt: PromptResult, options: GenerationOptions) -> GenerationResult:
        try:
            config = types.GenerateContentConfig(
                temperature=options.temperature,
                max_output_tokens=options.max_tokens,
                system_instruction=prompt.system,
            )
            response = await self._client.aio.models.generate_content(
                model=options.model,
                contents=prompt.user,
                config=config,
            )
        except Exception as e:
            raise GenerationFailure(f"Gemini generation failed: {e}") from e

        finish_reason = ""
        if response.candidates and response.candidates[0].finish_reason is not None:
            raw = response.candidates[0].finish_reason
            name = getattr(raw, "name", str(raw))
            finish_reason = _FINISH_REASONS.get(name, name.lower())

        usage = response.usage_metadata
        result = GenerationResult(
            content=response.text or "",
            prompt_tokens=(usage.prompt_token_count or 0) if usage else 0,
            completion_tokens=(usage.candidates_token_count or 0) if usage else 0,
            finish_reason=finish_reason,
            model=options.model,
        )
        logger.info(
            "generation_completed",
            model=result.model,
            finish_reason=result.finish_reason,
            total_tokens=result.total_tokens,
        )
        return result
