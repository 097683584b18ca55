"""HTTP client for the remote retrieval service."""

from __future__ import annotations

import httpx

from rag_decision.exceptions import RetrievalFailure
from rag_decision.models.domain import CandidateChunk, RetrievalOptions, RetrievalResult
from rag_decision.observability.logger import get_logger

logger = get_logger("http_retriever")


class HttpRetriever:
    """POSTs to ``{base_url}/retrieve`` and maps the JSON payload onto candidate chunks."""

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_s),
        )

    async def retrieve(
        self,
        query: str,
        conversation_context: list[dict],
        options: RetrievalOptions,
    ) -> RetrievalResult:
        try:
            response = await self._client.post(
                "/retrieve",
                json={
                    "query": query,
                    "conversation_context": conversation_context,
                    "max_results": options.max_results,
                    "strategy": options.strategy,
                    "threshold": options.threshold,
                },
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RetrievalFailure(f"Retrieval request failed: {e}") from e

        try:
            if not isinstance(data, dict):
                raise TypeError(f"expected an object, got {type(data).__name__}")
            result = RetrievalResult(
                chunks=[self._to_chunk(item) for item in data.get("chunks") or []],
                confidence_score=float(data.get("confidence_score") or 0.0),
                query_analysis=data.get("query_analysis") or {},
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RetrievalFailure(f"Malformed retrieval payload: {e}") from e

        logger.info("retrieval_completed", candidates=len(result.chunks))
        return result

    @staticmethod
    def _to_chunk(item: dict) -> CandidateChunk:
        page = item.get("page")
        return CandidateChunk(
            id=str(item["id"]),
            content=str(item.get("content", "")),
            similarity_score=float(item.get("similarity_score", 0.0)),
            quality_score=float(item.get("quality_score", 0.5)),
            source_id=str(item.get("source_id", "")),
            estimated_tokens=int(item.get("estimated_tokens", 0)),
            page=int(page) if page is not None else None,
            heading=item.get("heading"),
        )

    async def close(self) -> None:
        await self._client.aclose()
