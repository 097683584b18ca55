"""Tests for the chat orchestrator."""

import asyncio

import pytest
from conftest import (
    GOOD_ANSWER,
    FakeAuditStore,
    FakeGenerator,
    FakeRetriever,
    generation_result,
    make_chunk,
)

from rag_decision.config.policies import ConfidencePolicy
from rag_decision.exceptions import AuditError, GenerationFailure, RetrievalFailure
from rag_decision.models.domain import ChatOptions
from rag_decision.models.enums import IssueType, QueryKind
from rag_decision.scoring.confidence import ConfidenceAssessor

QUERY = "How do I calculate the NAV for a fund portfolio?"


@pytest.mark.asyncio
async def test_happy_path_returns_generated_answer(build_service, sample_chunks):
    retriever = FakeRetriever(sample_chunks)
    generator = FakeGenerator(generation_result())
    audit = FakeAuditStore()
    service = build_service(retriever, generator, audit)

    response = await service.generate_response(QUERY, session_id="s1")
    await service.drain_audits()

    assert response.message == GOOD_ANSWER
    assert response.strategy is None
    assert response.is_error is False
    assert response.confidence_level == "high"
    assert response.query_classification.kind == QueryKind.USER
    assert response.query_classification.complexity == "complex"
    assert response.token_optimization.chunks_selected == 5
    assert response.token_optimization.total_tokens == 1000
    assert all(c.is_valid for c in response.citations)
    assert len(response.citations) == 3
    assert [s.source_id for s in response.sources][0] == "guide-a"
    assert len(response.sources) == 5
    assert response.session_id == "s1"
    assert response.trace_id

    assert len(audit.entries) == 1
    entry = audit.entries[0]
    assert entry.trace_id == response.trace_id
    assert entry.tokens_used == 1000
    assert [s["name"] for s in entry.spans][:2] == ["classification", "budget"]


@pytest.mark.asyncio
async def test_retrieval_options_come_from_settings(build_service, sample_chunks, settings):
    retriever = FakeRetriever(sample_chunks)
    service = build_service(retriever, FakeGenerator(generation_result()))
    history = [{"role": "user", "content": "Earlier question"}]

    await service.generate_response(QUERY, options=ChatOptions(conversation_history=history))

    query, context, options = retriever.calls[0]
    assert query == QUERY
    assert context == history
    assert options.max_results == settings.retrieval_max_results
    assert options.strategy == settings.retrieval_strategy


@pytest.mark.asyncio
async def test_usage_is_recorded_for_budget_feedback(build_service, sample_chunks):
    service = build_service(FakeRetriever(sample_chunks), FakeGenerator(generation_result()))
    await service.generate_response(QUERY)
    snapshot = service.budget_manager.stats.snapshot()
    assert snapshot["complex"].count == 1
    assert snapshot["complex"].used == 1000


@pytest.mark.asyncio
async def test_system_query_skips_retrieval_and_generation(build_service):
    retriever = FakeRetriever()
    generator = FakeGenerator(generation_result())
    service = build_service(retriever, generator)

    response = await service.generate_response("ping")

    assert response.message == "pong"
    assert response.confidence == 1.0
    assert response.token_optimization.total_tokens == 0
    assert response.budget_allocation.total_budget == 0
    assert response.query_classification.kind == QueryKind.SYSTEM
    assert retriever.calls == []
    assert generator.calls == []


@pytest.mark.asyncio
async def test_system_test_and_health_messages(build_service):
    service = build_service(FakeRetriever(), FakeGenerator(generation_result()))
    assert (await service.generate_response("test")).message == "System test successful"
    health = await service.generate_response("health")
    assert health.message.startswith("System healthy")


@pytest.mark.asyncio
async def test_no_candidates_uses_no_sources_fallback(build_service):
    generator = FakeGenerator(generation_result())
    service = build_service(FakeRetriever([]), generator)

    response = await service.generate_response(QUERY)

    assert response.strategy == IssueType.NO_RELEVANT_SOURCES
    assert response.confidence == 0.2
    assert response.confidence_level == "very_low"
    assert response.suggestions
    assert generator.calls == []


@pytest.mark.asyncio
async def test_retrieval_failure_degrades_to_no_sources(build_service):
    service = build_service(
        FakeRetriever(error=RetrievalFailure("down")), FakeGenerator(generation_result())
    )
    response = await service.generate_response(QUERY)
    assert response.strategy == IssueType.NO_RELEVANT_SOURCES
    assert response.is_error is False


@pytest.mark.asyncio
async def test_all_candidates_below_threshold_uses_low_retrieval(build_service):
    weak = [make_chunk(f"w{i}", f"src-{i}", similarity=0.2) for i in range(3)]
    generator = FakeGenerator(generation_result())
    service = build_service(FakeRetriever(weak), generator)

    response = await service.generate_response(QUERY)

    assert response.strategy == IssueType.LOW_RETRIEVAL_CONFIDENCE
    assert response.confidence == 0.3
    assert response.token_optimization.chunks_selected == 0
    assert generator.calls == []


@pytest.mark.asyncio
async def test_generation_failure_returns_system_error(build_service, sample_chunks, settings):
    generator = FakeGenerator(GenerationFailure("provider down"))
    service = build_service(FakeRetriever(sample_chunks), generator)

    response = await service.generate_response(QUERY)

    assert response.strategy == IssueType.SYSTEM_ERROR
    assert response.is_error is True
    assert response.confidence == 0.1
    assert len(generator.calls) == settings.generation_max_retries


@pytest.mark.asyncio
async def test_truncated_answer_offers_continuation(build_service, sample_chunks):
    generator = FakeGenerator(generation_result(finish_reason="length"))
    service = build_service(FakeRetriever(sample_chunks), generator)

    response = await service.generate_response(QUERY)

    assert response.strategy == IssueType.INCOMPLETE_RESPONSE
    assert response.message.startswith(GOOD_ANSWER)
    assert "may be incomplete" in response.message


@pytest.mark.asyncio
async def test_uncited_answer_gets_citation_warning(build_service, sample_chunks):
    uncited = GOOD_ANSWER.replace(" [1]", "").replace(" [2]", "").replace(" [3]", "")
    service = build_service(FakeRetriever(sample_chunks), FakeGenerator(generation_result(uncited)))

    response = await service.generate_response(QUERY)

    assert response.strategy == IssueType.POOR_CITATION_QUALITY
    assert response.message.startswith(uncited)
    assert "Citation accuracy is below optimal levels" in response.warnings


@pytest.mark.asyncio
async def test_low_severity_issue_is_a_warning_when_confident(build_service, sample_chunks):
    chunks = [
        make_chunk(
            c.id,
            c.source_id,
            c.similarity_score,
            c.quality_score,
            page=c.page,
            content=f"Liquidity gates limit fund redemptions when {c.id} conditions are met.",
        )
        for c in sample_chunks
    ]
    service = build_service(FakeRetriever(chunks), FakeGenerator(generation_result()))

    response = await service.generate_response("Liquidity gates")

    assert response.strategy is None
    assert response.message == GOOD_ANSWER
    assert "Query is unclear or ambiguous" in response.warnings
    assert any(i.type == IssueType.QUERY_AMBIGUITY for i in response.issues)


@pytest.mark.asyncio
async def test_failed_audit_write_does_not_fail_request(build_service, sample_chunks):
    audit = FakeAuditStore(error=AuditError("disk full"))
    service = build_service(FakeRetriever(sample_chunks), FakeGenerator(generation_result()), audit)

    response = await service.generate_response(QUERY)
    await service.drain_audits()

    assert response.message == GOOD_ANSWER


@pytest.mark.asyncio
async def test_unexpected_error_returns_error_response(build_service, sample_chunks):
    class BrokenSelector:
        def select(self, candidates, query, constraints):
            raise RuntimeError("bug")

    service = build_service(
        FakeRetriever(sample_chunks), FakeGenerator(generation_result()), selector=BrokenSelector()
    )
    response = await service.generate_response(QUERY)

    assert response.is_error is True
    assert response.strategy == IssueType.SYSTEM_ERROR
    assert "experiencing difficulties" in response.message


@pytest.mark.asyncio
async def test_missing_collaborators_degrade_gracefully(build_service):
    service = build_service(retriever=None, generator=None)
    response = await service.generate_response(QUERY)
    assert response.strategy == IssueType.NO_RELEVANT_SOURCES


@pytest.mark.asyncio
async def test_oversized_top_chunk_is_trimmed_into_budget(build_service):
    passage = make_chunk("big", similarity=0.95, quality=0.9, tokens=400)
    generator = FakeGenerator(generation_result())
    service = build_service(FakeRetriever([passage]), generator)

    response = await service.generate_response(
        "What is NAV?", options=ChatOptions(conversation_history=[])
    )

    optimization = response.token_optimization
    assert optimization.chunk_budget < 400
    assert optimization.chunks_selected == 1
    assert optimization.estimated_chunk_tokens <= optimization.chunk_budget
    assert response.strategy != IssueType.LOW_RETRIEVAL_CONFIDENCE
    assert len(generator.calls) == 1
    assert passage.estimated_tokens == 400


@pytest.mark.asyncio
async def test_unexpected_error_response_is_audited(build_service, sample_chunks):
    class BrokenSelector:
        def select(self, candidates, query, constraints):
            raise RuntimeError("bug")

    audit = FakeAuditStore()
    service = build_service(
        FakeRetriever(sample_chunks),
        FakeGenerator(generation_result()),
        audit,
        selector=BrokenSelector(),
    )

    response = await service.generate_response(QUERY, session_id="s9")
    await service.drain_audits()

    assert len(audit.entries) == 1
    entry = audit.entries[0]
    assert entry.trace_id == response.trace_id
    assert entry.session_id == "s9"
    assert entry.is_error is True
    assert entry.strategy == IssueType.SYSTEM_ERROR
    assert entry.issues == [IssueType.SYSTEM_ERROR]


class SlowRetriever(FakeRetriever):
    async def retrieve(self, query, conversation_context, options):
        await asyncio.sleep(10)
        return await super().retrieve(query, conversation_context, options)


@pytest.mark.asyncio
async def test_retrieval_timeout_degrades_to_no_sources(build_service, sample_chunks, settings):
    generator = FakeGenerator(generation_result())
    fast = settings.model_copy(update={"request_timeout_s": 0.05})
    service = build_service(SlowRetriever(sample_chunks), generator, settings=fast)

    response = await asyncio.wait_for(service.generate_response(QUERY), timeout=2)

    assert response.strategy == IssueType.NO_RELEVANT_SOURCES
    assert response.is_error is False
    assert generator.calls == []


class BlockingGenerator:
    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.calls = 0

    async def generate(self, prompt, options):
        self.calls += 1
        self.started.set()
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_cancelled_request_records_no_usage(build_service, sample_chunks):
    generator = BlockingGenerator()
    audit = FakeAuditStore()
    service = build_service(FakeRetriever(sample_chunks), generator, audit)

    task = asyncio.create_task(service.generate_response(QUERY))
    await asyncio.wait_for(generator.started.wait(), timeout=2)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=2)
    await service.drain_audits()

    assert task.cancelled()
    assert generator.calls == 1
    assert service.budget_manager.stats.snapshot() == {}
    assert audit.entries == []


class RecordingAssessor(ConfidenceAssessor):
    def __init__(self, policy=None) -> None:
        super().__init__(policy)
        self.contexts = []

    def assess(self, retrieval=None, content=None, context=None, generation=None, extra_issues=()):
        self.contexts.append(context)
        return super().assess(retrieval, content, context, generation, extra_issues)


@pytest.mark.asyncio
async def test_query_analysis_uses_assessor_domain_vocabulary(build_service, sample_chunks):
    assessor = RecordingAssessor(ConfidencePolicy(domain_terms=("portfolio",)))
    service = build_service(
        FakeRetriever(sample_chunks), FakeGenerator(generation_result()), assessor=assessor
    )

    await service.generate_response(QUERY)

    assert assessor.contexts[-1].analysis.entities == ("portfolio",)
