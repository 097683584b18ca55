"""Chat orchestrator: classify, budget, retrieve, select, generate, assess, fall back."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime

from rag_decision.budget.token_budget import TokenBudgetManager
from rag_decision.config.constants import SYSTEM_DEFAULT_MESSAGE, SYSTEM_QUERY_MESSAGES
from rag_decision.config.settings import Settings
from rag_decision.exceptions import GenerationFailure, RetrievalFailure
from rag_decision.fallback.dispatcher import FallbackDispatcher, system_error_response
from rag_decision.generation.citations import extract_and_validate
from rag_decision.generation.retry import generate_with_retry
from rag_decision.models.domain import (
    AuditEntry,
    BudgetAllocation,
    BudgetContext,
    CandidateChunk,
    ChatOptions,
    Classification,
    ClassifierContext,
    CitationReport,
    ConfidenceAssessment,
    FallbackContext,
    FallbackResponse,
    GenerationOptions,
    GenerationResult,
    Issue,
    PromptResult,
    RetrievalOptions,
    SelectionConstraints,
    SelectionResult,
)
from rag_decision.models.enums import IssueType, QueryKind, Severity
from rag_decision.models.schemas import (
    BudgetAllocationInfo,
    ChatResponse,
    Citation,
    IssueInfo,
    QueryClassificationInfo,
    Source,
    TokenOptimization,
)
from rag_decision.models.signals import (
    ContentSignals,
    ContextSignals,
    GenerationSignals,
    RetrievalSignals,
)
from rag_decision.observability.logger import get_logger
from rag_decision.observability.metrics import (
    log_budget_metrics,
    log_classification_metrics,
    log_confidence_metrics,
    log_selection_metrics,
)
from rag_decision.observability.tracing import TraceContext
from rag_decision.protocols.audit import AuditSink
from rag_decision.protocols.generator import Generator, PromptBuilder
from rag_decision.protocols.retriever import Retriever
from rag_decision.query.analysis import analyze_query
from rag_decision.query.classifier import QueryClassifier
from rag_decision.retrieval.chunk_selector import ChunkSelector
from rag_decision.scoring.confidence import ConfidenceAssessor, confidence_level
from rag_decision.scoring.text_signals import contains_phrase

logger = get_logger("chat_service")

_EMPTY_SELECTION = SelectionResult(
    selected_chunks=(),
    estimated_tokens=0,
    dropped_count=0,
    per_source_counts={},
    evaluated_count=0,
    token_budget=0,
)


class RAGChatService:
    def __init__(
        self,
        classifier: QueryClassifier,
        budget_manager: TokenBudgetManager,
        selector: ChunkSelector,
        assessor: ConfidenceAssessor,
        dispatcher: FallbackDispatcher,
        retriever: Retriever | None,
        prompt_builder: PromptBuilder,
        generator: Generator | None,
        audit_store: AuditSink | None,
        settings: Settings,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._classifier = classifier
        self._budget = budget_manager
        self._selector = selector
        self._assessor = assessor
        self._dispatcher = dispatcher
        self._retriever = retriever
        self._prompt_builder = prompt_builder
        self._generator = generator
        self._audit_store = audit_store
        self._settings = settings
        self._clock = clock
        self._pending_audits: set[asyncio.Task] = set()

    @property
    def budget_manager(self) -> TokenBudgetManager:
        return self._budget

    async def generate_response(
        self,
        query: str,
        session_id: str = "",
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Answer ``query``. Never raises for user-facing failures."""
        trace = TraceContext()
        options = options or ChatOptions()
        try:
            return await self._generate(query, session_id, options, trace)
        except Exception as e:
            logger.error(
                "chat_pipeline_failed",
                trace_id=trace.trace_id,
                error=str(e),
                exc_info=True,
            )
            return self._error_response(query, session_id, trace)

    async def _generate(
        self,
        query: str,
        session_id: str,
        options: ChatOptions,
        trace: TraceContext,
    ) -> ChatResponse:
        now = self._clock()

        # STEP 1: Classification
        with trace.span("classification"):
            classification = self._classifier.classify(
                query,
                session_id,
                ClassifierContext(user_agent=options.user_agent, timestamp=now),
            )
        log_classification_metrics(trace.trace_id, classification)

        if classification.kind == QueryKind.SYSTEM:
            return self._system_response(query, session_id, classification, trace)

        # STEP 2: Budget
        with trace.span("budget"):
            allocation = self._budget.calculate_budget(
                classification,
                BudgetContext(
                    conversation_history=options.conversation_history,
                    expected_confidence=options.expected_confidence,
                    query_length=len(query),
                    domain=options.domain,
                    user_tier=options.user_tier,
                    timestamp=now,
                ),
            )
        log_budget_metrics(trace.trace_id, allocation)

        # STEP 3: Retrieval
        history = list(options.conversation_history or [])
        with trace.span("retrieval") as span:
            candidates = await self._retrieve(query, history, trace.trace_id)
            span.metadata["candidates"] = len(candidates)

        # STEP 4: Chunk selection
        with trace.span("selection"):
            selection = self._selector.select(
                candidates,
                query,
                SelectionConstraints(
                    token_budget=allocation.chunks,
                    max_chunks=classification.max_chunks,
                    complexity=classification.complexity,
                ),
            )
        log_selection_metrics(trace.trace_id, selection)

        context = ContextSignals(
            query=query,
            analysis=analyze_query(query, self._assessor.policy.domain_terms),
            has_history=bool(history),
        )

        if not selection.selected_chunks:
            return self._respond_without_generation(
                query, session_id, classification, allocation, candidates, selection, context, trace
            )

        selected = list(selection.selected_chunks)

        # STEP 5: Prompt assembly and generation
        with trace.span("prompt"):
            prompt = self._prompt_builder.assemble_prompt(query, selected, history, allocation)

        generation: GenerationResult | None = None
        with trace.span("generation") as span:
            try:
                generation = await self._generate_answer(prompt)
            except GenerationFailure as e:
                span.metadata["error"] = type(e).__name__
                logger.error(
                    "generation_failed",
                    trace_id=trace.trace_id,
                    error=str(e),
                )

        if generation is None:
            with trace.span("confidence"):
                assessment = self._assessor.assess(
                    retrieval=RetrievalSignals.from_chunks(selected),
                    context=context,
                    extra_issues=[
                        Issue(
                            type=IssueType.SYSTEM_ERROR,
                            severity=Severity.HIGH,
                            component="generation",
                            score=0.0,
                            description="Answer generation failed",
                        )
                    ],
                )
            log_confidence_metrics(trace.trace_id, assessment)
            fallback = self._dispatch(assessment, FallbackContext(query=query))
            return self._finalize(
                query,
                session_id,
                classification,
                allocation,
                selection,
                assessment,
                fallback,
                trace,
                answer="",
                generation=None,
                citations=None,
            )

        # STEP 6: Citations and usage feedback
        with trace.span("citations"):
            citations = extract_and_validate(generation.content, prompt.citations, selected)
        self._budget.record_usage(
            allocation.complexity, allocation.total_budget, generation.total_tokens
        )

        # STEP 7: Confidence
        with trace.span("confidence"):
            assessment = self._assessor.assess(
                retrieval=RetrievalSignals.from_chunks(selected),
                content=ContentSignals.from_report(generation.content, citations),
                context=context,
                generation=GenerationSignals(
                    model=generation.model or self._model_name(),
                    temperature=self._settings.llm_temperature,
                    response_length=len(generation.content),
                    finish_reason=generation.finish_reason,
                    prompt_tokens=generation.prompt_tokens,
                    completion_tokens=generation.completion_tokens,
                ),
            )
        log_confidence_metrics(trace.trace_id, assessment)

        # STEP 8: Fallback (only if needed)
        actionable = self._actionable_issues(assessment)
        fallback = None
        if actionable:
            fallback = self._dispatch(
                assessment,
                FallbackContext(
                    query=query,
                    original_response=generation.content,
                    original_confidence=assessment.overall,
                ),
                actionable,
            )

        return self._finalize(
            query,
            session_id,
            classification,
            allocation,
            selection,
            assessment,
            fallback,
            trace,
            answer=generation.content,
            generation=generation,
            citations=citations,
        )

    # --- Stages -----------------------------------------------------------

    async def _retrieve(self, query: str, history: list[dict], trace_id: str) -> list[CandidateChunk]:
        if self._retriever is None:
            logger.warning("retriever_not_configured", trace_id=trace_id)
            return []
        options = RetrievalOptions(
            max_results=self._settings.retrieval_max_results,
            strategy=self._settings.retrieval_strategy,
            threshold=self._settings.retrieval_threshold,
        )
        try:
            async with asyncio.timeout(self._settings.request_timeout_s):
                result = await self._retriever.retrieve(query, history, options)
        except TimeoutError:
            logger.error("retrieval_timeout", trace_id=trace_id)
            return []
        except RetrievalFailure as e:
            logger.error("retrieval_failed", trace_id=trace_id, error=str(e))
            return []
        except Exception as e:
            logger.error("retrieval_failed", trace_id=trace_id, error=str(e), exc_info=True)
            return []
        return list(result.chunks)

    async def _generate_answer(self, prompt: PromptResult) -> GenerationResult:
        if self._generator is None:
            raise GenerationFailure("No generator configured")
        return await generate_with_retry(
            self._generator,
            prompt,
            GenerationOptions(
                model=self._model_name(),
                max_tokens=self._settings.llm_max_tokens,
                temperature=self._settings.llm_temperature,
            ),
            timeout_s=self._settings.request_timeout_s,
            max_attempts=self._settings.generation_max_retries,
            backoff_base_s=self._settings.generation_backoff_base_s,
        )

    def _model_name(self) -> str:
        if self._settings.llm_provider == "gemini":
            return self._settings.gemini_model
        return self._settings.openai_chat_model

    def _respond_without_generation(
        self,
        query: str,
        session_id: str,
        classification: Classification,
        allocation: BudgetAllocation,
        candidates: list[CandidateChunk],
        selection: SelectionResult,
        context: ContextSignals,
        trace: TraceContext,
    ) -> ChatResponse:
        extra: list[Issue] = []
        if candidates:
            extra.append(
                Issue(
                    type=IssueType.LOW_RETRIEVAL_CONFIDENCE,
                    severity=Severity.MEDIUM,
                    component="retrieval",
                    score=0.0,
                    description="No retrieved source passed the selection thresholds",
                )
            )
        with trace.span("confidence"):
            assessment = self._assessor.assess(
                retrieval=RetrievalSignals.from_chunks(candidates),
                context=context,
                extra_issues=extra,
            )
        log_confidence_metrics(trace.trace_id, assessment)
        fallback = self._dispatch(assessment, FallbackContext(query=query))
        return self._finalize(
            query,
            session_id,
            classification,
            allocation,
            selection,
            assessment,
            fallback,
            trace,
            answer="",
            generation=None,
            citations=None,
        )

    def _actionable_issues(self, assessment: ConfidenceAssessment) -> list[Issue]:
        medium = self._settings.confidence_medium_threshold
        return [
            i
            for i in assessment.issues
            if i.severity != Severity.LOW or assessment.overall < medium
        ]

    def _dispatch(
        self,
        assessment: ConfidenceAssessment,
        ctx: FallbackContext,
        issues: Sequence[Issue] | None = None,
    ) -> FallbackResponse:
        with_issues = assessment.issues if issues is None else issues
        fallback = self._dispatcher.dispatch(with_issues, ctx)
        if fallback is None:
            # Nothing to recover from yet no answer exists: apologise.
            fallback = system_error_response(ctx.query, self._dispatcher.copy)
        return fallback

    # --- Response building --------------------------------------------------

    def _finalize(
        self,
        query: str,
        session_id: str,
        classification: Classification,
        allocation: BudgetAllocation,
        selection: SelectionResult,
        assessment: ConfidenceAssessment,
        fallback: FallbackResponse | None,
        trace: TraceContext,
        answer: str,
        generation: GenerationResult | None,
        citations: CitationReport | None,
    ) -> ChatResponse:
        confidence = fallback.confidence if fallback else assessment.overall
        level = confidence_level(confidence, self._assessor.policy)
        message = fallback.message if fallback else answer

        warnings: list[str] = []
        if fallback:
            warnings.extend(fallback.warnings)
        if confidence < self._settings.confidence_medium_threshold:
            warnings.append("Response confidence is below the recommended threshold")
        if citations and citations.invalid:
            warnings.append(
                f"{len(citations.invalid)} citation(s) could not be matched to retrieved sources"
            )
        if fallback is None:
            warnings.extend(
                i.description for i in assessment.issues if i.severity == Severity.LOW
            )

        tokens_used = generation.total_tokens if generation else 0
        response = ChatResponse(
            message=message,
            confidence=round(confidence, 4),
            confidence_level=level,
            citations=[
                Citation(
                    text=c.text,
                    source_id=c.source_id,
                    chunk_id=c.chunk_id,
                    page=c.page,
                    is_valid=c.is_valid,
                )
                for c in (citations.checks if citations else [])
            ],
            sources=self._sources(selection.selected_chunks),
            token_optimization=TokenOptimization(
                budget=allocation.total_budget,
                chunk_budget=allocation.chunks,
                chunks_evaluated=selection.evaluated_count,
                chunks_selected=len(selection.selected_chunks),
                estimated_chunk_tokens=selection.estimated_tokens,
                prompt_tokens=generation.prompt_tokens if generation else 0,
                completion_tokens=generation.completion_tokens if generation else 0,
                total_tokens=tokens_used,
            ),
            query_classification=self._classification_info(classification),
            budget_allocation=self._allocation_info(allocation),
            warnings=warnings,
            suggestions=list(fallback.suggestions) if fallback else [],
            clarification_options=list(fallback.clarification_options) if fallback else [],
            strategy=fallback.strategy if fallback else None,
            issues=[
                IssueInfo(type=i.type, severity=i.severity, component=i.component, score=i.score)
                for i in assessment.issues
            ],
            quality=assessment.quality.grade,
            session_id=session_id,
            trace_id=trace.trace_id,
            is_error=fallback.is_error if fallback else False,
            processing_time_ms=round(trace.elapsed_ms, 2),
        )

        self._audit(
            trace.to_audit_entry(
                session_id=session_id,
                query=query,
                kind=classification.kind,
                complexity=classification.complexity,
                confidence=response.confidence,
                confidence_level=level,
                strategy=response.strategy,
                tokens_used=tokens_used,
                issues=[i.type for i in assessment.issues],
                is_error=response.is_error,
            )
        )
        return response

    def _system_response(
        self,
        query: str,
        session_id: str,
        classification: Classification,
        trace: TraceContext,
    ) -> ChatResponse:
        query_lower = query.lower().strip()
        if query_lower in SYSTEM_QUERY_MESSAGES:
            message = SYSTEM_QUERY_MESSAGES[query_lower]
        elif contains_phrase(query_lower, "health") or contains_phrase(query_lower, "status"):
            message = self._health_summary()
        else:
            message = SYSTEM_DEFAULT_MESSAGE

        allocation = self._budget.calculate_budget(classification)
        response = ChatResponse(
            message=message,
            confidence=1.0,
            confidence_level="high",
            token_optimization=TokenOptimization(
                budget=0,
                chunk_budget=0,
                chunks_evaluated=0,
                chunks_selected=0,
                estimated_chunk_tokens=0,
                prompt_tokens=0,
                completion_tokens=0,
                total_tokens=0,
            ),
            query_classification=self._classification_info(classification),
            budget_allocation=self._allocation_info(allocation),
            session_id=session_id,
            trace_id=trace.trace_id,
            processing_time_ms=round(trace.elapsed_ms, 2),
        )
        logger.info("system_query_answered", trace_id=trace.trace_id)
        self._audit(
            trace.to_audit_entry(
                session_id=session_id,
                query=query,
                kind=classification.kind,
                complexity=None,
                confidence=1.0,
                confidence_level="high",
                strategy=None,
                tokens_used=0,
                issues=[],
            )
        )
        return response

    def _health_summary(self) -> str:
        retrieval = "configured" if self._retriever is not None else "not configured"
        generation = (
            f"{self._settings.llm_provider} configured"
            if self._generator is not None
            else "not configured"
        )
        return f"System healthy. Retrieval: {retrieval}. Generation: {generation}."

    def _error_response(self, query: str, session_id: str, trace: TraceContext) -> ChatResponse:
        fallback = system_error_response(query, self._dispatcher.copy)
        level = confidence_level(fallback.confidence, self._assessor.policy)
        response = ChatResponse(
            message=fallback.message,
            confidence=fallback.confidence,
            confidence_level=level,
            token_optimization=TokenOptimization(
                budget=0,
                chunk_budget=0,
                chunks_evaluated=0,
                chunks_selected=0,
                estimated_chunk_tokens=0,
                prompt_tokens=0,
                completion_tokens=0,
                total_tokens=0,
            ),
            query_classification=QueryClassificationInfo(
                kind=QueryKind.USER,
                complexity="standard",
                confidence=0.5,
                reasoning="Unavailable due to an internal error",
                skip_rag=False,
                cacheable=False,
            ),
            budget_allocation=BudgetAllocationInfo(
                total_budget=0,
                chunks=0,
                prompt=0,
                response=0,
                reserve=0,
                applied_adjustments=[],
                reasoning="",
            ),
            strategy=fallback.strategy,
            session_id=session_id,
            trace_id=trace.trace_id,
            is_error=True,
            processing_time_ms=round(trace.elapsed_ms, 2),
        )
        self._audit(
            trace.to_audit_entry(
                session_id=session_id,
                query=query,
                kind=QueryKind.USER,
                complexity=None,
                confidence=fallback.confidence,
                confidence_level=level,
                strategy=fallback.strategy,
                tokens_used=0,
                issues=[IssueType.SYSTEM_ERROR],
                is_error=True,
            )
        )
        return response

    @staticmethod
    def _sources(chunks: Sequence[CandidateChunk]) -> list[Source]:
        best: dict[tuple[str, int | None], CandidateChunk] = {}
        for chunk in chunks:
            key = (chunk.source_id, chunk.page)
            existing = best.get(key)
            if existing is None or chunk.similarity_score > existing.similarity_score:
                best[key] = chunk
        ordered = sorted(best.values(), key=lambda c: c.similarity_score, reverse=True)
        return [
            Source(
                source_id=c.source_id,
                page=c.page,
                heading=c.heading,
                similarity=round(c.similarity_score, 4),
            )
            for c in ordered
        ]

    @staticmethod
    def _classification_info(classification: Classification) -> QueryClassificationInfo:
        return QueryClassificationInfo(
            kind=classification.kind,
            complexity=classification.complexity,
            subtype=classification.subtype,
            confidence=classification.confidence,
            reasoning=classification.reasoning,
            skip_rag=classification.skip_rag,
            cacheable=classification.cacheable,
            cache_key=classification.cache_key,
            cache_ttl=classification.cache_ttl,
        )

    @staticmethod
    def _allocation_info(allocation: BudgetAllocation) -> BudgetAllocationInfo:
        return BudgetAllocationInfo(
            total_budget=allocation.total_budget,
            chunks=allocation.chunks,
            prompt=allocation.prompt,
            response=allocation.response,
            reserve=allocation.reserve,
            applied_adjustments=allocation.applied_adjustments,
            reasoning=allocation.reasoning,
        )

    # --- Audit (fire and forget) -------------------------------------------

    def _audit(self, entry: AuditEntry) -> None:
        if self._audit_store is None:
            return
        task = asyncio.create_task(self._audit_store.save_entry(entry))
        self._pending_audits.add(task)
        task.add_done_callback(self._on_audit_done)

    def _on_audit_done(self, task: asyncio.Task) -> None:
        self._pending_audits.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("audit_write_failed", error=str(error))

    async def drain_audits(self) -> None:
        """Wait for outstanding audit writes; used at shutdown and in tests."""
        if self._pending_audits:
            await asyncio.gather(*list(self._pending_audits), return_exceptions=True)
