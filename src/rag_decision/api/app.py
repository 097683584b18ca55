"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from rag_decision.api.middleware import RequestTimingMiddleware
from rag_decision.api.routes_budget import router as budget_router
from rag_decision.api.routes_chat import router as chat_router
from rag_decision.api.routes_health import router as health_router
from rag_decision.budget.token_budget import TokenBudgetManager
from rag_decision.config.policies import BudgetPolicy, ConfidencePolicy, SelectionPolicy
from rag_decision.config.settings import Settings
from rag_decision.exceptions import ConfigurationError
from rag_decision.fallback.dispatcher import FallbackCopy, FallbackDispatcher
from rag_decision.generation.gemini_provider import GeminiGenerator
from rag_decision.generation.openai_provider import OpenAIGenerator
from rag_decision.generation.prompt_assembler import PromptAssembler
from rag_decision.observability.logger import get_logger, setup_logging
from rag_decision.pipeline.chat_service import RAGChatService
from rag_decision.protocols.generator import Generator
from rag_decision.query.classifier import QueryClassifier
from rag_decision.retrieval.chunk_selector import ChunkSelector
from rag_decision.retrieval.http_retriever import HttpRetriever
from rag_decision.scoring.confidence import ConfidenceAssessor
from rag_decision.storage.sqlite_audit_store import SQLiteAuditStore

logger = get_logger("app")


def build_generator(settings: Settings) -> Generator:
    match settings.llm_provider:
        case "openai":
            return OpenAIGenerator(api_key=settings.openai_api_key)
        case "gemini":
            return GeminiGenerator(api_key=settings.google_api_key)
        case other:
            raise ConfigurationError(f"Unknown LLM provider: {other!r}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    setup_logging(settings.log_level, settings.log_json)

    # Policies (validated at construction)
    budget_policy = BudgetPolicy.from_settings(settings)
    selection_policy = SelectionPolicy.from_settings(settings)
    confidence_policy = ConfidencePolicy.from_settings(settings)

    # Storage
    audit_store = SQLiteAuditStore(settings.sqlite_audit_db_path)
    await audit_store.initialize()

    # Collaborators
    retriever = HttpRetriever(
        base_url=settings.retrieval_service_url,
        timeout_s=settings.request_timeout_s,
    )
    generator = build_generator(settings)

    chat_service = RAGChatService(
        classifier=QueryClassifier(),
        budget_manager=TokenBudgetManager(budget_policy),
        selector=ChunkSelector(selection_policy),
        assessor=ConfidenceAssessor(confidence_policy),
        dispatcher=FallbackDispatcher(FallbackCopy(domain=settings.domain_name)),
        retriever=retriever,
        prompt_builder=PromptAssembler(domain=settings.domain_name),
        generator=generator,
        audit_store=audit_store,
        settings=settings,
    )

    # Attach to app state
    app.state.chat_service = chat_service
    app.state.audit_store = audit_store

    logger.info(
        "startup_complete",
        llm_provider=settings.llm_provider,
        retrieval_service=settings.retrieval_service_url,
        audit_entries=await audit_store.count_entries(),
    )

    yield

    # Shutdown: flush pending audit writes
    await chat_service.drain_audits()
    await retriever.close()
    logger.info("shutdown_complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    app = FastAPI(
        title="RAG Decision Engine",
        version="1.0.0",
        description="Classification, token budgeting, chunk selection and confidence-driven fallbacks for RAG chat",
        lifespan=lifespan,
    )
    app.state.settings = settings or Settings()
    app.add_middleware(RequestTimingMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(chat_router, tags=["chat"])
    app.include_router(budget_router, tags=["budget"])
    return app
