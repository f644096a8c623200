"""FastAPI entrypoint for question answering and trace inspection."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from analytics_agent.agent.instructions import InstructionBuilder
from analytics_agent.agent.orchestrator import AgentOrchestrator
from analytics_agent.agent.registry import ToolRegistry
from analytics_agent.agent.tools import register_builtin_tools
from analytics_agent.config import (
    AgentConfig,
    InstructionsConfig,
    QueryConfig,
    RetrievalConfig,
    Settings,
    ShaperConfig,
)
from analytics_agent.ingest.parser import ParserRegistry
from analytics_agent.ingest.pipeline import IngestPipeline
from analytics_agent.obs.tracing import TraceStore
from analytics_agent.providers.langchain_chat import LangChainChatAdapter
from analytics_agent.query.guard import QuerySafetyGuard
from analytics_agent.query.store import ClickHouseHttpStore
from analytics_agent.retrieval.augmenter import RetrievalAugmenter
from analytics_agent.retrieval.embedder import HashingEmbedder
from analytics_agent.retrieval.vector_store import InMemoryVectorStore
from analytics_agent.shaping.shaper import ResultShaper

logger = logging.getLogger(__name__)


class AskRequest(BaseModel):
    question: str = Field(min_length=1)
    max_tool_calls: int | None = Field(default=None, ge=1, le=50)


def _create_llm(settings: Settings) -> Any:
    if not settings.llm_api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=settings.llm_model,
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        timeout=settings.provider_timeout_seconds,
        max_retries=0,
        temperature=0,
    )


def build_orchestrator(
    settings: Settings, *, trace_store: TraceStore | None = None
) -> AgentOrchestrator | None:
    """Wire the production object graph; `None` when no model key is set."""

    llm = _create_llm(settings)
    if llm is None:
        logger.warning("No LLM API key configured; /ask is disabled")
        return None

    store = ClickHouseHttpStore(
        url=settings.clickhouse_url,
        username=settings.clickhouse_user,
        password=settings.clickhouse_password,
        database=settings.clickhouse_database,
    )
    shaper_config = ShaperConfig()
    registry = ToolRegistry()
    register_builtin_tools(
        registry, QuerySafetyGuard(store, QueryConfig()), ResultShaper(shaper_config)
    )

    augmenter = None
    if settings.reference_paths:
        embedder = HashingEmbedder()
        vector_store = InMemoryVectorStore()
        IngestPipeline(ParserRegistry(), embedder, vector_store).ingest_many(
            list(settings.reference_paths)
        )
        augmenter = RetrievalAugmenter(embedder, vector_store, RetrievalConfig())

    return AgentOrchestrator(
        provider=LangChainChatAdapter(llm),
        registry=registry,
        instructions=InstructionBuilder(
            InstructionsConfig(default_database=settings.clickhouse_database)
        ),
        augmenter=augmenter,
        config=AgentConfig(),
        shaper_config=shaper_config,
        trace_store=trace_store,
    )


def create_app(
    orchestrator: AgentOrchestrator | None = None,
    trace_store: TraceStore | None = None,
    *,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the HTTP app.

    Passing an orchestrator skips environment wiring, which is how tests
    drive the endpoints with scripted providers.
    """

    trace_store = trace_store or (orchestrator.trace_store if orchestrator else None) or TraceStore()
    if orchestrator is None:
        settings = settings or Settings()
        logging.basicConfig(level=settings.log_level.upper())
        orchestrator = build_orchestrator(settings, trace_store=trace_store)

    app = FastAPI(title="Analytics Agent", version="0.1.0")

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": orchestrator is not None,
            "tools": [] if orchestrator is None else [spec.name for spec in orchestrator.registry.specs()],
            "trace_count": len(trace_store.list_recent(limit=1000)),
        }

    @app.post("/ask")
    def ask(request: AskRequest) -> dict[str, Any]:
        if orchestrator is None:
            raise HTTPException(status_code=503, detail="No language model is configured")
        reply = orchestrator.answer(request.question, max_tool_calls=request.max_tool_calls)
        usage = reply.usage
        return {
            "answer": reply.content,
            "status": reply.status.value if reply.status else None,
            "tool_calls": reply.metadata.get("tool_calls", 0),
            "provider_turns": reply.metadata.get("provider_turns", 0),
            "error_kind": reply.metadata.get("error_kind"),
            "trace_id": reply.metadata.get("trace_id"),
            "usage": {
                "input_tokens": usage.input_tokens if usage else 0,
                "output_tokens": usage.output_tokens if usage else 0,
            },
        }

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        return {"items": [asdict(record) for record in trace_store.list_recent(limit=limit)]}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return trace_store.summary()

    return app


app = create_app()
