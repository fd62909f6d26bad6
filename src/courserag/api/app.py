"""FastAPI application exposing CourseRAG services."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4

import chromadb
from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from courserag.api.schemas import (
    EmbeddingRequest,
    EmbeddingResponse,
    IndexRequest,
    IndexResponse,
    QueryRequest,
    QueryResponse,
    SearchRequest,
    SearchResponse,
    SourceModel,
)
from courserag.config import ConfigurationError, Settings, get_settings
from courserag.embeddings import (
    ChromaVectorStore,
    DimensionMismatch,
    EmbeddingConfig,
    EmbeddingService,
    SupabaseVectorStore,
    UnsupportedProvider,
    VectorStore,
    build_backend,
)
from courserag.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from courserag.models import RetrievedPassage
from courserag.services import (
    AnswerSynthesizer,
    GenerationConfig,
    IndexingFailed,
    OpenAIAnswerSynthesizer,
    QueryDefaults,
    RAGService,
    TemplateSynthesizer,
)


@dataclass(frozen=True)
class AppDependencies:
    embeddings: EmbeddingService
    store: VectorStore
    rag_service: RAGService


def _build_store(settings: Settings) -> VectorStore:
    if settings.vector_store == "supabase":
        return SupabaseVectorStore(
            url=settings.require("supabase_url"),
            service_key=settings.require("supabase_service_role_key"),
            table=settings.supabase_table,
            match_function=settings.supabase_match_function,
        )
    chroma_client = None
    if settings.chroma_host:
        chroma_client = chromadb.HttpClient(
            host=settings.chroma_host,
            port=settings.chroma_port or 8000,
            ssl=settings.chroma_ssl,
        )
    return ChromaVectorStore(
        collection_name=settings.chroma_collection,
        client=chroma_client,
        persist_directory=None if chroma_client else settings.chroma_persist_dir,
    )


def _build_synthesizer(settings: Settings) -> AnswerSynthesizer:
    if settings.generator_provider == "template":
        return TemplateSynthesizer()
    return OpenAIAnswerSynthesizer(
        api_key=settings.require("openai_api_key"),
        config=GenerationConfig(
            temperature=settings.generator_temperature,
            max_tokens=settings.generator_max_tokens,
        ),
    )


def build_dependencies(settings: Settings) -> AppDependencies:
    backend = build_backend(
        settings.embedding_provider,
        openai_api_key=settings.require("openai_api_key") if settings.embedding_provider == "openai" else None,
        device=settings.embedding_device,
    )
    embeddings = EmbeddingService(
        backend,
        EmbeddingConfig(
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            enable_cache=settings.embedding_cache_enabled,
            cache_size=settings.embedding_cache_size,
            max_retries=settings.embedding_max_retries,
            retry_delay_ms=settings.embedding_retry_delay_ms,
            exponential_backoff=settings.embedding_exponential_backoff,
            dedupe_inflight=settings.embedding_dedupe_inflight,
        ),
    )
    store = _build_store(settings)
    rag_service = RAGService(
        embeddings,
        store,
        synthesizer=_build_synthesizer(settings),
        defaults=QueryDefaults(
            top_k=settings.rag_top_k,
            similarity_threshold=settings.rag_similarity_threshold,
            max_context_tokens=settings.rag_max_context_tokens,
            model=settings.generator_model,
            search_top_k=settings.search_top_k,
        ),
    )
    return AppDependencies(embeddings=embeddings, store=store, rag_service=rag_service)


def _to_source(passage: RetrievedPassage) -> SourceModel:
    return SourceModel(
        id=passage.id,
        content=passage.content,
        similarity=passage.similarity,
        metadata=dict(passage.metadata),
    )


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")
    app = FastAPI(title="CourseRAG API", version="0.1.0")
    app.state.dependencies = deps

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    def _error(request: Request, status_code: int, event: str, detail: str) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error(event, correlation_id=correlation_id, detail=detail)
        return JSONResponse(status_code=status_code, content={"detail": detail, "correlation_id": correlation_id})

    @app.exception_handler(IndexingFailed)
    async def handle_indexing_failed(request: Request, exc: IndexingFailed) -> JSONResponse:
        return _error(request, status.HTTP_502_BAD_GATEWAY, "indexing.error", str(exc))

    @app.exception_handler(UnsupportedProvider)
    async def handle_unsupported_provider(request: Request, exc: UnsupportedProvider) -> JSONResponse:
        return _error(request, status.HTTP_501_NOT_IMPLEMENTED, "provider.unsupported", str(exc))

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        return _error(request, status.HTTP_503_SERVICE_UNAVAILABLE, "configuration.error", str(exc))

    @app.exception_handler(DimensionMismatch)
    async def handle_dimension_mismatch(request: Request, exc: DimensionMismatch) -> JSONResponse:
        return _error(request, status.HTTP_400_BAD_REQUEST, "vector.dimension_mismatch", str(exc))

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
        return _error(request, status.HTTP_400_BAD_REQUEST, "request.invalid", str(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "unhandled.error", "Internal Server Error")

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_rag_service(dep: AppDependencies = Depends(get_dependencies)) -> RAGService:
        return dep.rag_service

    def get_embeddings(dep: AppDependencies = Depends(get_dependencies)) -> EmbeddingService:
        return dep.embeddings

    def get_store(dep: AppDependencies = Depends(get_dependencies)) -> VectorStore:
        return dep.store

    @app.post("/query", response_model=QueryResponse)
    async def query_course(payload: QueryRequest, service: RAGService = Depends(get_rag_service)) -> QueryResponse:
        result = await service.query(
            payload.question,
            payload.course_id,
            top_k=payload.top_k,
            similarity_threshold=payload.similarity_threshold,
            max_context_tokens=payload.max_context_tokens,
            model=payload.model,
            include_metadata=payload.include_metadata,
        )
        return QueryResponse(
            answer=result.answer,
            sources=[_to_source(source) for source in result.sources],
            confidence=result.confidence,
            tokens_used=result.tokens_used,
        )

    @app.post("/search", response_model=SearchResponse)
    async def search_course(payload: SearchRequest, service: RAGService = Depends(get_rag_service)) -> SearchResponse:
        passages = await service.semantic_search(
            payload.query,
            payload.course_id,
            top_k=payload.top_k,
            similarity_threshold=payload.similarity_threshold,
            filters=payload.filters,
        )
        return SearchResponse(results=[_to_source(passage) for passage in passages])

    @app.post("/index", response_model=IndexResponse, status_code=status.HTTP_201_CREATED)
    async def index_content(payload: IndexRequest, service: RAGService = Depends(get_rag_service)) -> IndexResponse:
        chunk_id = await service.index(
            payload.course_id,
            payload.content_type,
            payload.content_text,
            chapter_id=payload.chapter_id,
            metadata=payload.metadata,
        )
        return IndexResponse(id=chunk_id)

    @app.post("/embeddings", response_model=EmbeddingResponse)
    async def create_embeddings(
        payload: EmbeddingRequest,
        embeddings: EmbeddingService = Depends(get_embeddings),
    ) -> EmbeddingResponse:
        vectors = await embeddings.embed_batch(
            payload.texts,
            batch_size=payload.batch_size,
            parallel=payload.parallel,
        )
        return EmbeddingResponse(
            provider=embeddings.provider.value,
            model=embeddings.model,
            embeddings=[list(vector) for vector in vectors],
            estimated_cost=embeddings.estimate_cost(payload.texts),
        )

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from courserag import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    @app.get("/healthz/ready")
    async def readiness(store: VectorStore = Depends(get_store)) -> dict[str, str]:
        try:
            await store.count()
        except Exception as exc:
            logger.warning("readiness.failed", detail=str(exc))
            return {"status": "error", "detail": str(exc)}
        return {"status": "ready"}

    return app
