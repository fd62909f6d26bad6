"""Query and indexing orchestration combining embeddings, retrieval and generation."""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any, List, Mapping, Sequence

from courserag.embeddings.batch import ProgressCallback
from courserag.embeddings.service import EmbeddingService, estimate_tokens
from courserag.embeddings.store import Filters, VectorStore
from courserag.metrics.observability import PipelineMetrics, get_logger
from courserag.models import IndexedChunk, RAGResult, RetrievedPassage
from courserag.retrieval.service import ContextRetriever
from courserag.services.confidence import ConfidenceScorer
from courserag.services.generation import AnswerSynthesizer, TemplateSynthesizer

FALLBACK_ANSWER = "I could not find relevant information to answer your question."
CONTEXT_DELIMITER = "\n\n---\n"


class IndexingFailed(RuntimeError):
    """Raised when the vector store refuses to persist a chunk."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ContextBudgeter:
    """Concatenates passages under an estimated token budget."""

    def __init__(self, delimiter: str = CONTEXT_DELIMITER) -> None:
        self._delimiter = delimiter

    def select(self, passages: Sequence[RetrievedPassage], max_tokens: int) -> List[RetrievedPassage]:
        """Return the leading passages that fit; stops at the first that does not."""

        selected: List[RetrievedPassage] = []
        used = 0
        for passage in passages:
            cost = estimate_tokens(passage.content)
            if used + cost > max_tokens:
                break
            selected.append(passage)
            used += cost
        return selected

    def build(self, passages: Sequence[RetrievedPassage], max_tokens: int) -> str:
        return self._delimiter.join(passage.content for passage in self.select(passages, max_tokens))


@dataclass(frozen=True)
class QueryDefaults:
    """Default knobs for query and search calls."""

    top_k: int = 5
    similarity_threshold: float = 0.7
    max_context_tokens: int = 3000
    model: str = "gpt-4"
    search_top_k: int = 10


class RAGService:
    """Entry points for answering questions and indexing course content."""

    def __init__(
        self,
        embeddings: EmbeddingService,
        store: VectorStore,
        *,
        retriever: ContextRetriever | None = None,
        synthesizer: AnswerSynthesizer | None = None,
        budgeter: ContextBudgeter | None = None,
        scorer: ConfidenceScorer | None = None,
        defaults: QueryDefaults | None = None,
    ) -> None:
        self._embeddings = embeddings
        self._store = store
        self._retriever = retriever or ContextRetriever(store)
        self._synthesizer = synthesizer or TemplateSynthesizer()
        self._budgeter = budgeter or ContextBudgeter()
        self._scorer = scorer or ConfidenceScorer()
        self._defaults = defaults or QueryDefaults()
        self._logger = get_logger("query")

    @property
    def defaults(self) -> QueryDefaults:
        return self._defaults

    async def query(
        self,
        question: str,
        course_id: str,
        *,
        top_k: int | None = None,
        similarity_threshold: float | None = None,
        max_context_tokens: int | None = None,
        model: str | None = None,
        include_metadata: bool = True,
    ) -> RAGResult:
        defaults = self._defaults
        self._logger.info("query.start", course_id=course_id, question_length=len(question))

        question_embedding = await self._embeddings.embed(question)
        passages = await self._retriever.retrieve(
            question_embedding,
            course_id,
            top_k=top_k if top_k is not None else defaults.top_k,
            similarity_threshold=(
                similarity_threshold if similarity_threshold is not None else defaults.similarity_threshold
            ),
        )
        if not passages:
            self._logger.info("query.no_context", course_id=course_id)
            return RAGResult(answer=FALLBACK_ANSWER, sources=(), confidence=0.0, tokens_used=0)

        context = self._budgeter.build(
            passages,
            max_context_tokens if max_context_tokens is not None else defaults.max_context_tokens,
        )
        generation_start = time.perf_counter()
        synthesis = await self._synthesizer.synthesize(question, context, model or defaults.model)
        generation_duration = time.perf_counter() - generation_start
        PipelineMetrics.observe_generation(generation_duration, synthesis.tokens_used)

        confidence = self._scorer.score(passages, synthesis.answer)
        self._logger.info(
            "generation.complete",
            course_id=course_id,
            duration_seconds=generation_duration,
            source_count=len(passages),
            tokens_used=synthesis.tokens_used,
            confidence=confidence,
        )
        sources = tuple(
            passage if include_metadata else replace(passage, metadata={})
            for passage in passages
        )
        return RAGResult(
            answer=synthesis.answer,
            sources=sources,
            confidence=confidence,
            tokens_used=synthesis.tokens_used,
        )

    async def semantic_search(
        self,
        query: str,
        course_id: str,
        *,
        top_k: int | None = None,
        similarity_threshold: float | None = None,
        filters: Filters | None = None,
    ) -> List[RetrievedPassage]:
        defaults = self._defaults
        query_embedding = await self._embeddings.embed(query)
        return await self._retriever.retrieve(
            query_embedding,
            course_id,
            top_k=top_k if top_k is not None else defaults.search_top_k,
            similarity_threshold=(
                similarity_threshold if similarity_threshold is not None else defaults.similarity_threshold
            ),
            filters=filters,
        )

    async def index(
        self,
        course_id: str,
        content_type: str,
        content_text: str,
        *,
        chapter_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        start = time.perf_counter()
        embedding = await self._embeddings.embed(content_text)
        chunk = IndexedChunk(
            course_id=course_id,
            chapter_id=chapter_id,
            content_type=content_type,
            content_text=content_text,
            embedding=embedding,
            metadata=dict(metadata or {}),
        )
        chunk_id = await self._persist(chunk)
        PipelineMetrics.observe_indexing(time.perf_counter() - start)
        return chunk_id

    async def index_batch(
        self,
        course_id: str,
        content_type: str,
        texts: Sequence[str],
        *,
        chapter_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        batch_size: int = 100,
        parallel: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> List[str]:
        embeddings = await self._embeddings.embed_batch(
            texts,
            batch_size=batch_size,
            parallel=parallel,
            on_progress=on_progress,
        )
        ids: List[str] = []
        for text, embedding in zip(texts, embeddings):
            chunk = IndexedChunk(
                course_id=course_id,
                chapter_id=chapter_id,
                content_type=content_type,
                content_text=text,
                embedding=embedding,
                metadata=dict(metadata or {}),
            )
            ids.append(await self._persist(chunk))
        return ids

    async def _persist(self, chunk: IndexedChunk) -> str:
        self._logger.info("indexing.start", course_id=chunk.course_id, content_type=chunk.content_type)
        try:
            chunk_id = await self._store.insert(chunk)
        except Exception as exc:
            PipelineMetrics.indexing_failures.inc()
            self._logger.error(
                "indexing.error",
                course_id=chunk.course_id,
                content_type=chunk.content_type,
                error=str(exc),
            )
            raise IndexingFailed(f"Failed to index document: {exc}", cause=exc) from exc
        self._logger.info("indexing.complete", course_id=chunk.course_id, chunk_id=chunk_id)
        return chunk_id
