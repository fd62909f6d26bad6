"""Retrieval of ranked course passages from the vector store."""

from __future__ import annotations

import time
from typing import List, Sequence

from courserag.embeddings.store import Filters, VectorStore
from courserag.metrics.observability import PipelineMetrics, get_logger
from courserag.models import Embedding, RetrievedPassage


class ContextRetriever:
    """Similarity search scoped to a course.

    Store failures never propagate: they are logged and an empty list is
    returned so callers can fall back to a low-information answer.
    """

    def __init__(self, store: VectorStore) -> None:
        self._store = store
        self._logger = get_logger("retrieval")

    async def retrieve(
        self,
        embedding: Embedding,
        course_id: str,
        *,
        top_k: int = 5,
        similarity_threshold: float = 0.7,
        filters: Filters | None = None,
    ) -> List[RetrievedPassage]:
        if top_k <= 0:
            return []
        start = time.perf_counter()
        try:
            found = await self._store.match(
                embedding,
                course_id=course_id,
                threshold=similarity_threshold,
                count=top_k,
                filters=filters,
            )
        except Exception as exc:
            PipelineMetrics.retrieval_failures.inc()
            self._logger.error(
                "retrieval.error",
                course_id=course_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return []
        passages = self._rank(found, similarity_threshold, top_k)
        duration = time.perf_counter() - start
        PipelineMetrics.observe_retrieval(duration, len(passages), (p.similarity for p in passages))
        self._logger.info(
            "retrieval.complete",
            course_id=course_id,
            passage_count=len(passages),
            duration_seconds=duration,
            top_k=top_k,
            threshold=similarity_threshold,
        )
        return passages

    @staticmethod
    def _rank(
        passages: Sequence[RetrievedPassage],
        threshold: float,
        top_k: int,
    ) -> List[RetrievedPassage]:
        kept = [passage for passage in passages if passage.similarity >= threshold]
        kept.sort(key=lambda passage: passage.similarity, reverse=True)
        return kept[:top_k]
