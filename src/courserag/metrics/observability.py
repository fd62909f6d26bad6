"""Observability helpers for CourseRAG."""

from __future__ import annotations

import logging
import time
from typing import Iterable

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = "courserag") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def _clamp_score(score: float) -> float:
    if score < 0.0:
        return 0.0
    if score > 1.0:
        return 1.0
    return score


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    embedding_latency = Histogram(
        "courserag_embedding_duration_seconds",
        "Time spent generating a single embedding upstream.",
        buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    )
    embedding_cache_hits = Counter(
        "courserag_embedding_cache_hits_total",
        "Embedding requests served from the in-memory cache.",
    )
    embedding_cache_misses = Counter(
        "courserag_embedding_cache_misses_total",
        "Embedding requests that had to go upstream.",
    )
    embedding_retries = Counter(
        "courserag_embedding_retries_total",
        "Retried upstream embedding attempts.",
    )
    retrieval_latency = Histogram(
        "courserag_retrieval_duration_seconds",
        "Time spent retrieving context passages.",
        buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
    )
    retrieved_passage_count = Histogram(
        "courserag_retrieved_passage_count",
        "Number of passages returned by retrieval.",
        buckets=(0, 1, 2, 3, 5, 8, 13),
    )
    retrieval_failures = Counter(
        "courserag_retrieval_failures_total",
        "Vector store errors recovered during retrieval.",
    )
    similarity_score = Histogram(
        "courserag_similarity_score",
        "Similarity of retrieved passages.",
        buckets=(0.0, 0.25, 0.5, 0.7, 0.8, 0.9, 1.0),
    )
    generation_latency = Histogram(
        "courserag_generation_duration_seconds",
        "Time spent generating answers.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0),
    )
    generation_tokens = Counter(
        "courserag_generation_tokens_total",
        "Tokens reported by the generative model.",
    )
    indexing_latency = Histogram(
        "courserag_indexing_duration_seconds",
        "Time spent embedding and persisting a chunk.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
    )
    indexing_failures = Counter(
        "courserag_indexing_failures_total",
        "Chunks the vector store refused to persist.",
    )

    @classmethod
    def observe_embedding(cls, duration_seconds: float) -> None:
        cls.embedding_latency.observe(duration_seconds)

    @classmethod
    def observe_cache(cls, hit: bool) -> None:
        if hit:
            cls.embedding_cache_hits.inc()
        else:
            cls.embedding_cache_misses.inc()

    @classmethod
    def observe_retrieval(
        cls,
        duration_seconds: float,
        passage_count: int,
        scores: Iterable[float],
    ) -> None:
        cls.retrieval_latency.observe(duration_seconds)
        cls.retrieved_passage_count.observe(passage_count)
        for score in scores:
            cls.similarity_score.observe(_clamp_score(score))

    @classmethod
    def observe_generation(cls, duration_seconds: float, tokens_used: int) -> None:
        cls.generation_latency.observe(duration_seconds)
        if tokens_used > 0:
            cls.generation_tokens.inc(tokens_used)

    @classmethod
    def observe_indexing(cls, duration_seconds: float) -> None:
        cls.indexing_latency.observe(duration_seconds)


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback) -> None:
        self._callback = callback
        self._start = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        duration = time.perf_counter() - self._start
        self._callback(duration)


__all__ = [
    "PipelineMetrics",
    "TimedSection",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_logger",
]
