"""Embedding service: cache, retries and batching in front of a backend."""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from typing import Dict, List, Sequence

from courserag.config import ConfigurationError
from courserag.embeddings.batch import BatchRunner, ProgressCallback
from courserag.embeddings.cache import EmbeddingCache
from courserag.embeddings.providers import EmbeddingBackend, ProviderName, UnsupportedProvider
from courserag.embeddings.retry import RetryPolicy
from courserag.embeddings.vector_math import cosine_similarity
from courserag.metrics.observability import PipelineMetrics, TimedSection, get_logger
from courserag.models import Embedding


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token."""

    return math.ceil(len(text) / 4)


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for the embedding service.

    ``model`` and ``dimensions`` fall back to the backend's provider profile.
    ``dedupe_inflight`` makes concurrent misses for the same text share one
    upstream call; when off, each miss goes upstream.
    """

    model: str | None = None
    dimensions: int | None = None
    enable_cache: bool = True
    cache_size: int = 1000
    max_retries: int = 3
    retry_delay_ms: int = 1000
    exponential_backoff: bool = True
    dedupe_inflight: bool = False


class EmbeddingService:
    """Turns text into vectors through a provider backend."""

    def __init__(
        self,
        backend: EmbeddingBackend,
        config: EmbeddingConfig | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        cache: EmbeddingCache | None = None,
    ) -> None:
        self._backend = backend
        self._config = config or EmbeddingConfig()
        profile = backend.profile
        self._model = self._config.model or profile.default_model
        self._dimensions = self._config.dimensions or profile.default_dimensions
        self._cache = cache if cache is not None else EmbeddingCache(self._config.cache_size)
        self._retry = retry_policy or RetryPolicy(
            max_retries=self._config.max_retries,
            retry_delay_ms=self._config.retry_delay_ms,
            exponential_backoff=self._config.exponential_backoff,
            give_up_on=(UnsupportedProvider, ConfigurationError),
        )
        self._inflight: Dict[str, asyncio.Future[Embedding]] = {}
        self._batch_runner = BatchRunner(self.embed)
        self._logger = get_logger("embedding")

    @property
    def provider(self) -> ProviderName:
        return self._backend.profile.name

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def cache_size(self) -> int:
        return self._cache.size()

    async def embed(self, text: str) -> Embedding:
        if self._config.enable_cache:
            cached = self._cache.get(text)
            PipelineMetrics.observe_cache(hit=cached is not None)
            if cached is not None:
                return cached
        if not self._config.dedupe_inflight:
            return await self._generate_and_store(text)

        pending = self._inflight.get(text)
        if pending is not None:
            return await asyncio.shield(pending)
        task = asyncio.ensure_future(self._generate_and_store(text))
        self._inflight[text] = task
        # Cleared when the upstream call ends, not when this caller stops waiting.
        task.add_done_callback(lambda done: self._forget_inflight(text, done))
        return await asyncio.shield(task)

    def _forget_inflight(self, text: str, task: asyncio.Future[Embedding]) -> None:
        if self._inflight.get(text) is task:
            del self._inflight[text]
        if not task.cancelled():
            # Marks the result retrieved when every awaiter was cancelled.
            task.exception()

    async def embed_batch(
        self,
        texts: Sequence[str],
        *,
        batch_size: int = 100,
        parallel: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> List[Embedding]:
        return await self._batch_runner.run(
            texts,
            batch_size=batch_size,
            parallel=parallel,
            on_progress=on_progress,
        )

    def estimate_cost(self, texts: Sequence[str]) -> float:
        """Approximate API cost in dollars for embedding ``texts``."""

        total_tokens = sum(estimate_tokens(text) for text in texts)
        return (total_tokens / 1_000_000) * self._backend.profile.cost_per_million_tokens

    @staticmethod
    def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
        return cosine_similarity(a, b)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _generate_and_store(self, text: str) -> Embedding:
        async def attempt(number: int) -> Embedding:
            with TimedSection(PipelineMetrics.observe_embedding):
                return await self._backend.generate(text, model=self._model, dimensions=self._dimensions)

        embedding = await self._retry.run(attempt)
        if self._config.enable_cache:
            self._cache.put(text, embedding)
        self._logger.debug(
            "embedding.generated",
            provider=self.provider.value,
            model=self._model,
            dimensions=len(embedding),
        )
        return embedding
