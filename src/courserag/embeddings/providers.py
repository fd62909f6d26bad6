"""Embedding backends, one per provider."""

from __future__ import annotations

import asyncio
import hashlib
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

from langchain_core.embeddings import Embeddings as LangChainEmbeddings
from openai import AsyncOpenAI

from courserag.config import ConfigurationError
from courserag.embeddings.vector_math import normalize
from courserag.metrics.observability import get_logger
from courserag.models import Embedding

LOGGER = get_logger("embedding.providers")


class UnsupportedProvider(RuntimeError):
    """Raised when an embedding provider is unknown or not implemented."""


class ProviderName(str, Enum):
    OPENAI = "openai"
    COHERE = "cohere"
    HUGGINGFACE = "huggingface"
    HASH = "hash"


@dataclass(frozen=True)
class ProviderProfile:
    """Fixed defaults and pricing for a provider."""

    name: ProviderName
    default_model: str
    default_dimensions: int
    cost_per_million_tokens: float


PROFILES: Mapping[ProviderName, ProviderProfile] = {
    ProviderName.OPENAI: ProviderProfile(ProviderName.OPENAI, "text-embedding-3-small", 1536, 0.02),
    ProviderName.COHERE: ProviderProfile(ProviderName.COHERE, "embed-english-v3.0", 1024, 0.1),
    ProviderName.HUGGINGFACE: ProviderProfile(
        ProviderName.HUGGINGFACE, "sentence-transformers/all-MiniLM-L6-v2", 384, 0.0
    ),
    ProviderName.HASH: ProviderProfile(ProviderName.HASH, "sha256", 384, 0.0),
}


class EmbeddingBackend(Protocol):
    """Protocol describing a single-text embedding backend."""

    profile: ProviderProfile

    async def generate(self, text: str, *, model: str, dimensions: int) -> Embedding:
        """Return the embedding vector for ``text``."""


class OpenAIEmbeddingBackend:
    """Embeddings through the OpenAI embeddings endpoint."""

    profile = PROFILES[ProviderName.OPENAI]

    def __init__(self, *, api_key: str | None = None, client: Any | None = None) -> None:
        if client is not None:
            self._client = client
            return
        if not api_key:
            raise ConfigurationError("OpenAI API key is required for the openai embedding provider")
        self._client = AsyncOpenAI(api_key=api_key)

    async def generate(self, text: str, *, model: str, dimensions: int) -> Embedding:
        response = await self._client.embeddings.create(model=model, input=text, dimensions=dimensions)
        return tuple(float(value) for value in response.data[0].embedding)


class HuggingFaceEmbeddingBackend:
    """Local sentence-transformer embeddings via LangChain.

    The model is loaded on first use. Loading and encoding both run in a
    worker thread.
    """

    profile = PROFILES[ProviderName.HUGGINGFACE]

    def __init__(
        self,
        *,
        device: str | None = None,
        cache_folder: str | None = None,
        client_factory: Callable[..., LangChainEmbeddings] | None = None,
    ) -> None:
        self._device = device
        self._cache_folder = cache_folder
        self._client_factory = client_factory or _load_huggingface_embeddings
        self._clients: dict[str, LangChainEmbeddings] = {}
        self._lock = threading.Lock()

    def _client_for(self, model: str) -> LangChainEmbeddings:
        with self._lock:
            client = self._clients.get(model)
            if client is None:
                model_kwargs = {"device": self._device} if self._device else {}
                client = self._client_factory(
                    model_name=model,
                    model_kwargs=model_kwargs,
                    cache_folder=self._cache_folder,
                    encode_kwargs={"normalize_embeddings": True},
                )
                LOGGER.info("embedding.model_loaded", model=model)
                self._clients[model] = client
            return client

    def _embed_sync(self, text: str, model: str) -> list[float]:
        return self._client_for(model).embed_query(text)

    async def generate(self, text: str, *, model: str, dimensions: int) -> Embedding:
        vector = await asyncio.to_thread(self._embed_sync, text, model)
        if len(vector) != dimensions:
            LOGGER.warning("embedding.dimension_mismatch", configured=dimensions, actual=len(vector))
        return tuple(float(value) for value in vector)


def _load_huggingface_embeddings(**kwargs: Any) -> LangChainEmbeddings:
    try:
        from langchain_huggingface import HuggingFaceEmbeddings
    except ImportError as exc:  # pragma: no cover - optional extra
        raise ConfigurationError(
            "The huggingface provider requires the 'huggingface' extra (pip install courserag[huggingface])"
        ) from exc
    return HuggingFaceEmbeddings(**kwargs)


class HashEmbeddingBackend:
    """Deterministic lightweight embeddings for tests and offline runs."""

    profile = PROFILES[ProviderName.HASH]

    async def generate(self, text: str, *, model: str, dimensions: int) -> Embedding:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (dimensions + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[:dimensions]
        return normalize([byte / 255.0 for byte in raw])


class UnsupportedEmbeddingBackend:
    """Declared provider without a working client."""

    def __init__(self, provider: ProviderName) -> None:
        self.profile = PROFILES[provider]

    async def generate(self, text: str, *, model: str, dimensions: int) -> Embedding:
        raise UnsupportedProvider(f"{self.profile.name.value} embeddings are not implemented")


def build_backend(
    provider: str | ProviderName,
    *,
    openai_api_key: str | None = None,
    device: str | None = None,
) -> EmbeddingBackend:
    """Return the backend variant for ``provider``."""

    try:
        name = ProviderName(provider)
    except ValueError as exc:
        raise UnsupportedProvider(f"Unsupported provider: {provider}") from exc
    if name is ProviderName.OPENAI:
        return OpenAIEmbeddingBackend(api_key=openai_api_key)
    if name is ProviderName.HUGGINGFACE:
        return HuggingFaceEmbeddingBackend(device=device)
    if name is ProviderName.HASH:
        return HashEmbeddingBackend()
    return UnsupportedEmbeddingBackend(name)
