"""Embedding generation and vector store access."""

from .batch import BatchRunner
from .cache import EmbeddingCache
from .providers import (
    PROFILES,
    EmbeddingBackend,
    HashEmbeddingBackend,
    HuggingFaceEmbeddingBackend,
    OpenAIEmbeddingBackend,
    ProviderName,
    ProviderProfile,
    UnsupportedEmbeddingBackend,
    UnsupportedProvider,
    build_backend,
)
from .retry import RetryPolicy
from .service import EmbeddingConfig, EmbeddingService, estimate_tokens
from .store import ChromaVectorStore, SupabaseVectorStore, VectorStore
from .vector_math import DimensionMismatch, cosine_similarity, dot, euclidean_distance, magnitude

__all__ = [
    "PROFILES",
    "BatchRunner",
    "ChromaVectorStore",
    "DimensionMismatch",
    "EmbeddingBackend",
    "EmbeddingCache",
    "EmbeddingConfig",
    "EmbeddingService",
    "HashEmbeddingBackend",
    "HuggingFaceEmbeddingBackend",
    "OpenAIEmbeddingBackend",
    "ProviderName",
    "ProviderProfile",
    "RetryPolicy",
    "SupabaseVectorStore",
    "UnsupportedEmbeddingBackend",
    "UnsupportedProvider",
    "VectorStore",
    "build_backend",
    "cosine_similarity",
    "dot",
    "estimate_tokens",
    "euclidean_distance",
    "magnitude",
]
