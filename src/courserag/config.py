"""Runtime configuration for the CourseRAG services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised when a required setting or credential is missing."""


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(
        env_prefix="courserag_",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    environment: Literal["dev", "test", "prod"] = "dev"

    # Embeddings
    embedding_provider: Literal["openai", "cohere", "huggingface", "hash"] = "openai"
    embedding_model: str | None = None  # provider default when unset
    embedding_dimensions: int | None = None
    embedding_device: str | None = None
    embedding_cache_enabled: bool = True
    embedding_cache_size: int = Field(default=1000, ge=1)
    embedding_max_retries: int = Field(default=3, ge=1)
    embedding_retry_delay_ms: int = Field(default=1000, ge=0)
    embedding_exponential_backoff: bool = True
    embedding_dedupe_inflight: bool = False

    # Answer generation
    generator_provider: Literal["openai", "template"] = "openai"
    generator_model: str = "gpt-4"
    generator_temperature: float = 0.7
    generator_max_tokens: int = 1000

    # Retrieval defaults
    rag_top_k: int = 5
    rag_similarity_threshold: float = 0.7
    rag_max_context_tokens: int = 3000
    search_top_k: int = 10

    # Vector store
    vector_store: Literal["supabase", "chroma"] = "supabase"
    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("courserag_supabase_url", "supabase_url", "next_public_supabase_url"),
    )
    supabase_service_role_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("courserag_supabase_service_role_key", "supabase_service_role_key"),
    )
    supabase_table: str = "embeddings"
    supabase_match_function: str = "match_embeddings"

    chroma_persist_dir: Path = Path("./.chroma")
    chroma_collection: str = "courserag-embeddings"
    chroma_host: str | None = None
    chroma_port: int | None = None
    chroma_ssl: bool = False

    # Credentials
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("courserag_openai_api_key", "openai_api_key"),
    )

    def require(self, name: str) -> str:
        """Return a non-empty string setting or fail naming the missing field."""

        value = getattr(self, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ConfigurationError(f"Missing required setting: {name} (set COURSERAG_{name.upper()})")
        return str(value)


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
