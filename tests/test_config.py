from __future__ import annotations

import pytest

from courserag.config import ConfigurationError, Settings, get_settings


def test_retrieval_and_generation_defaults():
    settings = get_settings({"environment": "test"})
    assert settings.rag_top_k == 5
    assert settings.rag_similarity_threshold == 0.7
    assert settings.rag_max_context_tokens == 3000
    assert settings.search_top_k == 10
    assert settings.generator_model == "gpt-4"
    assert settings.generator_temperature == 0.7
    assert settings.generator_max_tokens == 1000


def test_embedding_defaults():
    settings = get_settings({"environment": "test"})
    assert settings.embedding_provider == "openai"
    assert settings.embedding_cache_size == 1000
    assert settings.embedding_max_retries == 3
    assert settings.embedding_retry_delay_ms == 1000
    assert settings.embedding_exponential_backoff is True
    assert settings.embedding_dedupe_inflight is False


def test_require_names_missing_setting():
    settings = Settings(environment="test", openai_api_key="")
    with pytest.raises(ConfigurationError, match="openai_api_key"):
        settings.require("openai_api_key")


def test_supabase_url_reads_public_alias(monkeypatch):
    monkeypatch.setenv("NEXT_PUBLIC_SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")

    settings = Settings(environment="test")

    assert settings.require("supabase_url") == "https://project.supabase.co"
    assert settings.require("supabase_service_role_key") == "service-key"


def test_prefixed_environment_variables(monkeypatch):
    monkeypatch.setenv("COURSERAG_EMBEDDING_PROVIDER", "hash")
    monkeypatch.setenv("COURSERAG_RAG_TOP_K", "8")

    settings = Settings()

    assert settings.embedding_provider == "hash"
    assert settings.rag_top_k == 8
