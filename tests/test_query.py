from __future__ import annotations

from uuid import uuid4

import chromadb
import pytest

from courserag.embeddings import ChromaVectorStore, EmbeddingConfig, EmbeddingService, HashEmbeddingBackend
from courserag.embeddings.providers import PROFILES, ProviderName
from courserag.models import RetrievedPassage, Synthesis
from courserag.services.confidence import ConfidenceScorer
from courserag.services.query import FALLBACK_ANSWER, ContextBudgeter, IndexingFailed, RAGService


def _passage(text: str, similarity: float = 0.9, **metadata) -> RetrievedPassage:
    return RetrievedPassage(id=uuid4().hex, content=text, similarity=similarity, metadata=metadata)


class RecordingStore:
    def __init__(self, passages=None, fail_insert: Exception | None = None) -> None:
        self.passages = passages or []
        self.fail_insert = fail_insert
        self.inserted = []

    async def match(self, embedding, *, course_id, threshold, count, filters=None):
        return self.passages

    async def insert(self, chunk):
        if self.fail_insert is not None:
            raise self.fail_insert
        self.inserted.append(chunk)
        return f"id-{len(self.inserted)}"

    async def count(self):
        return len(self.inserted)


class BrokenMatchStore(RecordingStore):
    async def match(self, embedding, **kwargs):
        raise TimeoutError("rpc timed out")


class ScriptedSynthesizer:
    def __init__(self, answer: str, tokens: int = 42) -> None:
        self.answer = answer
        self.tokens = tokens
        self.calls: list[tuple[str, str, str]] = []

    async def synthesize(self, question, context, model):
        self.calls.append((question, context, model))
        return Synthesis(answer=self.answer, tokens_used=self.tokens)


def _embeddings() -> EmbeddingService:
    return EmbeddingService(HashEmbeddingBackend(), EmbeddingConfig(dimensions=16, retry_delay_ms=0))


def test_budgeter_stops_before_passage_that_overflows():
    budgeter = ContextBudgeter()
    passages = [_passage("a" * 40), _passage("b" * 40), _passage("c" * 8)]

    # 10 + 10 tokens fit, the third (2 tokens) would exceed 21
    context = budgeter.build(passages, max_tokens=21)

    assert context == "a" * 40 + "\n\n---\n" + "b" * 40


def test_budgeter_does_not_skip_ahead_or_truncate():
    budgeter = ContextBudgeter()
    passages = [_passage("x" * 400), _passage("y" * 4)]

    assert budgeter.build(passages, max_tokens=50) == ""
    assert budgeter.select(passages, max_tokens=101) == passages


def test_confidence_scorer_penalises_hedging():
    scorer = ConfidenceScorer()
    passages = [_passage("a", 0.9), _passage("b", 0.8)]

    assert scorer.score(passages, "I am not sure about this.") == 0.43
    assert scorer.score(passages, "Cells divide by mitosis.") == 0.85
    assert scorer.score(passages, "The answer is UNCLEAR from notes") == 0.43
    assert scorer.score([], "anything") == 0.0


@pytest.mark.asyncio
async def test_query_without_passages_returns_fallback():
    synthesizer = ScriptedSynthesizer("unused")
    service = RAGService(_embeddings(), RecordingStore(), synthesizer=synthesizer)

    result = await service.query("What is osmosis?", "bio-101")

    assert result.answer == FALLBACK_ANSWER
    assert result.sources == ()
    assert result.confidence == 0
    assert result.tokens_used == 0
    assert synthesizer.calls == []


@pytest.mark.asyncio
async def test_query_degrades_when_store_is_down():
    service = RAGService(_embeddings(), BrokenMatchStore(), synthesizer=ScriptedSynthesizer("unused"))

    result = await service.query("What is osmosis?", "bio-101")

    assert result.answer == FALLBACK_ANSWER
    assert result.confidence == 0


@pytest.mark.asyncio
async def test_query_bundles_answer_sources_confidence_and_tokens():
    passages = [_passage("Osmosis moves water.", 0.9, page=4), _passage("Membranes are selective.", 0.8)]
    synthesizer = ScriptedSynthesizer("Water moves across membranes [1].", tokens=128)
    service = RAGService(_embeddings(), RecordingStore(passages), synthesizer=synthesizer)

    result = await service.query("What is osmosis?", "bio-101", model="gpt-4o-mini", max_context_tokens=5)

    assert result.answer == "Water moves across membranes [1]."
    assert result.tokens_used == 128
    assert result.confidence == 0.85
    assert [source.content for source in result.sources] == [p.content for p in passages]
    assert result.sources[0].metadata == {"page": 4}
    question, context, model = synthesizer.calls[0]
    assert question == "What is osmosis?"
    assert context == "Osmosis moves water."
    assert model == "gpt-4o-mini"
    assert result.to_dict()["sources"][0]["similarity"] == 0.9


@pytest.mark.asyncio
async def test_query_can_strip_source_metadata():
    passages = [_passage("text", 0.9, page=4)]
    service = RAGService(_embeddings(), RecordingStore(passages), synthesizer=ScriptedSynthesizer("ok"))

    result = await service.query("q", "c", include_metadata=False)

    assert result.sources[0].metadata == {}


@pytest.mark.asyncio
async def test_index_embeds_and_persists_chunk():
    store = RecordingStore()
    service = RAGService(_embeddings(), store)

    chunk_id = await service.index("bio-101", "chapter", "Cells are units of life.", chapter_id="ch-1", metadata={"a": 1})

    assert chunk_id == "id-1"
    chunk = store.inserted[0]
    assert chunk.course_id == "bio-101"
    assert chunk.chapter_id == "ch-1"
    assert chunk.content_type == "chapter"
    assert len(chunk.embedding) == 16
    assert chunk.metadata == {"a": 1}


@pytest.mark.asyncio
async def test_index_failure_is_propagated_with_cause():
    cause = ConnectionError("insert rejected")
    service = RAGService(_embeddings(), RecordingStore(fail_insert=cause))

    with pytest.raises(IndexingFailed) as excinfo:
        await service.index("bio-101", "chapter", "text")

    assert excinfo.value.cause is cause
    assert excinfo.value.__cause__ is cause


class UnreachableBackend:
    profile = PROFILES[ProviderName.HASH]

    async def generate(self, text, *, model, dimensions):
        raise ConnectionError("embedding API unreachable")


@pytest.mark.asyncio
async def test_index_embedding_failure_is_not_wrapped():
    store = RecordingStore()
    embeddings = EmbeddingService(UnreachableBackend(), EmbeddingConfig(max_retries=1, retry_delay_ms=0))
    service = RAGService(embeddings, store)

    with pytest.raises(ConnectionError) as excinfo:
        await service.index("bio-101", "chapter", "text")

    assert not isinstance(excinfo.value, IndexingFailed)
    assert store.inserted == []


@pytest.mark.asyncio
async def test_index_batch_reports_progress_and_keeps_order():
    store = RecordingStore()
    service = RAGService(_embeddings(), store)
    progress: list[int] = []

    ids = await service.index_batch(
        "bio-101",
        "transcript",
        ["one", "two", "three"],
        batch_size=2,
        parallel=True,
        on_progress=progress.append,
    )

    assert ids == ["id-1", "id-2", "id-3"]
    assert [chunk.content_text for chunk in store.inserted] == ["one", "two", "three"]
    assert progress == [50, 100]


@pytest.mark.asyncio
async def test_index_then_query_round_trip_through_chroma():
    store = ChromaVectorStore(collection_name=f"rag-{uuid4().hex}", client=chromadb.EphemeralClient())
    service = RAGService(_embeddings(), store, synthesizer=ScriptedSynthesizer("Cells divide."))
    await service.index("bio-101", "chapter", "Cells divide by mitosis.")
    await service.index("chem-201", "chapter", "Acids donate protons.")

    result = await service.query("Cells divide by mitosis.", "bio-101", similarity_threshold=0.99)
    search = await service.semantic_search("Acids donate protons.", "bio-101", similarity_threshold=0.99)

    assert [source.content for source in result.sources] == ["Cells divide by mitosis."]
    assert result.confidence == pytest.approx(1.0, abs=0.01)
    assert search == []
