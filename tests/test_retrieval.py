from __future__ import annotations

import pytest

from courserag.models import RetrievedPassage
from courserag.retrieval.service import ContextRetriever


class StaticStore:
    def __init__(self, passages) -> None:
        self.passages = passages
        self.calls: list[dict] = []

    async def match(self, embedding, *, course_id, threshold, count, filters=None):
        self.calls.append(
            {"course_id": course_id, "threshold": threshold, "count": count, "filters": filters}
        )
        return self.passages


class BrokenStore:
    async def match(self, embedding, **kwargs):
        raise ConnectionError("vector store offline")


@pytest.mark.asyncio
async def test_retrieve_forwards_scope_and_filters():
    store = StaticStore([RetrievedPassage(id="1", content="a", similarity=0.9)])
    retriever = ContextRetriever(store)

    passages = await retriever.retrieve(
        (0.1, 0.2),
        "course-9",
        top_k=3,
        similarity_threshold=0.75,
        filters={"chapter_id": "ch-2"},
    )

    assert [p.id for p in passages] == ["1"]
    assert store.calls == [
        {"course_id": "course-9", "threshold": 0.75, "count": 3, "filters": {"chapter_id": "ch-2"}}
    ]


@pytest.mark.asyncio
async def test_retrieve_ranks_and_caps_results():
    store = StaticStore(
        [
            RetrievedPassage(id="low", content="", similarity=0.72),
            RetrievedPassage(id="below", content="", similarity=0.5),
            RetrievedPassage(id="high", content="", similarity=0.95),
            RetrievedPassage(id="mid", content="", similarity=0.8),
        ]
    )
    retriever = ContextRetriever(store)

    passages = await retriever.retrieve((1.0,), "c", top_k=2, similarity_threshold=0.7)

    assert [p.id for p in passages] == ["high", "mid"]


@pytest.mark.asyncio
async def test_store_failure_returns_empty_list():
    retriever = ContextRetriever(BrokenStore())
    assert await retriever.retrieve((1.0,), "c") == []
