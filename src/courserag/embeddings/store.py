"""Vector store adapters for indexed course content."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Protocol, Sequence
from uuid import uuid4

import chromadb
from chromadb.api import ClientAPI
from supabase import AsyncClient, acreate_client

from courserag.config import ConfigurationError
from courserag.metrics.observability import get_logger
from courserag.models import Embedding, IndexedChunk, RetrievedPassage

Filters = Mapping[str, Any]

LOGGER = get_logger("store")


class VectorStore(Protocol):
    """Protocol for the external vector store."""

    async def match(
        self,
        embedding: Embedding,
        *,
        course_id: str,
        threshold: float,
        count: int,
        filters: Filters | None = None,
    ) -> Sequence[RetrievedPassage]:
        """Return up to ``count`` passages at or above ``threshold``, most similar first."""

    async def insert(self, chunk: IndexedChunk) -> str:
        """Persist ``chunk`` and return the identifier assigned by the store."""

    async def count(self) -> int:
        """Return the number of stored chunks."""


class SupabaseVectorStore:
    """pgvector table behind Supabase, searched through a ``match_embeddings`` RPC."""

    def __init__(
        self,
        *,
        url: str | None = None,
        service_key: str | None = None,
        client: AsyncClient | None = None,
        table: str = "embeddings",
        match_function: str = "match_embeddings",
    ) -> None:
        if client is None and (not url or not service_key):
            raise ConfigurationError("Supabase URL and service role key are required for the supabase vector store")
        self._client = client
        self._url = url
        self._service_key = service_key
        self._table = table
        self._match_function = match_function

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = await acreate_client(self._url, self._service_key)
        return self._client

    async def match(
        self,
        embedding: Embedding,
        *,
        course_id: str,
        threshold: float,
        count: int,
        filters: Filters | None = None,
    ) -> Sequence[RetrievedPassage]:
        client = await self._get_client()
        request = client.rpc(
            self._match_function,
            {
                "query_embedding": json.dumps(list(embedding)),
                "match_threshold": threshold,
                "match_count": count,
                "filter_course_id": course_id,
            },
        )
        for key, value in (filters or {}).items():
            request = request.eq(key, value)
        response = await request.execute()
        passages: List[RetrievedPassage] = []
        for row in response.data or []:
            passage = _passage_from_row(row)
            if passage is not None:
                passages.append(passage)
        return passages

    async def insert(self, chunk: IndexedChunk) -> str:
        client = await self._get_client()
        record = {
            "course_id": chunk.course_id,
            "chapter_id": chunk.chapter_id,
            "content_type": chunk.content_type,
            "content_text": chunk.content_text,
            "embedding": json.dumps(list(chunk.embedding)),
            "metadata": dict(chunk.metadata),
        }
        response = await client.table(self._table).insert(record).execute()
        rows = response.data or []
        if not rows or rows[0].get("id") is None:
            raise RuntimeError(f"Insert into {self._table} returned no id")
        return str(rows[0]["id"])

    async def count(self) -> int:
        client = await self._get_client()
        response = await client.table(self._table).select("id", count="exact", head=True).execute()
        return int(response.count or 0)


class ChromaVectorStore:
    """Chroma-backed store with the same match/insert contract."""

    _RESERVED_KEYS = frozenset({"course_id", "chapter_id", "content_type", "metadata_json"})

    def __init__(
        self,
        collection_name: str = "courserag-embeddings",
        *,
        client: ClientAPI | None = None,
        persist_directory: str | Path | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif persist_directory is not None:
            self._client = chromadb.PersistentClient(path=str(persist_directory))
        else:
            self._client = chromadb.EphemeralClient()
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    async def match(
        self,
        embedding: Embedding,
        *,
        course_id: str,
        threshold: float,
        count: int,
        filters: Filters | None = None,
    ) -> Sequence[RetrievedPassage]:
        if count <= 0:
            return []
        results = await asyncio.to_thread(
            self._collection.query,
            query_embeddings=[list(embedding)],
            n_results=count,
            where=self._build_where(course_id, filters),
            include=["documents", "metadatas", "distances"],
        )
        passages = [
            passage
            for passage in self._deserialize_results(results)
            if passage.similarity >= threshold
        ]
        passages.sort(key=lambda passage: passage.similarity, reverse=True)
        return passages

    async def insert(self, chunk: IndexedChunk) -> str:
        chunk_id = chunk.id or uuid4().hex
        await asyncio.to_thread(
            self._collection.add,
            ids=[chunk_id],
            documents=[chunk.content_text],
            embeddings=[list(chunk.embedding)],
            metadatas=[self._serialize_chunk(chunk)],
        )
        return chunk_id

    async def count(self) -> int:
        return int(await asyncio.to_thread(self._collection.count))

    @staticmethod
    def _build_where(course_id: str, filters: Filters | None) -> Dict[str, Any]:
        clauses: List[Dict[str, Any]] = [{"course_id": course_id}]
        clauses.extend({key: value} for key, value in (filters or {}).items())
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    def _serialize_chunk(self, chunk: IndexedChunk) -> MutableMapping[str, Any]:
        metadata: MutableMapping[str, Any] = {
            "course_id": chunk.course_id,
            "content_type": chunk.content_type,
            "metadata_json": _dumps(chunk.metadata),
        }
        if chunk.chapter_id:
            metadata["chapter_id"] = chunk.chapter_id
        # Primitive fields are copied so they can be used as equality filters.
        for key, value in chunk.metadata.items():
            if key in self._RESERVED_KEYS:
                continue
            if isinstance(value, (str, int, float, bool)):
                metadata[key] = value
        return metadata

    def _deserialize_results(self, results: Mapping[str, Any]) -> List[RetrievedPassage]:
        ids = _first(results.get("ids"))
        documents = _first(results.get("documents"))
        metadatas = _first(results.get("metadatas"))
        distances = _first(results.get("distances"))
        passages: List[RetrievedPassage] = []
        for chunk_id, document, metadata, distance in zip(ids, documents, metadatas, distances):
            if distance is None:
                continue
            passages.append(
                RetrievedPassage(
                    id=str(chunk_id),
                    content=document or "",
                    similarity=1.0 - float(distance),
                    metadata=_loads_dict((metadata or {}).get("metadata_json")),
                )
            )
        return passages


def _passage_from_row(row: Mapping[str, Any]) -> RetrievedPassage | None:
    try:
        return RetrievedPassage(
            id=str(row["id"]),
            content=str(row["content_text"]),
            similarity=float(row["similarity"]),
            metadata=_loads_dict(row.get("metadata")),
        )
    except (KeyError, TypeError, ValueError):
        LOGGER.warning("store.malformed_row", keys=sorted(row.keys()) if isinstance(row, Mapping) else None)
        return None


def _first(value: object) -> List[Any]:
    if isinstance(value, list) and value:
        first = value[0]
        return list(first) if first is not None else []
    return []


def _dumps(value: object) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return json.dumps({})


def _loads_dict(value: object) -> Dict[str, Any]:
    if isinstance(value, str) and value:
        try:
            loaded = json.loads(value)
            if isinstance(loaded, dict):
                return loaded
        except json.JSONDecodeError:
            return {}
    if isinstance(value, Mapping):
        return dict(value)
    return {}
