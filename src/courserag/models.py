"""Shared domain models used across the CourseRAG pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Sequence, Tuple

Embedding = Tuple[float, ...]


@dataclass(frozen=True)
class IndexedChunk:
    """Course content record persisted in the vector store."""

    course_id: str
    content_type: str
    content_text: str
    embedding: Embedding
    chapter_id: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(frozen=True)
class RetrievedPassage:
    """Passage returned by the vector store for a query embedding."""

    id: str
    content: str
    similarity: float
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "similarity": self.similarity,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class Synthesis:
    """Raw answer produced by a generation backend."""

    answer: str
    tokens_used: int = 0


@dataclass(frozen=True)
class RAGResult:
    """Answer bundled with its sources, confidence and token cost."""

    answer: str
    sources: Sequence[RetrievedPassage]
    confidence: float
    tokens_used: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "sources": [source.to_dict() for source in self.sources],
            "confidence": self.confidence,
            "tokens_used": self.tokens_used,
        }
