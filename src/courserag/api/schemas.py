"""Pydantic models for the CourseRAG API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    question: str = Field(..., min_length=1, description="End-user question to answer")
    course_id: str = Field(..., min_length=1, description="Course whose content is searched")
    top_k: Optional[int] = Field(default=None, ge=1, le=50, description="Override the number of passages")
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_context_tokens: Optional[int] = Field(default=None, ge=1)
    model: Optional[str] = Field(default=None, description="Generative model override")
    include_metadata: bool = True


class SourceModel(BaseModel):
    id: str
    content: str
    similarity: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class QueryResponse(BaseModel):
    answer: str
    sources: List[SourceModel]
    confidence: float
    tokens_used: int


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    course_id: str = Field(..., min_length=1)
    top_k: Optional[int] = Field(default=None, ge=1, le=100)
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    filters: Optional[Dict[str, Any]] = Field(default=None, description="Equality filters on record fields")


class SearchResponse(BaseModel):
    results: List[SourceModel]


class IndexRequest(BaseModel):
    course_id: str = Field(..., min_length=1)
    chapter_id: Optional[str] = None
    content_type: str = Field(..., min_length=1, description="Tag such as chapter, note or transcript")
    content_text: str = Field(..., min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IndexResponse(BaseModel):
    id: str


class EmbeddingRequest(BaseModel):
    texts: List[str] = Field(..., min_length=1)
    batch_size: int = Field(default=100, ge=1, le=1000)
    parallel: bool = False


class EmbeddingResponse(BaseModel):
    provider: str
    model: str
    embeddings: List[List[float]]
    estimated_cost: float
