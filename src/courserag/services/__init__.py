"""Service layer orchestrations for CourseRAG."""

from .confidence import HEDGING_PHRASES, ConfidenceScorer
from .generation import (
    SYSTEM_PROMPT,
    AnswerSynthesizer,
    GenerationConfig,
    OpenAIAnswerSynthesizer,
    TemplateSynthesizer,
)
from .query import FALLBACK_ANSWER, ContextBudgeter, IndexingFailed, QueryDefaults, RAGService

__all__ = [
    "FALLBACK_ANSWER",
    "HEDGING_PHRASES",
    "SYSTEM_PROMPT",
    "AnswerSynthesizer",
    "ConfidenceScorer",
    "ContextBudgeter",
    "GenerationConfig",
    "IndexingFailed",
    "OpenAIAnswerSynthesizer",
    "QueryDefaults",
    "RAGService",
    "TemplateSynthesizer",
]
