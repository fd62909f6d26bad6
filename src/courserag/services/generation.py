"""Answer synthesis backends for CourseRAG."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Protocol

from openai import AsyncOpenAI

from courserag.config import ConfigurationError
from courserag.metrics.observability import get_logger
from courserag.models import Synthesis

LOGGER = get_logger("generation")

SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Answer the question based on the provided context.\n"
    "If the context doesn't contain enough information, say so clearly.\n"
    "Always cite which parts of the context you used."
)


def build_user_prompt(question: str, context: str) -> str:
    return f"Context:\n{context}\n\nQuestion: {question}\n\nAnswer:"


@dataclass(frozen=True)
class GenerationConfig:
    """Sampling settings for answer generation."""

    temperature: float = 0.7
    max_tokens: int = 1000


class AnswerSynthesizer(Protocol):
    """Protocol describing answer generation."""

    async def synthesize(self, question: str, context: str, model: str) -> Synthesis:
        """Return a grounded answer for ``question`` using ``context``."""


class OpenAIAnswerSynthesizer:
    """Chat-completion backed synthesizer."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        client: Any | None = None,
        config: GenerationConfig | None = None,
    ) -> None:
        self._config = config or GenerationConfig()
        if client is not None:
            self._client = client
            return
        if not api_key:
            raise ConfigurationError("OpenAI API key is required for the openai generator")
        self._client = AsyncOpenAI(api_key=api_key)

    async def synthesize(self, question: str, context: str, model: str) -> Synthesis:
        response = await self._client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(question, context)},
            ],
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
        )
        answer = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        tokens_used = int(getattr(usage, "total_tokens", 0) or 0)
        return Synthesis(answer=answer, tokens_used=tokens_used)


class TemplateSynthesizer:
    """Deterministic synthesizer used for tests and offline environments."""

    async def synthesize(self, question: str, context: str, model: str) -> Synthesis:
        excerpt = context.strip().split("\n\n---\n")[0] if context.strip() else ""
        if not excerpt:
            answer = "I cannot find enough information in the course material to answer that question."
        else:
            answer = (
                f"Based on the course material, here is the most relevant passage for '{question}':\n"
                f"{excerpt}"
            )
        prompt = SYSTEM_PROMPT + build_user_prompt(question, context)
        tokens_used = math.ceil(len(prompt) / 4) + math.ceil(len(answer) / 4)
        return Synthesis(answer=answer, tokens_used=tokens_used)
