"""Heuristic answer confidence."""

from __future__ import annotations

import math
from typing import Sequence

from courserag.models import RetrievedPassage

HEDGING_PHRASES: tuple[str, ...] = (
    "i don't know",
    "not sure",
    "cannot find",
    "no information",
    "unclear",
)
HEDGING_PENALTY = 0.5


class ConfidenceScorer:
    """Mean retrieval similarity, halved when the answer hedges."""

    def __init__(self, hedging_phrases: Sequence[str] = HEDGING_PHRASES, penalty: float = HEDGING_PENALTY) -> None:
        self._phrases = tuple(phrase.lower() for phrase in hedging_phrases)
        self._penalty = penalty

    def is_hedging(self, answer: str) -> bool:
        lowered = answer.lower()
        return any(phrase in lowered for phrase in self._phrases)

    def score(self, passages: Sequence[RetrievedPassage], answer: str) -> float:
        if not passages:
            return 0.0
        confidence = sum(passage.similarity for passage in passages) / len(passages)
        if self.is_hedging(answer):
            confidence *= self._penalty
        confidence = min(max(confidence, 0.0), 1.0)
        # Half-up rounding to two decimals: 0.425 -> 0.43.
        return math.floor(confidence * 100 + 0.5) / 100
