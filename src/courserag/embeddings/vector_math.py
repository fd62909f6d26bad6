"""Pure vector helpers shared by embedding backends and services."""

from __future__ import annotations

import math
from typing import Sequence


class DimensionMismatch(ValueError):
    """Raised when two vectors of different lengths are combined."""


def _check_dimensions(a: Sequence[float], b: Sequence[float]) -> None:
    if len(a) != len(b):
        raise DimensionMismatch(f"Vectors must have same length: {len(a)} != {len(b)}")


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    _check_dimensions(a, b)
    return math.fsum(x * y for x, y in zip(a, b))


def magnitude(vector: Sequence[float]) -> float:
    return math.sqrt(math.fsum(value * value for value in vector))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Angular closeness of two vectors.

    A zero vector has no direction, so any comparison involving one
    returns 0.0 instead of NaN.
    """

    _check_dimensions(a, b)
    denominator = magnitude(a) * magnitude(b)
    if denominator == 0.0:
        return 0.0
    return dot(a, b) / denominator


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    _check_dimensions(a, b)
    return math.sqrt(math.fsum((x - y) ** 2 for x, y in zip(a, b)))


def normalize(vector: Sequence[float]) -> tuple[float, ...]:
    norm = magnitude(vector) or 1.0
    return tuple(value / norm for value in vector)


__all__ = [
    "DimensionMismatch",
    "cosine_similarity",
    "dot",
    "euclidean_distance",
    "magnitude",
    "normalize",
]
