from __future__ import annotations

import math

import pytest

from courserag.embeddings.vector_math import (
    DimensionMismatch,
    cosine_similarity,
    dot,
    euclidean_distance,
    magnitude,
    normalize,
)


def test_cosine_similarity_of_vector_with_itself_is_one():
    vector = (0.3, -1.2, 4.0, 0.5)
    assert cosine_similarity(vector, vector) == pytest.approx(1.0)


def test_cosine_similarity_of_orthogonal_vectors_is_zero():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0


def test_cosine_similarity_with_zero_vector_returns_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
    assert not math.isnan(cosine_similarity([0.0], [0.0]))


def test_dot_and_euclidean_distance():
    assert dot([1, 2, 3], [4, 5, 6]) == 32
    assert euclidean_distance([0, 0], [3, 4]) == pytest.approx(5.0)
    assert magnitude([3, 4]) == pytest.approx(5.0)


@pytest.mark.parametrize("func", [dot, cosine_similarity, euclidean_distance])
def test_mismatched_lengths_raise(func):
    with pytest.raises(DimensionMismatch):
        func([1.0, 2.0], [1.0, 2.0, 3.0])


def test_dimension_mismatch_is_a_value_error():
    assert issubclass(DimensionMismatch, ValueError)


def test_normalize_returns_unit_vector():
    unit = normalize([3.0, 4.0])
    assert unit == pytest.approx((0.6, 0.8))
    assert normalize([0.0, 0.0]) == (0.0, 0.0)
