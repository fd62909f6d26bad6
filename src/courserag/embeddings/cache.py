"""Bounded in-memory cache for embedding vectors."""

from __future__ import annotations

from numbers import Real
from typing import Dict

from courserag.metrics.observability import get_logger
from courserag.models import Embedding


class EmbeddingCache:
    """Text to vector map evicting the oldest inserted key when full.

    Eviction is first-in-first-out: lookups do not refresh an entry's
    position.
    """

    _logger = get_logger("embedding.cache")

    def __init__(self, capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError("Cache capacity must be at least 1")
        self._capacity = capacity
        self._entries: Dict[str, Embedding] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: str) -> Embedding | None:
        value = self._entries.get(key)
        if value is None:
            return None
        if not self._is_valid(value):
            self._logger.warning("cache.corrupt_entry", key_length=len(key), value_type=type(value).__name__)
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: Embedding) -> None:
        if key not in self._entries and len(self._entries) >= self._capacity:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = value

    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @staticmethod
    def _is_valid(value: object) -> bool:
        if not isinstance(value, tuple) or not value:
            return False
        return all(isinstance(item, Real) and not isinstance(item, bool) for item in value)
