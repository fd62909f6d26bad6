"""Batch driver for embedding many texts."""

from __future__ import annotations

import asyncio
import math
from typing import Awaitable, Callable, List, Sequence

from courserag.models import Embedding

ProgressCallback = Callable[[int], None]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def create_batches(items: Sequence[str], batch_size: int) -> List[Sequence[str]]:
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [items[start : start + batch_size] for start in range(0, len(items), batch_size)]


class BatchRunner:
    """Embed texts in fixed-size batches, reporting progress per batch."""

    def __init__(self, embed: Callable[[str], Awaitable[Embedding]]) -> None:
        self._embed = embed

    async def run(
        self,
        texts: Sequence[str],
        *,
        batch_size: int = 100,
        parallel: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> List[Embedding]:
        batches = create_batches(list(texts), batch_size)
        results: List[Embedding] = []
        for index, batch in enumerate(batches, start=1):
            if parallel:
                results.extend(await asyncio.gather(*(self._embed(text) for text in batch)))
            else:
                for text in batch:
                    results.append(await self._embed(text))
            if on_progress is not None:
                on_progress(round_half_up(100 * index / len(batches)))
        return results
