from __future__ import annotations

import asyncio

import pytest

from courserag.embeddings.batch import BatchRunner, create_batches, round_half_up


class TrackingEmbedder:
    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.started: list[str] = []

    async def __call__(self, text: str):
        self.started.append(text)
        self.active += 1
        self.peak = max(self.peak, self.active)
        # Later texts finish first to prove output order is positional.
        await asyncio.sleep(0.001 * (10 - len(self.started) % 10))
        self.active -= 1
        return (float(int(text)),)


def test_create_batches_keeps_order_and_short_tail():
    assert create_batches(["1", "2", "3", "4", "5"], 2) == [["1", "2"], ["3", "4"], ["5"]]
    with pytest.raises(ValueError):
        create_batches(["1"], 0)


def test_round_half_up():
    assert round_half_up(12.5) == 13
    assert round_half_up(33.333) == 33
    assert round_half_up(66.667) == 67


@pytest.mark.asyncio
async def test_parallel_batches_run_concurrently_within_a_batch_only():
    embedder = TrackingEmbedder()
    runner = BatchRunner(embedder)
    texts = [str(i) for i in range(7)]
    progress: list[int] = []

    vectors = await runner.run(texts, batch_size=3, parallel=True, on_progress=progress.append)

    assert [vector[0] for vector in vectors] == [float(i) for i in range(7)]
    assert embedder.peak == 3
    assert progress == [33, 67, 100]


@pytest.mark.asyncio
async def test_sequential_batches_run_one_at_a_time():
    embedder = TrackingEmbedder()
    runner = BatchRunner(embedder)

    vectors = await runner.run(["3", "1", "2"], batch_size=2)

    assert embedder.peak == 1
    assert embedder.started == ["3", "1", "2"]
    assert [vector[0] for vector in vectors] == [3.0, 1.0, 2.0]


@pytest.mark.asyncio
async def test_empty_input_reports_no_progress():
    progress: list[int] = []
    runner = BatchRunner(TrackingEmbedder())

    assert await runner.run([], batch_size=4, on_progress=progress.append) == []
    assert progress == []
