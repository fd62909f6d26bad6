"""Bounded retries for flaky upstream calls."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, retry_if_not_exception_type, stop_after_attempt

from courserag.metrics.observability import PipelineMetrics, get_logger

T = TypeVar("T")

LOGGER = get_logger("retry")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry an async operation up to ``max_retries`` attempts in total."""

    max_retries: int = 3
    retry_delay_ms: int = 1000
    exponential_backoff: bool = True
    give_up_on: Tuple[Type[BaseException], ...] = ()
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.retry_delay_ms < 0:
            raise ValueError("retry_delay_ms must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""

        if self.exponential_backoff:
            return self.retry_delay_ms * (2 ** (attempt - 1)) / 1000.0
        return self.retry_delay_ms / 1000.0

    async def run(self, operation: Callable[[int], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=self._wait,
            retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(self.give_up_on),
            before_sleep=self._before_sleep,
            sleep=self.sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    result = await operation(attempt.retry_state.attempt_number)
        except self.give_up_on:
            raise
        except Exception as exc:
            LOGGER.warning("retry.exhausted", attempts=retrying.statistics.get("attempt_number"), error=str(exc))
            raise
        return result

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.delay_for(retry_state.attempt_number)

    @staticmethod
    def _before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        LOGGER.info("retry.scheduled", attempt=retry_state.attempt_number, delay_seconds=delay, error=str(error))
        PipelineMetrics.embedding_retries.inc()
