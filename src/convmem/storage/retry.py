"""Retry logic with per-attempt timeouts, exponential backoff and jitter."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..core.config import BackendSettings
from ..core.exceptions import BackendError, BackendTimeoutError, BackendUnavailableError
from ..core.schemas import MemoryFilter, MemoryItem, ScoredMemory
from ..utils.logging_config import get_logger
from ..utils.metrics import BACKEND_FAILURES, BACKEND_RETRIES
from .base import MemoryBackend

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 0.2
    max_delay: float = 2.0
    timeout: float = 10.0

    @classmethod
    def from_settings(cls, settings: BackendSettings) -> RetryPolicy:
        return cls(
            attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay_ms / 1000,
            max_delay=settings.retry_max_delay_ms / 1000,
            timeout=settings.timeout_ms / 1000,
        )

    def backoff(self, attempt: int) -> float:
        """Delay before retrying after the zero-based *attempt* failed."""
        delay = self.base_delay * (2**attempt) + random.uniform(0, self.base_delay)
        return min(delay, self.max_delay)


async def retry_async(
    policy: RetryPolicy,
    operation: str,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> T:
    """Run *func* with up to ``policy.attempts`` tries.

    Each try is bounded by ``policy.timeout``. Retryable backend errors are
    retried; anything else propagates immediately. Exhaustion raises
    ``BackendUnavailableError``.
    """
    last_exception: BackendError | None = None
    for attempt in range(policy.attempts):
        try:
            return await asyncio.wait_for(func(*args, **kwargs), timeout=policy.timeout)
        except asyncio.TimeoutError:
            last_exception = BackendTimeoutError(
                f"{operation} timed out after {policy.timeout:.3f}s"
            )
        except BackendError as e:
            if not e.retryable:
                raise
            last_exception = e
        BACKEND_RETRIES.labels(operation=operation, error=type(last_exception).__name__).inc()
        if attempt < policy.attempts - 1:
            delay = policy.backoff(attempt)
            logger.debug(
                "backend_retry",
                operation=operation,
                attempt=attempt + 1,
                max_attempts=policy.attempts,
                error=type(last_exception).__name__,
                sleep_s=round(delay, 3),
            )
            await sleep(delay)

    BACKEND_FAILURES.labels(operation=operation).inc()
    logger.warning(
        "backend_unavailable",
        operation=operation,
        attempts=policy.attempts,
        error=str(last_exception),
    )
    raise BackendUnavailableError(operation, policy.attempts, last_exception) from last_exception


class RetryingBackend(MemoryBackend):
    """Wraps a backend so every call follows the retry policy."""

    def __init__(
        self,
        backend: MemoryBackend,
        policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.inner = backend
        self.policy = policy
        self._sleep = sleep

    async def add(self, items: list[MemoryItem]) -> list[str]:
        return await retry_async(self.policy, "add", self.inner.add, items, sleep=self._sleep)

    async def search(self, query: str, flt: MemoryFilter, limit: int) -> list[ScoredMemory]:
        return await retry_async(
            self.policy, "search", self.inner.search, query, flt, limit, sleep=self._sleep
        )

    async def delete(self, ids: list[str]) -> int:
        return await retry_async(self.policy, "delete", self.inner.delete, ids, sleep=self._sleep)

    async def get(self, item_id: str) -> MemoryItem | None:
        return await retry_async(self.policy, "get", self.inner.get, item_id, sleep=self._sleep)

    async def update(self, item: MemoryItem) -> bool:
        return await retry_async(
            self.policy, "update", self.inner.update, item, sleep=self._sleep
        )

    async def aclose(self) -> None:
        await self.inner.aclose()
