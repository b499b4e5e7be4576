"""Shared retry policy for calls to the generation service.

Outline acquisition retries its whole structure-then-title sequence, title
generation retries the single-shot call, and chapter generation retries only
the opening of a stream. All three go through :class:`RetryPolicy` so they
share one attempt budget and one delay schedule.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

__all__ = ["RetryPolicy", "RetryExhausted"]

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
AttemptHook = Callable[[int, BaseException], None]


class RetryExhausted(RuntimeError):
    """Raised only when a policy runs zero attempts, which validation prevents."""


@dataclass(slots=True)
class RetryPolicy:
    """Fixed attempt budget with a fixed (or multiplied) delay between attempts."""

    max_attempts: int = 3
    delay_seconds: float = 2.0
    backoff: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Sleep = field(default=asyncio.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""

        return self.delay_seconds * (self.backoff ** (attempt - 1))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "operation",
        on_failure: AttemptHook | None = None,
    ) -> T:
        """Await ``operation`` until it succeeds or the budget is spent.

        ``on_failure`` observes every failed attempt before the delay, which
        lets callers surface intermediate errors. The last error is re-raised
        once attempts run out.
        """

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except self.retry_on as exc:
                if on_failure is not None:
                    on_failure(attempt, exc)
                if attempt >= self.max_attempts:
                    logger.error("%s failed after %s attempts: %s", label, attempt, exc)
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s attempt %s/%s failed (%s); retrying in %.2fs.",
                    label,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                await self.sleep(delay)
        raise RetryExhausted(f"{label} made no attempts")
