"""Async retry with exponential back-off."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Tuple, Type, TypeVar

from utils.log_config import get_logger

log = get_logger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget plus a doubling delay schedule."""

    max_attempts:  int   = 3
    initial_delay: float = 1.0
    multiplier:    float = 2.0

    def delays(self) -> Iterator[float]:
        """Delay before attempt 2, 3, … (one fewer than ``max_attempts``)."""
        delay = self.initial_delay
        for _ in range(max(self.max_attempts - 1, 0)):
            yield delay
            delay *= self.multiplier


async def retry_call(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Sleeper = asyncio.sleep,
    label: str = "",
) -> T:
    """
    Await ``func()`` up to ``policy.max_attempts`` times.

    Only exceptions in *retry_on* are retried; anything else propagates
    from the attempt that raised it. When the budget runs out the last
    retryable exception is re-raised.
    """
    if policy.max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    delays = policy.delays()
    name = label or getattr(func, "__name__", "call")
    attempt = 0
    while True:
        attempt += 1
        try:
            return await func()
        except retry_on as exc:
            delay = next(delays, None)
            if delay is None:
                log.debug("%s gave up after %d attempt(s): %s", name, attempt, exc)
                raise
            log.debug(
                "Retry %d/%d for %s after %.2fs — %s",
                attempt,
                policy.max_attempts,
                name,
                delay,
                exc,
            )
            await sleep(delay)
