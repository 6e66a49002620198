"""Retry with exponential backoff for transient failures."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from agentrelay.config.schema import RetryConfig

T = TypeVar("T")

RetryCallback = Callable[[int, Exception, float], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff.

    The delay before attempt ``n + 1`` is ``base_delay * multiplier ** (n - 1)``
    seconds, so the defaults wait 1s then 2s across three attempts.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay: Delay in seconds after the first failure.
        multiplier: Growth factor between consecutive delays.
        jitter: Fractional jitter applied to each delay (0.2 means +-20%).
        sleep: Awaitable sleep used between attempts; tests inject a fake.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: float = 0.0
    sleep: Callable[[float], Awaitable[None]] = field(
        default=asyncio.sleep, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

    @classmethod
    def from_config(
        cls,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            multiplier=config.multiplier,
            jitter=config.jitter,
            sleep=sleep or asyncio.sleep,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds to wait after failed attempt number ``attempt``."""
        delay = self.base_delay * self.multiplier ** (attempt - 1)
        if self.jitter:
            delay *= 1 + random.uniform(-self.jitter, self.jitter)
        return delay

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: RetryCallback | None = None,
    ) -> T:
        """Await operation until it succeeds or attempts are exhausted.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt.
            on_retry: Called with (failed attempt, error, upcoming delay)
                before each backoff sleep.

        Returns:
            The operation's result.

        Raises:
            Exception: The last error once max_attempts have failed.
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                if on_retry is not None:
                    on_retry(attempt, e, delay)
                await self.sleep(delay)
                attempt += 1
