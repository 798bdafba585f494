"""RetryPolicy — attempt budget with linear or exponential backoff."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from .cancellation import sleep_cancellable

if TYPE_CHECKING:
    import asyncio


class RetryPolicy:
    """Configurable retry with linear or exponential backoff and optional jitter.

    Used by the publish pipeline (linear, no jitter) and by listeners to back
    off after receive failures (exponential, jittered).
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential: bool = True,
        jitter: bool = True,
    ) -> None:
        """Configure retry behavior.

        Args:
            max_attempts: Maximum number of attempts (including the first).
            base_delay: Delay in seconds before the first retry.
            max_delay: Cap on delay in seconds.
            exponential: Double the delay per retry; otherwise grow linearly
                (``base_delay * attempt``).
            jitter: If True, multiply delays by a random factor in [0.5, 1.5].
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("base_delay and max_delay must be >= 0")
        if base_delay > max_delay:
            raise ValueError("base_delay must be <= max_delay")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential = exponential
        self.jitter = jitter

    @classmethod
    def linear(cls, *, reattempts: int, backoff: float) -> RetryPolicy:
        """Policy for ``reattempts`` retries waiting ``backoff * n`` before retry n."""
        max_attempts = reattempts + 1
        return cls(
            max_attempts=max_attempts,
            base_delay=backoff,
            max_delay=backoff * max_attempts,
            exponential=False,
            jitter=False,
        )

    def should_retry(self, attempt: int) -> bool:
        """Return True if another attempt is allowed (attempt is 1-based)."""
        return 1 <= attempt < self.max_attempts

    def delay_for_attempt(self, attempt: int) -> float:
        """Return the delay in seconds after the given 1-based attempt failed."""
        if attempt < 1:
            return 0.0
        if self.exponential:
            delay = self.base_delay * (2 ** (attempt - 1))
        else:
            delay = self.base_delay * attempt
        delay = min(delay, self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random())  # noqa: S311
        return float(max(0.0, delay))

    async def wait_before_retry(
        self,
        attempt: int,
        cancellation: asyncio.Event | None = None,
    ) -> None:
        """Sleep for the delay of *attempt*; unwind early on cancellation."""
        await sleep_cancellable(self.delay_for_attempt(attempt), cancellation)
