from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IMessageLock(Protocol):
    """Port for short-lived distributed locks keyed by message identity."""

    async def try_acquire(self, key: str, ttl_seconds: float) -> bool:
        """Take the lock; return ``False`` if somebody else holds it."""
        ...

    async def release(self, key: str) -> None:
        """Release the lock early (e.g. after a failed handler)."""
        ...
