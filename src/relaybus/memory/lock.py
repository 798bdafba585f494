"""InMemoryMessageLock — process-local IMessageLock with expiring keys."""

from __future__ import annotations

import time

from ..ports.locking import IMessageLock


class InMemoryMessageLock(IMessageLock):
    """Lock table held in a dict; keys expire after their TTL.

    For tests and single-process deployments. Use a shared store (Redis,
    DynamoDB) behind the same port when several processes consume the
    same destination.
    """

    def __init__(self) -> None:
        self._expires: dict[str, float] = {}

    async def try_acquire(self, key: str, ttl_seconds: float) -> bool:
        now = time.monotonic()
        expired = [k for k, expires in self._expires.items() if expires <= now]
        for stale in expired:
            del self._expires[stale]
        if key in self._expires:
            return False
        self._expires[key] = now + ttl_seconds
        return True

    async def release(self, key: str) -> None:
        self._expires.pop(key, None)

    def is_locked(self, key: str) -> bool:
        expires = self._expires.get(key)
        return expires is not None and expires > time.monotonic()

    def clear(self) -> None:
        """Drop every key (for test teardown)."""
        self._expires.clear()
