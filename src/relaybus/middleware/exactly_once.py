"""ExactlyOnceMiddleware — skip messages another handler already took."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..ports.middleware import IMiddleware

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from ..models.context import HandleMessageContext
    from ..ports.locking import IMessageLock

logger = logging.getLogger("relaybus.middleware")


class ExactlyOnceMiddleware(IMiddleware["HandleMessageContext", bool]):
    """Deduplicate redeliveries by taking a lock on the message's unique key.

    The lock is kept after success for ``timeout_seconds`` so redeliveries in
    that window are acknowledged without running the handler. It is released
    after a failure so the next delivery can try again.
    """

    def __init__(
        self,
        lock: IMessageLock,
        *,
        handler_name: str,
        timeout_seconds: float = 300.0,
    ) -> None:
        self._lock = lock
        self._handler_name = handler_name
        self._timeout = timeout_seconds

    def _key(self, context: HandleMessageContext) -> str:
        return (
            f"{self._handler_name}-{context.message_type}-"
            f"{context.message.unique_key()}"
        )

    async def __call__(
        self,
        context: HandleMessageContext,
        next_handler: Callable[[HandleMessageContext], Awaitable[bool]],
        cancellation: asyncio.Event,
    ) -> bool:
        key = self._key(context)
        if not await self._lock.try_acquire(key, self._timeout):
            logger.info("Skipping %s: already handled or in progress", key)
            return True
        try:
            succeeded = await next_handler(context)
        except Exception:
            await self._lock.release(key)
            raise
        if not succeeded:
            await self._lock.release(key)
        return succeeded
