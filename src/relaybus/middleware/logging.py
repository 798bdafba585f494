"""HandleLoggingMiddleware — logs every inbound handling with its outcome."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from ..correlation import get_correlation_id
from ..ports.middleware import IMiddleware

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from ..models.context import HandleMessageContext

logger = logging.getLogger("relaybus.middleware")


class HandleLoggingMiddleware(IMiddleware["HandleMessageContext", bool]):
    """Logs message type, destination, unique key, duration and outcome."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    async def __call__(
        self,
        context: HandleMessageContext,
        next_handler: Callable[[HandleMessageContext], Awaitable[bool]],
        cancellation: asyncio.Event,
    ) -> bool:
        message_type = context.message_type
        key = context.message.unique_key()
        self._log.debug(
            "Handling %s %s from %s (attempt=%d, correlation_id=%s)",
            message_type,
            key,
            context.destination,
            context.attempt,
            get_correlation_id(),
        )
        start = time.perf_counter()
        try:
            succeeded = await next_handler(context)
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            self._log.exception(
                "%s %s failed after %.2fms", message_type, key, elapsed
            )
            raise
        elapsed = (time.perf_counter() - start) * 1000
        if succeeded:
            self._log.info(
                "Succeeded handling %s %s in %.2fms", message_type, key, elapsed
            )
        else:
            self._log.warning(
                "Failed handling %s %s in %.2fms", message_type, key, elapsed
            )
        return succeeded
