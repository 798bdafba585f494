"""MessageFilterMiddleware — drop messages the application does not want."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..ports.middleware import IMiddleware

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from ..models.context import HandleMessageContext
    from ..models.message import Message

logger = logging.getLogger("relaybus.middleware")


class MessageFilterMiddleware(IMiddleware["HandleMessageContext", bool]):
    """Short-circuits with ``True`` (acknowledge, skip handler) when
    *predicate* rejects the message."""

    def __init__(self, predicate: Callable[[Message], bool]) -> None:
        self._predicate = predicate

    async def __call__(
        self,
        context: HandleMessageContext,
        next_handler: Callable[[HandleMessageContext], Awaitable[bool]],
        cancellation: asyncio.Event,
    ) -> bool:
        if not self._predicate(context.message):
            logger.debug(
                "Filtered out %s %s",
                context.message_type,
                context.message.unique_key(),
            )
            return True
        return await next_handler(context)
