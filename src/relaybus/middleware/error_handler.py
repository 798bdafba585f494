"""ErrorHandlerMiddleware — turns handler exceptions into a failed result."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..ports.middleware import IMiddleware

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from ..models.context import HandleMessageContext
    from ..ports.monitoring import IMessageMonitor

logger = logging.getLogger("relaybus.middleware")


class ErrorHandlerMiddleware(IMiddleware["HandleMessageContext", bool]):
    """Reports exceptions to the monitor and returns ``False``.

    The exception is kept on ``context.handled_exception`` so that outer nodes
    can still inspect it. Cancellation is not an error and propagates.
    """

    def __init__(self, monitor: IMessageMonitor) -> None:
        self._monitor = monitor

    async def __call__(
        self,
        context: HandleMessageContext,
        next_handler: Callable[[HandleMessageContext], Awaitable[bool]],
        cancellation: asyncio.Event,
    ) -> bool:
        try:
            return await next_handler(context)
        except Exception as e:
            context.handled_exception = e
            self._monitor.handle_exception(context.message_type)
            self._monitor.handle_error(e, context.message_type)
            logger.error(
                "Handler for %s raised %s: %s",
                context.message_type,
                type(e).__name__,
                e,
                exc_info=e,
            )
            return False
