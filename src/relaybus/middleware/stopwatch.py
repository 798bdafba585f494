"""StopwatchMiddleware — reports handler execution time to the monitor."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import TYPE_CHECKING

from ..ports.middleware import IMiddleware

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from ..models.context import HandleMessageContext
    from ..ports.monitoring import IMessageMonitor


class StopwatchMiddleware(IMiddleware["HandleMessageContext", bool]):
    def __init__(self, monitor: IMessageMonitor, handler_name: str) -> None:
        self._monitor = monitor
        self._handler_name = handler_name

    async def __call__(
        self,
        context: HandleMessageContext,
        next_handler: Callable[[HandleMessageContext], Awaitable[bool]],
        cancellation: asyncio.Event,
    ) -> bool:
        start = time.perf_counter()
        try:
            return await next_handler(context)
        finally:
            self._monitor.handler_execution_time(
                self._handler_name,
                context.message_type,
                timedelta(seconds=time.perf_counter() - start),
            )
