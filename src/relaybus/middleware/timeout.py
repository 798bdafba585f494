"""HandlerTimeoutMiddleware — bounds how long a handler may run."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from ..exceptions import HandlerTimeoutError
from ..ports.middleware import IMiddleware

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..models.context import HandleMessageContext


class HandlerTimeoutMiddleware(IMiddleware["HandleMessageContext", bool]):
    """Raises :class:`HandlerTimeoutError` when the rest of the chain overruns."""

    def __init__(self, timeout_seconds: float) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout = timeout_seconds

    async def __call__(
        self,
        context: HandleMessageContext,
        next_handler: Callable[[HandleMessageContext], Awaitable[bool]],
        cancellation: asyncio.Event,
    ) -> bool:
        try:
            return await asyncio.wait_for(next_handler(context), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise HandlerTimeoutError(context.message_type, self._timeout) from e
