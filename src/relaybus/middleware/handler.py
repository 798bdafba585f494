"""HandlerInvocation — the terminal step of every inbound chain."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from ..models.context import HandleMessageContext
    from ..models.message import Message


def handler_name(handler: Any) -> str:
    """Readable name for logs and monitors."""
    if inspect.isfunction(handler) or inspect.ismethod(handler):
        return handler.__qualname__
    return type(handler).__name__


class HandlerInvocation:
    """Calls the application handler with the typed message.

    *handler* is an object with ``async handle(message) -> bool`` or a plain
    async callable. A ``None`` return counts as success, so plain functions
    that only raise on failure work unchanged.
    """

    def __init__(self, handler: Any) -> None:
        handle = getattr(handler, "handle", None)
        if handle is None and not callable(handler):
            raise TypeError(f"{handler!r} is not a message handler")
        self._handle: Callable[[Message], Awaitable[bool | None]] = handle or handler
        self.name = handler_name(handler)

    async def __call__(
        self,
        context: HandleMessageContext,
        cancellation: asyncio.Event,
    ) -> bool:
        result = await self._handle(context.message)
        return True if result is None else bool(result)
