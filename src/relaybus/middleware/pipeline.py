"""build_pipeline — compose middleware nodes around a terminal operation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable, Sequence

    from ..ports.middleware import IMiddleware

ContextT = TypeVar("ContextT")
ResultT = TypeVar("ResultT")


def build_pipeline(
    middlewares: Sequence[IMiddleware[ContextT, ResultT]],
    terminal: Callable[[ContextT, asyncio.Event], Awaitable[ResultT]],
) -> Callable[[ContextT, asyncio.Event], Awaitable[ResultT]]:
    """Build a middleware chain ending at *terminal*.

    The first middleware in the list is the **outermost** wrapper. Each node
    is called as ``await node(context, next_handler, cancellation)`` where
    ``next_handler(context)`` runs the remainder of the chain. The returned
    callable has the terminal's signature ``(context, cancellation)``.

    The node list is copied, so the chain is fixed once built and may be
    re-entered concurrently.
    """
    nodes: tuple[IMiddleware[ContextT, ResultT], ...] = tuple(middlewares)
    depth = len(nodes)

    async def pipeline(context: ContextT, cancellation: asyncio.Event) -> ResultT:
        async def invoke(index: int, current: ContextT) -> ResultT:
            if index == depth:
                return await terminal(current, cancellation)
            node = nodes[index]

            def next_handler(ctx: ContextT) -> Awaitable[Any]:
                return invoke(index + 1, ctx)

            return await node(current, next_handler, cancellation)

        return await invoke(0, context)

    return pipeline
