"""IMiddleware — onion-model middleware protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

ContextT = TypeVar("ContextT")
ResultT = TypeVar("ResultT")


@runtime_checkable
class IMiddleware(Protocol[ContextT, ResultT]):
    """Protocol for a node in an inbound or outbound pipeline.

    The chain is applied outermost-first: the first node added runs first on
    the way in and last on the way out. A node may pass through, replace the
    context before calling ``next_handler``, short-circuit by returning without
    calling it, or observe and translate failures raised further in.
    """

    async def __call__(
        self,
        context: ContextT,
        next_handler: Callable[[ContextT], Awaitable[ResultT]],
        cancellation: asyncio.Event,
    ) -> ResultT:
        """Run this node and (usually) the rest of the chain.

        Parameters
        ----------
        context:
            The shared unit of work (delivery context or publish context).
        next_handler:
            Async callable running the remainder of the chain.
        cancellation:
            Signal set when the surrounding operation should unwind.
        """
        ...
