"""IBackgroundWorker — lifecycle protocol for long-running components."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import asyncio


@runtime_checkable
class IBackgroundWorker(Protocol):
    """
    Lifecycle protocol shared by listeners and publishers.

    Used by: ``MessageListener``, ``MessagePublisher``, ``MessageBatchPublisher``.
    """

    async def start(self, cancellation: asyncio.Event) -> None:
        """Start the component; return once it is running."""
        ...

    async def stop(self) -> None:
        """Stop the component gracefully."""
        ...
