"""Cancellation-aware waits for receive calls, backoff and shutdown drains."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, TypeVar

from .exceptions import OperationCancelledError

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


async def wait_cancellable(awaitable: Awaitable[T], cancellation: asyncio.Event) -> T:
    """Await *awaitable* unless *cancellation* is set first.

    The pending operation is cancelled and ``OperationCancelledError`` raised
    as soon as the signal is observed.
    """
    if cancellation.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelledError("Operation cancelled before it started")

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancellation.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise

    if task in done:
        waiter.cancel()
        return task.result()

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    raise OperationCancelledError("Operation cancelled")


async def sleep_cancellable(seconds: float, cancellation: asyncio.Event | None) -> None:
    """Sleep for *seconds*; raise ``OperationCancelledError`` if cancelled first."""
    if cancellation is None:
        if seconds > 0:
            await asyncio.sleep(seconds)
        return
    if cancellation.is_set():
        raise OperationCancelledError("Wait cancelled")
    if seconds <= 0:
        return
    try:
        await asyncio.wait_for(cancellation.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise OperationCancelledError("Wait cancelled")
