"""Dead-lettering — take over messages that keep failing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import DeadLetterError
from ..ports.middleware import IMiddleware

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable, Coroutine

    from ..models.context import HandleMessageContext

logger = logging.getLogger("relaybus.middleware")


class DeadLetterHandler:
    """Routes messages that fail too often to a dead-letter destination.

    Caller provides an async callable that receives the context and failure
    reason; typically it publishes to a DLQ or stores the body for inspection.
    """

    def __init__(
        self,
        on_dead_letter: Callable[
            [HandleMessageContext, str, BaseException | None],
            Coroutine[Any, Any, None],
        ],
    ) -> None:
        self._on_dead_letter = on_dead_letter

    async def route(
        self,
        context: HandleMessageContext,
        reason: str,
        exception: BaseException | None = None,
    ) -> None:
        """Hand the message over; raise :class:`DeadLetterError` if that fails."""
        try:
            await self._on_dead_letter(context, reason, exception)
        except Exception as e:
            raise DeadLetterError(
                f"Dead-letter routing failed: {e}",
                message_id=context.envelope.message_id,
            ) from e
        logger.warning(
            "Dead-lettered %s %s: %s",
            context.message_type,
            context.message.unique_key(),
            reason,
        )


class DeadLetterMiddleware(IMiddleware["HandleMessageContext", bool]):
    """Dead-letters envelopes once their receive count reaches a limit.

    A failure on the last allowed receive routes the message to the
    dead-letter handler and reports success, so the envelope is acknowledged
    and removed from the source. Envelopes already past the limit are routed
    without running the handler.
    """

    def __init__(self, handler: DeadLetterHandler, *, max_receive_count: int) -> None:
        if max_receive_count < 1:
            raise ValueError("max_receive_count must be >= 1")
        self._handler = handler
        self._max_receive_count = max_receive_count

    async def __call__(
        self,
        context: HandleMessageContext,
        next_handler: Callable[[HandleMessageContext], Awaitable[bool]],
        cancellation: asyncio.Event,
    ) -> bool:
        if context.attempt > self._max_receive_count:
            await self._handler.route(
                context, f"received {context.attempt} times", None
            )
            return True

        final_attempt = context.attempt >= self._max_receive_count
        try:
            succeeded = await next_handler(context)
        except Exception as e:
            if not final_attempt:
                raise
            await self._handler.route(context, f"{type(e).__name__}: {e}", e)
            return True

        if succeeded or not final_attempt:
            return succeeded
        await self._handler.route(
            context,
            "handler failed",
            context.handled_exception,
        )
        return True
