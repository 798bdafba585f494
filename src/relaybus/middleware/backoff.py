"""BackoffMiddleware — delay redelivery of failed messages via visibility."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..ports.middleware import IMiddleware

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from ..models.context import HandleMessageContext
    from ..ports.monitoring import IMessageMonitor
    from ..retry import RetryPolicy

logger = logging.getLogger("relaybus.middleware")

# SQS rejects visibility timeouts above twelve hours.
MAX_VISIBILITY_TIMEOUT = 43200


class BackoffMiddleware(IMiddleware["HandleMessageContext", bool]):
    """On failure, hides the envelope for ``policy.delay_for_attempt(attempt)``.

    Redelivery itself stays with the transport; this node only decides how
    long it waits. The original failure (result or exception) is preserved.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        monitor: IMessageMonitor | None = None,
    ) -> None:
        self._policy = policy
        self._monitor = monitor

    async def __call__(
        self,
        context: HandleMessageContext,
        next_handler: Callable[[HandleMessageContext], Awaitable[bool]],
        cancellation: asyncio.Event,
    ) -> bool:
        try:
            succeeded = await next_handler(context)
        except Exception:
            await self._back_off(context)
            raise
        if not succeeded:
            await self._back_off(context)
        return succeeded

    async def _back_off(self, context: HandleMessageContext) -> None:
        delay = int(self._policy.delay_for_attempt(context.attempt))
        delay = min(max(delay, 0), MAX_VISIBILITY_TIMEOUT)
        try:
            await context.visibility.update(delay)
        except Exception as e:
            logger.exception(
                "Failed to update visibility of %s to %ds",
                context.envelope.message_id,
                delay,
            )
            if self._monitor is not None:
                self._monitor.handle_error(e, context.message_type)
            return
        logger.debug(
            "Backing off %s for %ds after attempt %d",
            context.envelope.message_id,
            delay,
            context.attempt,
        )
