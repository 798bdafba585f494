"""MessagePublisher — single-message publish with retry and fan-out."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from ..correlation import get_correlation_id
from ..exceptions import (
    OperationCancelledError,
    PublishCancelledError,
    PublishError,
)
from ..middleware.pipeline import build_pipeline
from ..models.response import MessageResponse, PublishOutcome
from .base import BasePublisher
from .context import PublishContext
from .retry import CANCELLED_CODE, PublishRetryMiddleware

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..models.destination import Destination
    from ..models.message import Message
    from ..ports.middleware import IMiddleware

logger = logging.getLogger("relaybus.publisher")


class MessagePublisher(BasePublisher):
    """Publishes one message at a time.

    The chain is ``[*middlewares, PublishRetryMiddleware]`` ending at
    ``transport.send``. The configured response logger sees every outcome
    (success, failure, cancellation) before the call returns or raises.

    Usage::

        publisher = MessagePublisher(transport, routes, configuration=config)
        await publisher.start(stopping)
        response = await publisher.publish(OrderPlaced(order_id="42"))
    """

    def __init__(
        self,
        *args: Any,
        middlewares: Sequence[IMiddleware[PublishContext, MessageResponse]] = (),
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._pipeline = build_pipeline(
            [
                *middlewares,
                PublishRetryMiddleware(self._config.retry_policy(), self._monitor),
            ],
            self._send,
        )

    async def publish(
        self,
        message: Message,
        *,
        cancellation: asyncio.Event | None = None,
    ) -> MessageResponse:
        """Publish *message* to its routed destination and every fan-out account.

        Raises :class:`PublishError` when the primary send fails for good and
        :class:`PublishCancelledError` when *cancellation* aborts the retries.
        Fan-out failures are logged and reported but do not fail the call.
        Accounts skipped after cancellation are reported as cancelled.
        """
        destination = self._routes.resolve(type(message))
        cancellation = self._new_cancellation(cancellation)
        response = await self._publish_to(message, destination, cancellation)

        for target in self._fan_out_destinations(destination):
            if cancellation.is_set():
                logger.debug(
                    "Fan-out of %s to %s skipped", message.unique_key(), target
                )
                self._log_response(
                    MessageResponse(
                        outcome=PublishOutcome.CANCELLED,
                        destination=str(target),
                        error=CANCELLED_CODE,
                    ),
                    message,
                )
                continue
            try:
                await self._publish_to(message, target, cancellation)
            except (PublishError, OperationCancelledError) as e:
                logger.error(
                    "Fan-out of %s %s to %s failed: %s",
                    message.message_type(),
                    message.unique_key(),
                    target,
                    e,
                )
        return response

    async def _publish_to(
        self,
        message: Message,
        destination: Destination,
        cancellation: asyncio.Event,
    ) -> MessageResponse:
        attributes = {
            "destination": str(destination),
            "message_type": message.message_type(),
            "message_id": message.unique_key(),
            "correlation_id": get_correlation_id() or message.conversation,
        }
        start = time.perf_counter()
        try:
            context = PublishContext(
                message=message,
                destination=destination,
                body=self._serializer.serialize(message),
            )
            response: MessageResponse = await self._hooks.execute_all(
                f"publisher.publish.{destination.name}",
                attributes,
                lambda: self._pipeline(context, cancellation),
            )
        except (PublishError, PublishCancelledError) as e:
            self._log_response(e.response, message)  # type: ignore[arg-type]
            raise
        except asyncio.CancelledError:
            self._log_response(
                MessageResponse(
                    outcome=PublishOutcome.CANCELLED,
                    destination=str(destination),
                    error=CANCELLED_CODE,
                ),
                message,
            )
            raise
        except Exception as e:
            self._monitor.issue_publishing_message()
            failure = MessageResponse(
                outcome=PublishOutcome.FAILED,
                destination=str(destination),
                error=f"{type(e).__name__}: {e}",
            )
            self._log_response(failure, message)
            raise PublishError(
                f"Failed to publish {message.message_type()} to {destination}: {e}",
                failure,
            ) from e

        self._monitor.publish_message_time(
            timedelta(seconds=time.perf_counter() - start)
        )
        logger.info(
            "Published %s %s to %s (message_id=%s, attempts=%d)",
            message.message_type(),
            message.unique_key(),
            destination,
            response.message_id,
            response.attempts,
        )
        self._log_response(response, message)
        return response

    async def _send(
        self, context: PublishContext, cancellation: asyncio.Event
    ) -> MessageResponse:
        return await self._transport.send(
            context.destination,
            context.body,
            message_id=context.message.unique_key(),
            attributes=context.attributes,
        )

    def _log_response(self, response: MessageResponse, message: Message) -> None:
        response_logger = self._config.message_response_logger
        if response_logger is not None:
            response_logger(response, message)
