"""MessageBatchPublisher — batch publish with per-entry retry."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from ..correlation import get_correlation_id
from ..exceptions import (
    MessagingSerializationError,
    PublishBatchError,
    PublishCancelledError,
)
from ..middleware.pipeline import build_pipeline
from ..models.envelope import BatchEntry
from ..models.response import (
    BatchEntryFailure,
    BatchOutcome,
    MessageBatchResponse,
)
from .base import BasePublisher
from .context import BatchPublishContext
from .retry import CANCELLED_CODE, BatchRetryMiddleware

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from ..models.destination import Destination
    from ..models.message import Message
    from ..ports.middleware import IMiddleware

logger = logging.getLogger("relaybus.publisher")

SERIALIZATION_ERROR_CODE = "SerializationError"


def _chunks(items: list[Message], size: int) -> Iterable[list[Message]]:
    for index in range(0, len(items), size):
        yield items[index : index + size]


def _distinct(messages: list[Message]) -> list[Message]:
    """Drop repeats of a unique key; batch entry ids must be distinct."""
    unique: dict[str, Message] = {}
    for message in messages:
        unique.setdefault(message.unique_key(), message)
    if len(unique) != len(messages):
        logger.debug(
            "Dropped %d duplicate message(s) from batch", len(messages) - len(unique)
        )
    return list(unique.values())


class MessageBatchPublisher(BasePublisher):
    """Publishes many messages with as few transport requests as possible.

    Messages are grouped by destination and chunked by ``max_batch_size``;
    each chunk goes through ``[*middlewares, BatchRetryMiddleware]`` to
    ``transport.send_batch``. The batch response logger is called exactly once
    per :meth:`publish` call with the aggregate response and the full input.

    Messages sharing a unique key are the same message and are sent once.
    A partially failed batch returns normally; inspect the response for the
    failed entries. A batch where nothing was delivered raises
    :class:`PublishBatchError`, as does an error raised by a middleware or
    hook; the response logger still sees every entry first.
    """

    def __init__(
        self,
        *args: Any,
        middlewares: Sequence[
            IMiddleware[BatchPublishContext, MessageBatchResponse]
        ] = (),
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._pipeline = build_pipeline(
            [
                *middlewares,
                BatchRetryMiddleware(self._config.retry_policy(), self._monitor),
            ],
            self._send_batch,
        )

    async def publish(
        self,
        messages: Iterable[Message],
        *,
        cancellation: asyncio.Event | None = None,
    ) -> MessageBatchResponse:
        """Publish *messages*; return the aggregate per-entry response."""
        batch = list(messages)
        cancellation = self._new_cancellation(cancellation)
        groups: dict[Destination, list[Message]] = {}
        for message in _distinct(batch):
            groups.setdefault(self._routes.resolve(type(message)), []).append(message)

        start = time.perf_counter()
        responses: list[MessageBatchResponse] = []
        try:
            for destination, group in groups.items():
                for chunk in _chunks(group, self._config.max_batch_size):
                    responses.append(
                        await self._publish_chunk(destination, chunk, cancellation)
                    )
                    for target in self._fan_out_destinations(destination):
                        await self._fan_out_chunk(target, chunk, cancellation)
        except asyncio.CancelledError:
            responses.append(
                self._unsent_remainder(batch, responses, CANCELLED_CODE, "cancelled")
            )
            self._log_response(MessageBatchResponse.combine(responses), batch)
            raise
        except Exception as e:
            self._monitor.issue_publishing_message()
            responses.append(
                self._unsent_remainder(batch, responses, type(e).__name__, str(e))
            )
            aggregate = MessageBatchResponse.combine(responses)
            self._log_response(aggregate, batch)
            raise PublishBatchError(
                f"Failed to publish batch of {len(batch)} message(s): {e}", aggregate
            ) from e

        aggregate = MessageBatchResponse.combine(
            responses,
            destination=", ".join(str(d) for d in groups) or None,
        )
        self._log_response(aggregate, batch)
        self._monitor.publish_message_time(
            timedelta(seconds=time.perf_counter() - start)
        )

        if any(f.code == CANCELLED_CODE for f in aggregate.failed):
            raise PublishCancelledError("Batch publish cancelled", aggregate)
        if aggregate.outcome is BatchOutcome.FAILED:
            raise PublishBatchError(
                f"Failed to publish any of {len(batch)} message(s)", aggregate
            )
        if aggregate.outcome is BatchOutcome.PARTIAL:
            logger.warning(
                "Published %d of %d message(s); failed: %s",
                len(aggregate.successful),
                len(batch),
                aggregate.failed_ids,
            )
        else:
            logger.info("Published batch of %d message(s)", len(batch))
        return aggregate

    async def _publish_chunk(
        self,
        destination: Destination,
        chunk: list[Message],
        cancellation: asyncio.Event,
    ) -> MessageBatchResponse:
        entries: list[BatchEntry] = []
        rejected: list[BatchEntryFailure] = []
        for message in chunk:
            try:
                body = self._serializer.serialize(message)
            except MessagingSerializationError as e:
                rejected.append(
                    BatchEntryFailure(
                        entry_id=message.unique_key(),
                        code=SERIALIZATION_ERROR_CODE,
                        reason=str(e),
                        sender_fault=True,
                    )
                )
                continue
            entries.append(BatchEntry(entry_id=message.unique_key(), body=body))

        response = MessageBatchResponse(destination=str(destination))
        if entries:
            context = BatchPublishContext(
                messages=tuple(chunk),
                destination=destination,
                entries=tuple(entries),
            )
            response = await self._hooks.execute_all(
                f"publisher.publish_batch.{destination.name}",
                {
                    "destination": str(destination),
                    "batch.size": len(entries),
                    "correlation_id": get_correlation_id(),
                },
                lambda: self._pipeline(context, cancellation),
            )
        if rejected:
            response = response.model_copy(
                update={"failed": response.failed + tuple(rejected)}
            )
        return response

    async def _fan_out_chunk(
        self,
        target: Destination,
        chunk: list[Message],
        cancellation: asyncio.Event,
    ) -> None:
        """Copy a chunk to another account; failures are logged, not raised."""
        response = await self._publish_chunk(target, chunk, cancellation)
        if response.failed:
            logger.error(
                "Fan-out to %s failed for %d message(s): %s",
                target,
                len(response.failed),
                response.failed_ids,
            )

    @staticmethod
    def _unsent_remainder(
        batch: list[Message],
        responses: list[MessageBatchResponse],
        code: str,
        reason: str,
    ) -> MessageBatchResponse:
        """Entries without an outcome yet, failed with *code*."""
        seen: set[str] = set()
        for response in responses:
            seen.update(response.succeeded_ids)
            seen.update(response.failed_ids)
        failed: list[BatchEntryFailure] = []
        for message in batch:
            key = message.unique_key()
            if key not in seen:
                seen.add(key)
                failed.append(
                    BatchEntryFailure(entry_id=key, code=code, reason=reason)
                )
        return MessageBatchResponse(failed=tuple(failed))

    async def _send_batch(
        self, context: BatchPublishContext, cancellation: asyncio.Event
    ) -> MessageBatchResponse:
        return await self._transport.send_batch(context.destination, context.entries)

    def _log_response(
        self, response: MessageBatchResponse, messages: list[Message]
    ) -> None:
        response_logger = self._config.message_batch_response_logger
        if response_logger is not None:
            response_logger(response, messages)
