"""Retry nodes for the single and batch publish pipelines."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from ..exceptions import (
    MessagingSerializationError,
    OperationCancelledError,
    PublishCancelledError,
    PublishError,
    TransportError,
)
from ..models.response import (
    BatchEntryFailure,
    BatchEntrySuccess,
    MessageBatchResponse,
    MessageResponse,
    PublishOutcome,
)
from ..ports.middleware import IMiddleware

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from ..models.envelope import BatchEntry
    from ..ports.monitoring import IMessageMonitor
    from ..retry import RetryPolicy
    from .context import BatchPublishContext, PublishContext

logger = logging.getLogger("relaybus.publisher")

CANCELLED_CODE = "Cancelled"
NO_RESPONSE_CODE = "NoResponse"


def is_retryable(error: BaseException) -> bool:
    """Classify a publish failure.

    Transport errors carry their own classification, serialization errors are
    never retried, and anything else is assumed transient.
    """
    if isinstance(error, TransportError):
        return error.retryable
    if isinstance(error, MessagingSerializationError):
        return False
    return True


def _error_code(error: BaseException) -> str:
    code = getattr(error, "code", None)
    return str(code) if code else type(error).__name__


class PublishRetryMiddleware(IMiddleware["PublishContext", MessageResponse]):
    """Runs the rest of the chain up to ``policy.max_attempts`` times.

    Raises :class:`PublishError` once the budget is spent or a non-retryable
    error occurs, and :class:`PublishCancelledError` when the cancellation
    signal is observed between attempts. Both carry the response to report.
    """

    def __init__(self, policy: RetryPolicy, monitor: IMessageMonitor) -> None:
        self._policy = policy
        self._monitor = monitor

    async def __call__(
        self,
        context: PublishContext,
        next_handler: Callable[[PublishContext], Awaitable[MessageResponse]],
        cancellation: asyncio.Event,
    ) -> MessageResponse:
        destination = str(context.destination)
        attempt = 0
        while True:
            if cancellation.is_set():
                raise _publish_cancelled(destination, attempt)
            attempt += 1
            try:
                response = await next_handler(context)
            except Exception as e:
                self._monitor.issue_publishing_message()
                retryable = is_retryable(e)
                if not retryable or not self._policy.should_retry(attempt):
                    logger.error(
                        "Failed to publish %s to %s after %d attempt(s): %s",
                        context.message.message_type(),
                        destination,
                        attempt,
                        e,
                    )
                    raise PublishError(
                        f"Failed to publish {context.message.message_type()} "
                        f"to {destination}: {e}",
                        MessageResponse(
                            outcome=PublishOutcome.FAILED,
                            destination=destination,
                            attempts=attempt,
                            error=f"{_error_code(e)}: {e}",
                        ),
                    ) from e
                logger.warning(
                    "Publish attempt %d of %d to %s failed, retrying: %s",
                    attempt,
                    self._policy.max_attempts,
                    destination,
                    e,
                )
                try:
                    await self._policy.wait_before_retry(attempt, cancellation)
                except OperationCancelledError as exc:
                    raise _publish_cancelled(destination, attempt) from exc
                continue
            return response.model_copy(
                update={"attempts": attempt, "destination": destination}
            )


class BatchRetryMiddleware(IMiddleware["BatchPublishContext", MessageBatchResponse]):
    """Resubmits the retryable failed entries of a batch.

    Each attempt sends only the entries still pending. Entries that succeed
    are never reported as failed later; sender-fault entries fail for good on
    first sight. When the budget runs out the last failure of each pending
    entry is reported. On cancellation the pending entries are reported with
    code ``Cancelled`` and the response is returned rather than raised.
    """

    def __init__(self, policy: RetryPolicy, monitor: IMessageMonitor) -> None:
        self._policy = policy
        self._monitor = monitor

    async def __call__(
        self,
        context: BatchPublishContext,
        next_handler: Callable[[BatchPublishContext], Awaitable[MessageBatchResponse]],
        cancellation: asyncio.Event,
    ) -> MessageBatchResponse:
        pending: list[BatchEntry] = list(context.entries)
        successful: list[BatchEntrySuccess] = []
        failed: list[BatchEntryFailure] = []
        attempt = 0

        while pending:
            if cancellation.is_set():
                failed.extend(_cancelled(pending))
                break
            attempt += 1
            response = await self._attempt(context, pending, next_handler)
            successful.extend(response.successful)

            retry_failures: dict[str, BatchEntryFailure] = {}
            for failure in response.failed:
                if failure.sender_fault:
                    failed.append(failure)
                else:
                    retry_failures[failure.entry_id] = failure
            pending = [e for e in pending if e.entry_id in retry_failures]
            if not pending:
                break

            self._monitor.issue_publishing_message()
            if not self._policy.should_retry(attempt):
                failed.extend(retry_failures[e.entry_id] for e in pending)
                break
            logger.warning(
                "Batch attempt %d of %d to %s: %d entries failed, retrying",
                attempt,
                self._policy.max_attempts,
                context.destination,
                len(pending),
            )
            try:
                await self._policy.wait_before_retry(attempt, cancellation)
            except OperationCancelledError:
                failed.extend(_cancelled(pending))
                break

        return MessageBatchResponse(
            successful=tuple(successful),
            failed=tuple(failed),
            destination=str(context.destination),
            attempts=attempt,
        )

    async def _attempt(
        self,
        context: BatchPublishContext,
        pending: list[BatchEntry],
        next_handler: Callable[[BatchPublishContext], Awaitable[MessageBatchResponse]],
    ) -> MessageBatchResponse:
        """Send *pending* once; a whole-request failure fails every entry."""
        try:
            response = await next_handler(replace(context, entries=tuple(pending)))
        except Exception as e:
            logger.warning("Batch request to %s failed: %s", context.destination, e)
            return MessageBatchResponse(
                failed=tuple(
                    BatchEntryFailure(
                        entry_id=entry.entry_id,
                        code=_error_code(e),
                        reason=str(e),
                        sender_fault=not is_retryable(e),
                    )
                    for entry in pending
                )
            )

        answered = {s.entry_id for s in response.successful}
        answered.update(f.entry_id for f in response.failed)
        missing = [e for e in pending if e.entry_id not in answered]
        if not missing:
            return response
        return response.model_copy(
            update={
                "failed": response.failed
                + tuple(
                    BatchEntryFailure(
                        entry_id=entry.entry_id,
                        code=NO_RESPONSE_CODE,
                        reason="entry missing from batch response",
                    )
                    for entry in missing
                )
            }
        )


def _cancelled(entries: list[BatchEntry]) -> list[BatchEntryFailure]:
    return [
        BatchEntryFailure(entry_id=e.entry_id, code=CANCELLED_CODE, reason="cancelled")
        for e in entries
    ]


def _publish_cancelled(destination: str, attempts: int) -> PublishCancelledError:
    return PublishCancelledError(
        f"Publish to {destination} cancelled",
        MessageResponse(
            outcome=PublishOutcome.CANCELLED,
            destination=destination,
            attempts=attempts,
            error=CANCELLED_CODE,
        ),
    )
