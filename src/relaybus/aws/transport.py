"""AwsTransport — SQS queues and SNS topics behind IMessageTransport."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import FatalTransportError, RetryableTransportError, TransportError
from ..models.envelope import ReceivedEnvelope
from ..models.response import (
    BatchEntryFailure,
    BatchEntrySuccess,
    MessageBatchResponse,
    MessageResponse,
)
from ..ports.transport import IMessageTransport

if TYPE_CHECKING:
    from collections.abc import Awaitable, Sequence

    from ..models.destination import Destination
    from ..models.envelope import BatchEntry
    from .connection import AwsConnectionManager

logger = logging.getLogger("relaybus.transport")

# Error codes for which another attempt cannot succeed.
FATAL_ERROR_CODES = frozenset(
    {
        "AccessDenied",
        "AccessDeniedException",
        "AuthorizationError",
        "AWS.SimpleQueueService.NonExistentQueue",
        "InvalidClientTokenId",
        "InvalidMessageContents",
        "InvalidParameter",
        "InvalidParameterValue",
        "InvalidParameterException",
        "NotFound",
        "NotFoundException",
        "QueueDoesNotExist",
        "ReceiptHandleIsInvalid",
    }
)

RECEIVE_COUNT_ATTRIBUTE = "ApproximateReceiveCount"


def classify_error(error: Exception, operation: str) -> TransportError:
    """Translate a client error into a retryable or fatal ``TransportError``."""
    if isinstance(error, TransportError):
        return error
    response = getattr(error, "response", None) or {}
    code = response.get("Error", {}).get("Code")
    message = f"{operation} failed: {error}"
    if code in FATAL_ERROR_CODES:
        return FatalTransportError(message, code=code)
    return RetryableTransportError(message, code=code or type(error).__name__)


def _message_attributes(attributes: dict[str, str]) -> dict[str, Any]:
    return {
        name: {"DataType": "String", "StringValue": value}
        for name, value in attributes.items()
    }


def _status(out: dict[str, Any]) -> int | None:
    return out.get("ResponseMetadata", {}).get("HTTPStatusCode")


class AwsTransport(IMessageTransport):
    """Queues are SQS queues, topics are SNS topics.

    Destinations without an ``address`` are resolved by name (and owner
    account) through the connection manager. Messages sent to FIFO queues
    use the message id as deduplication id and a single message group.
    """

    def __init__(
        self,
        connection: AwsConnectionManager,
        *,
        message_group_id: str = "default",
    ) -> None:
        self._connection = connection
        self._message_group_id = message_group_id

    async def verify(self, destination: Destination) -> None:
        address = await self._address(destination)
        if destination.is_topic:
            sns = await self._connection.get_client("sns")
            await self._call(
                "GetTopicAttributes", sns.get_topic_attributes(TopicArn=address)
            )
        else:
            sqs = await self._connection.get_client("sqs")
            await self._call(
                "GetQueueAttributes",
                sqs.get_queue_attributes(QueueUrl=address, AttributeNames=["QueueArn"]),
            )
        logger.debug("Verified %s at %s", destination, address)

    async def send(
        self,
        destination: Destination,
        body: str,
        *,
        message_id: str,
        attributes: dict[str, str] | None = None,
    ) -> MessageResponse:
        address = await self._address(destination)
        request: dict[str, Any] = {}
        if attributes:
            request["MessageAttributes"] = _message_attributes(attributes)
        if destination.is_topic:
            sns = await self._connection.get_client("sns")
            request.update(TopicArn=address, Message=body)
            self._add_fifo(request, address, message_id)
            out = await self._call("Publish", sns.publish(**request))
        else:
            sqs = await self._connection.get_client("sqs")
            request.update(QueueUrl=address, MessageBody=body)
            self._add_fifo(request, address, message_id)
            out = await self._call("SendMessage", sqs.send_message(**request))
        return MessageResponse(
            message_id=out.get("MessageId"),
            sequence_number=out.get("SequenceNumber"),
            http_status_code=_status(out),
            destination=str(destination),
        )

    async def send_batch(
        self,
        destination: Destination,
        entries: Sequence[BatchEntry],
    ) -> MessageBatchResponse:
        address = await self._address(destination)
        request_entries: list[dict[str, Any]] = []
        for entry in entries:
            item: dict[str, Any] = {"Id": entry.entry_id}
            if entry.attributes:
                item["MessageAttributes"] = _message_attributes(entry.attributes)
            self._add_fifo(item, address, entry.entry_id)
            if destination.is_topic:
                item["Message"] = entry.body
            else:
                item["MessageBody"] = entry.body
            request_entries.append(item)

        if destination.is_topic:
            sns = await self._connection.get_client("sns")
            out = await self._call(
                "PublishBatch",
                sns.publish_batch(
                    TopicArn=address, PublishBatchRequestEntries=request_entries
                ),
            )
        else:
            sqs = await self._connection.get_client("sqs")
            out = await self._call(
                "SendMessageBatch",
                sqs.send_message_batch(QueueUrl=address, Entries=request_entries),
            )
        return MessageBatchResponse(
            successful=tuple(
                BatchEntrySuccess(
                    entry_id=item["Id"],
                    message_id=item.get("MessageId"),
                    sequence_number=item.get("SequenceNumber"),
                )
                for item in out.get("Successful", [])
            ),
            failed=tuple(
                BatchEntryFailure(
                    entry_id=item["Id"],
                    code=item.get("Code"),
                    reason=item.get("Message"),
                    sender_fault=bool(item.get("SenderFault", False)),
                )
                for item in out.get("Failed", [])
            ),
            destination=str(destination),
        )

    async def receive(
        self,
        destination: Destination,
        *,
        max_messages: int,
        wait_seconds: float,
        visibility_timeout: int,
    ) -> list[ReceivedEnvelope]:
        address = await self._address(destination)
        sqs = await self._connection.get_client("sqs")
        out = await self._call(
            "ReceiveMessage",
            sqs.receive_message(
                QueueUrl=address,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=int(wait_seconds),
                VisibilityTimeout=visibility_timeout,
                AttributeNames=[RECEIVE_COUNT_ATTRIBUTE],
                MessageAttributeNames=["All"],
            ),
        )
        envelopes: list[ReceivedEnvelope] = []
        for msg in out.get("Messages", []):
            system = msg.get("Attributes", {})
            envelopes.append(
                ReceivedEnvelope(
                    message_id=msg["MessageId"],
                    body=msg.get("Body", ""),
                    receipt_handle=msg["ReceiptHandle"],
                    attributes={
                        name: value["StringValue"]
                        for name, value in msg.get("MessageAttributes", {}).items()
                        if "StringValue" in value
                    },
                    receive_count=int(system.get(RECEIVE_COUNT_ATTRIBUTE, 1)),
                )
            )
        return envelopes

    async def acknowledge(
        self,
        destination: Destination,
        envelope: ReceivedEnvelope,
    ) -> None:
        address = await self._address(destination)
        sqs = await self._connection.get_client("sqs")
        await self._call(
            "DeleteMessage",
            sqs.delete_message(QueueUrl=address, ReceiptHandle=envelope.receipt_handle),
        )

    async def change_visibility(
        self,
        destination: Destination,
        envelope: ReceivedEnvelope,
        timeout_seconds: int,
    ) -> None:
        address = await self._address(destination)
        sqs = await self._connection.get_client("sqs")
        await self._call(
            "ChangeMessageVisibility",
            sqs.change_message_visibility(
                QueueUrl=address,
                ReceiptHandle=envelope.receipt_handle,
                VisibilityTimeout=timeout_seconds,
            ),
        )

    async def _address(self, destination: Destination) -> str:
        if destination.address:
            return destination.address
        try:
            if destination.is_topic:
                return await self._connection.get_topic_arn(
                    destination.name, destination.account
                )
            return await self._connection.get_queue_url(
                destination.name, destination.account
            )
        except TransportError:
            raise
        except Exception as e:
            raise classify_error(e, f"Resolve {destination}") from e

    def _add_fifo(self, request: dict[str, Any], address: str, dedup_id: str) -> None:
        if address.endswith(".fifo"):
            request["MessageGroupId"] = self._message_group_id
            request["MessageDeduplicationId"] = dedup_id

    @staticmethod
    async def _call(
        operation: str, pending: Awaitable[dict[str, Any]]
    ) -> dict[str, Any]:
        try:
            return await pending
        except TransportError:
            raise
        except Exception as e:
            raise classify_error(e, operation) from e
