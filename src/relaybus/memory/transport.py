"""InMemoryTransport — queues and topics in process memory.

Behaves like SQS/SNS where the engine can observe it: received messages stay
hidden for their visibility timeout and come back with a higher receive count
unless acknowledged, topics copy every message to their subscribed queues
wrapped in a notification, and each account has its own namespace.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..exceptions import FatalTransportError
from ..models.destination import Destination, DestinationKind
from ..models.envelope import ReceivedEnvelope
from ..models.response import (
    BatchEntryFailure,
    BatchEntrySuccess,
    MessageBatchResponse,
    MessageResponse,
)
from ..ports.transport import IMessageTransport

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from ..models.envelope import BatchEntry

logger = logging.getLogger("relaybus.transport")

DEFAULT_ACCOUNT = "000000000000"

_Key = tuple[str, str]


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    attributes: dict[str, str]
    receive_count: int = 0
    visible_at: float = 0.0
    receipt_handle: str | None = None


@dataclass
class _Queue:
    name: str
    account: str
    max_receive_count: int | None = None
    redrive_to: _Key | None = None
    messages: list[_StoredMessage] = field(default_factory=list)
    arrived: asyncio.Event = field(default_factory=asyncio.Event)


@dataclass(frozen=True)
class SentRecord:
    """One message accepted by a destination (for assertions in tests)."""

    destination: Destination
    message_id: str
    body: str


@dataclass
class _EntryRejection:
    entry_ids: frozenset[str]
    code: str
    sender_fault: bool
    remaining: int


class InMemoryTransport(IMessageTransport):
    """Process-local transport for tests and local runs.

    Destinations must be created (``create_queue``, ``create_topic``) before
    use unless ``auto_create`` is set; ``verify`` fails for unknown ones just
    as a missing queue fails in AWS. Failures can be injected per destination
    with :meth:`fail_sends`, :meth:`reject_entries` and :meth:`fail_receives`.
    """

    def __init__(
        self,
        *,
        default_account: str = DEFAULT_ACCOUNT,
        auto_create: bool = False,
    ) -> None:
        self._default_account = default_account
        self._auto_create = auto_create
        self._queues: dict[_Key, _Queue] = {}
        self._topics: dict[_Key, list[_Key]] = {}
        self._send_failures: dict[_Key, list[BaseException]] = {}
        self._receive_failures: dict[_Key, list[BaseException]] = {}
        self._rejections: dict[_Key, list[_EntryRejection]] = {}
        self.sent: list[SentRecord] = []
        self.acknowledged: list[str] = []

    # -- setup ---------------------------------------------------------------

    def create_queue(
        self,
        name: str,
        *,
        account: str | None = None,
        redrive_to: str | None = None,
        max_receive_count: int | None = None,
    ) -> Destination:
        """Create a queue; with *redrive_to* messages move there after
        *max_receive_count* receives, as an SQS redrive policy does."""
        account = account or self._default_account
        if (redrive_to is None) != (max_receive_count is None):
            raise ValueError("redrive_to and max_receive_count go together")
        if redrive_to is not None and (account, redrive_to) not in self._queues:
            raise ValueError(f"Redrive queue {redrive_to!r} does not exist")
        self._queues.setdefault(
            (account, name),
            _Queue(
                name=name,
                account=account,
                max_receive_count=max_receive_count,
                redrive_to=(account, redrive_to) if redrive_to else None,
            ),
        )
        return Destination.queue(name, account=account)

    def create_topic(self, name: str, *, account: str | None = None) -> Destination:
        account = account or self._default_account
        self._topics.setdefault((account, name), [])
        return Destination.topic(name, account=account)

    def subscribe(self, topic: Destination, queue: Destination) -> None:
        """Deliver every message published to *topic* to *queue* as well."""
        queue_key = self._existing_queue(queue)
        subscribers = self._topics.get(self._key(topic))
        if subscribers is None:
            raise FatalTransportError(f"Topic {topic} does not exist", code="NotFound")
        if queue_key not in subscribers:
            subscribers.append(queue_key)

    def fail_sends(self, destination: Destination, *errors: BaseException) -> None:
        """Make the next ``send``/``send_batch`` calls raise *errors* in order."""
        self._send_failures.setdefault(self._key(destination), []).extend(errors)

    def fail_receives(self, destination: Destination, *errors: BaseException) -> None:
        """Make the next ``receive`` calls raise *errors* in order."""
        self._receive_failures.setdefault(self._key(destination), []).extend(errors)

    def reject_entries(
        self,
        destination: Destination,
        entry_ids: Iterable[str],
        *,
        code: str = "InternalError",
        sender_fault: bool = False,
        times: int = 1,
    ) -> None:
        """Report *entry_ids* as failed in the next *times* batch responses."""
        self._rejections.setdefault(self._key(destination), []).append(
            _EntryRejection(frozenset(entry_ids), code, sender_fault, times)
        )

    # -- inspection ----------------------------------------------------------

    def pending(self, destination: Destination) -> list[str]:
        """Bodies stored in a queue until acknowledged, in flight or not."""
        return [m.body for m in self._existing(destination).messages]

    def sent_to(self, destination: Destination) -> list[SentRecord]:
        key = self._key(destination)
        return [r for r in self.sent if self._key(r.destination) == key]

    # -- IMessageTransport ---------------------------------------------------

    async def verify(self, destination: Destination) -> None:
        key = self._key(destination)
        known = self._topics if destination.is_topic else self._queues
        if key in known:
            return
        if self._auto_create:
            self._create(destination)
            return
        raise FatalTransportError(f"{destination} does not exist", code="NotFound")

    async def send(
        self,
        destination: Destination,
        body: str,
        *,
        message_id: str,
        attributes: dict[str, str] | None = None,
    ) -> MessageResponse:
        self._raise_injected(self._send_failures, destination)
        transport_id = self._deliver(destination, body, dict(attributes or {}))
        return MessageResponse(
            message_id=transport_id,
            http_status_code=200,
            destination=str(destination),
        )

    async def send_batch(
        self,
        destination: Destination,
        entries: Sequence[BatchEntry],
    ) -> MessageBatchResponse:
        self._raise_injected(self._send_failures, destination)
        rejected = self._take_rejections(destination, [e.entry_id for e in entries])
        successful: list[BatchEntrySuccess] = []
        failed: list[BatchEntryFailure] = []
        for entry in entries:
            rejection = rejected.get(entry.entry_id)
            if rejection is not None:
                failed.append(
                    BatchEntryFailure(
                        entry_id=entry.entry_id,
                        code=rejection.code,
                        reason="rejected by in-memory transport",
                        sender_fault=rejection.sender_fault,
                    )
                )
                continue
            transport_id = self._deliver(
                destination, entry.body, dict(entry.attributes)
            )
            successful.append(
                BatchEntrySuccess(entry_id=entry.entry_id, message_id=transport_id)
            )
        return MessageBatchResponse(
            successful=tuple(successful),
            failed=tuple(failed),
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
        self._raise_injected(self._receive_failures, destination)
        queue = self._existing(destination)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds
        while True:
            now = loop.time()
            received = self._take_visible(queue, now, max_messages, visibility_timeout)
            if received or now >= deadline:
                return received
            queue.arrived.clear()
            timeout = deadline - now
            hidden = [m.visible_at for m in queue.messages if m.visible_at > now]
            if hidden:
                timeout = min(timeout, min(hidden) - now)
            try:
                await asyncio.wait_for(queue.arrived.wait(), timeout=max(timeout, 0))
            except asyncio.TimeoutError:
                pass

    async def acknowledge(
        self,
        destination: Destination,
        envelope: ReceivedEnvelope,
    ) -> None:
        queue = self._existing(destination)
        for index, stored in enumerate(queue.messages):
            if stored.receipt_handle == envelope.receipt_handle:
                del queue.messages[index]
                self.acknowledged.append(stored.message_id)
                return
        logger.debug(
            "Receipt handle for %s on %s is stale; nothing deleted",
            envelope.message_id,
            destination,
        )

    async def change_visibility(
        self,
        destination: Destination,
        envelope: ReceivedEnvelope,
        timeout_seconds: int,
    ) -> None:
        queue = self._existing(destination)
        for stored in queue.messages:
            if stored.receipt_handle == envelope.receipt_handle:
                stored.visible_at = asyncio.get_running_loop().time() + timeout_seconds
                if timeout_seconds == 0:
                    queue.arrived.set()
                return
        raise FatalTransportError(
            f"Receipt handle for {envelope.message_id} is not valid",
            code="ReceiptHandleIsInvalid",
        )

    # -- internals -----------------------------------------------------------

    def _key(self, destination: Destination) -> _Key:
        return (destination.account or self._default_account, destination.name)

    def _create(self, destination: Destination) -> None:
        if destination.is_topic:
            self.create_topic(destination.name, account=destination.account)
        else:
            self.create_queue(destination.name, account=destination.account)

    def _existing_queue(self, destination: Destination) -> _Key:
        key = self._key(destination)
        if key not in self._queues:
            if not self._auto_create:
                raise FatalTransportError(
                    f"{destination} does not exist", code="NotFound"
                )
            self._create(destination)
        return key

    def _existing(self, destination: Destination) -> _Queue:
        if destination.kind is not DestinationKind.QUEUE:
            raise FatalTransportError(f"{destination} is not a queue")
        return self._queues[self._existing_queue(destination)]

    def _deliver(
        self, destination: Destination, body: str, attributes: dict[str, str]
    ) -> str:
        transport_id = str(uuid.uuid4())
        if destination.is_topic:
            key = self._key(destination)
            if key not in self._topics:
                if not self._auto_create:
                    raise FatalTransportError(
                        f"{destination} does not exist", code="NotFound"
                    )
                self._create(destination)
            notification = json.dumps(
                {
                    "Type": "Notification",
                    "MessageId": transport_id,
                    "TopicArn": f"{key[0]}:{key[1]}",
                    "Message": body,
                }
            )
            for queue_key in self._topics[key]:
                self._enqueue(self._queues[queue_key], notification, attributes)
        else:
            queue = self._existing(destination)
            self._enqueue(queue, body, attributes, transport_id)
        self.sent.append(SentRecord(destination, transport_id, body))
        return transport_id

    @staticmethod
    def _enqueue(
        queue: _Queue,
        body: str,
        attributes: dict[str, str],
        message_id: str | None = None,
    ) -> None:
        queue.messages.append(
            _StoredMessage(
                message_id=message_id or str(uuid.uuid4()),
                body=body,
                attributes=attributes,
            )
        )
        queue.arrived.set()

    def _take_visible(
        self,
        queue: _Queue,
        now: float,
        max_messages: int,
        visibility_timeout: int,
    ) -> list[ReceivedEnvelope]:
        received: list[ReceivedEnvelope] = []
        for stored in list(queue.messages):
            if len(received) >= max_messages:
                break
            if stored.visible_at > now:
                continue
            if (
                queue.max_receive_count is not None
                and queue.redrive_to is not None
                and stored.receive_count >= queue.max_receive_count
            ):
                queue.messages.remove(stored)
                self._enqueue(
                    self._queues[queue.redrive_to], stored.body, stored.attributes
                )
                logger.info(
                    "Moved %s from %s to %s after %d receives",
                    stored.message_id,
                    queue.name,
                    queue.redrive_to[1],
                    stored.receive_count,
                )
                continue
            stored.receive_count += 1
            stored.receipt_handle = str(uuid.uuid4())
            stored.visible_at = now + visibility_timeout
            received.append(
                ReceivedEnvelope(
                    message_id=stored.message_id,
                    body=stored.body,
                    receipt_handle=stored.receipt_handle,
                    attributes=dict(stored.attributes),
                    receive_count=stored.receive_count,
                )
            )
        return received

    def _raise_injected(
        self,
        failures: dict[_Key, list[BaseException]],
        destination: Destination,
    ) -> None:
        queued = failures.get(self._key(destination))
        if queued:
            raise queued.pop(0)

    def _take_rejections(
        self, destination: Destination, entry_ids: list[str]
    ) -> dict[str, _EntryRejection]:
        rejected: dict[str, _EntryRejection] = {}
        rules = self._rejections.get(self._key(destination), [])
        for rule in list(rules):
            matched = [entry_id for entry_id in entry_ids if entry_id in rule.entry_ids]
            if not matched:
                continue
            for entry_id in matched:
                rejected.setdefault(entry_id, rule)
            rule.remaining -= 1
            if rule.remaining <= 0:
                rules.remove(rule)
        return rejected

