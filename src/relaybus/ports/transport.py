"""IMessageTransport — the only point of contact with the network."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..models.destination import Destination
    from ..models.envelope import BatchEntry, ReceivedEnvelope
    from ..models.response import MessageBatchResponse, MessageResponse


@runtime_checkable
class IMessageTransport(Protocol):
    """
    Port for sending to and receiving from queues and topics.

    Adapters raise :class:`~relaybus.exceptions.TransportError` with
    ``retryable`` set according to whether another attempt may succeed.
    """

    async def verify(self, destination: Destination) -> None:
        """Raise if *destination* cannot be reached."""
        ...

    async def send(
        self,
        destination: Destination,
        body: str,
        *,
        message_id: str,
        attributes: dict[str, str] | None = None,
    ) -> MessageResponse:
        """Send one serialized message."""
        ...

    async def send_batch(
        self,
        destination: Destination,
        entries: Sequence[BatchEntry],
    ) -> MessageBatchResponse:
        """Send several serialized messages as one request."""
        ...

    async def receive(
        self,
        destination: Destination,
        *,
        max_messages: int,
        wait_seconds: float,
        visibility_timeout: int,
    ) -> list[ReceivedEnvelope]:
        """Long-poll *destination* for up to *max_messages* envelopes."""
        ...

    async def acknowledge(
        self,
        destination: Destination,
        envelope: ReceivedEnvelope,
    ) -> None:
        """Remove a handled envelope so it is not redelivered."""
        ...

    async def change_visibility(
        self,
        destination: Destination,
        envelope: ReceivedEnvelope,
        timeout_seconds: int,
    ) -> None:
        """Hide *envelope* for *timeout_seconds* more (0 = visible now)."""
        ...
