"""HandleMessageContext — per-delivery unit of work for inbound handling."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from ..ports.transport import IMessageTransport
    from .destination import Destination
    from .envelope import ReceivedEnvelope
    from .message import Message

M = TypeVar("M", bound="Message")


class VisibilityUpdater:
    """Changes how long one received envelope stays hidden from receivers."""

    def __init__(
        self,
        transport: IMessageTransport,
        destination: Destination,
        envelope: ReceivedEnvelope,
    ) -> None:
        self._transport = transport
        self._destination = destination
        self._envelope = envelope

    async def update(self, timeout_seconds: int) -> None:
        await self._transport.change_visibility(
            self._destination, self._envelope, timeout_seconds
        )


@dataclass
class HandleMessageContext:
    """Everything one dispatch needs to know about a delivered envelope.

    Owned by a single in-flight dispatch and discarded once the ack decision
    has been applied.
    """

    envelope: ReceivedEnvelope
    message: Message
    message_class: type[Message]
    destination: Destination
    visibility: VisibilityUpdater
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    handled_exception: BaseException | None = None

    @property
    def attempt(self) -> int:
        """Delivery attempt as counted by the transport (1-based)."""
        return self.envelope.receive_count

    @property
    def message_type(self) -> str:
        return self.message_class.message_type()

    def message_as(self, message_class: type[M]) -> M:
        if not isinstance(self.message, message_class):
            raise TypeError(
                f"Message is {type(self.message).__name__}, "
                f"not {message_class.__name__}"
            )
        return self.message
