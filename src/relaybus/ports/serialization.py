from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from ..models.message import Message

M = TypeVar("M", bound="Message")


@runtime_checkable
class IMessageSerializer(Protocol):
    """Port turning messages into transport bodies and back."""

    def serialize(self, message: Message) -> str:
        """Encode *message* into a transport body."""
        ...

    def deserialize(self, body: str, message_class: type[M]) -> M:
        """Decode *body*; raise ``MessagingSerializationError`` on failure."""
        ...

    def message_type(self, body: str) -> str | None:
        """Return the type tag carried by *body*, or ``None`` if it has none."""
        ...
