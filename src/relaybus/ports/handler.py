from __future__ import annotations

from typing import Protocol, TypeVar, runtime_checkable

from ..models.message import Message

M_contra = TypeVar("M_contra", bound=Message, contravariant=True)


@runtime_checkable
class IHandlerAsync(Protocol[M_contra]):
    """Application handler for one message type.

    Returning ``True`` acknowledges the message; ``False`` (or raising)
    leaves it for the transport to redeliver.
    """

    async def handle(self, message: M_contra) -> bool: ...
