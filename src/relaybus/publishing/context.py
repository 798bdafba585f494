"""Contexts flowing through the publish pipelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..models.destination import Destination
    from ..models.envelope import BatchEntry
    from ..models.message import Message


@dataclass(frozen=True)
class PublishContext:
    """One serialized message on its way to one destination.

    Middleware replaces the context (``dataclasses.replace``) rather than
    mutating it.
    """

    message: Message
    destination: Destination
    body: str
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchPublishContext:
    """A chunk of serialized messages for one destination.

    ``entries`` shrinks between attempts as entries succeed or fail for good;
    ``messages`` always holds the full chunk.
    """

    messages: tuple[Message, ...]
    destination: Destination
    entries: tuple[BatchEntry, ...]
