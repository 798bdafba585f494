"""Message — base class for every published event or command."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """Base class for all messages sent over the bus.

    Messages are immutable. Identity is carried by ``id``: two messages with
    equal content share a unique key regardless of object identity.

    The routing tag defaults to the class name; set ``__message_type__`` on a
    subclass to publish under a different name.
    """

    model_config = ConfigDict(frozen=True)

    __message_type__: ClassVar[str | None] = None

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    raising_component: str | None = None
    version: str | None = None
    tenant: str | None = None
    conversation: str | None = None

    def unique_key(self) -> str:
        """Return the identity key used for de-duplication and correlation."""
        return str(self.id)

    @classmethod
    def message_type(cls) -> str:
        """Return the routing tag for this message class."""
        return cls.__message_type__ or cls.__name__
