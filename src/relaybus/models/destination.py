"""Destination — a resolved queue or topic."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace


class DestinationKind(str, enum.Enum):
    QUEUE = "queue"
    TOPIC = "topic"


@dataclass(frozen=True)
class Destination:
    """A queue (point-to-point) or topic (fan-out) resolved at configuration time.

    ``address`` is the transport-specific locator (queue URL, topic ARN) when it
    is known up front; transports resolve it from ``name`` and ``account``
    otherwise. ``subscriber_accounts`` lists the other accounts that receive a
    copy of everything published here.
    """

    name: str
    kind: DestinationKind = DestinationKind.QUEUE
    account: str | None = None
    address: str | None = None
    subscriber_accounts: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Destination name must not be empty")

    @classmethod
    def queue(cls, name: str, **kwargs: object) -> Destination:
        return cls(name, DestinationKind.QUEUE, **kwargs)  # type: ignore[arg-type]

    @classmethod
    def topic(cls, name: str, **kwargs: object) -> Destination:
        return cls(name, DestinationKind.TOPIC, **kwargs)  # type: ignore[arg-type]

    @property
    def is_topic(self) -> bool:
        return self.kind is DestinationKind.TOPIC

    def for_account(self, account: str) -> Destination:
        """Return the equivalent destination owned by *account*."""
        return replace(self, account=account, address=None, subscriber_accounts=())

    def __str__(self) -> str:
        if self.account:
            return f"{self.kind.value}:{self.account}/{self.name}"
        return f"{self.kind.value}:{self.name}"
