"""PublicationRegistry — explicit message type → destination map."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..exceptions import PublisherNotFoundError

if TYPE_CHECKING:
    from ..models.destination import Destination
    from ..models.message import Message

logger = logging.getLogger("relaybus.publisher")


class PublicationRegistry:
    """Maps message type tags to the destination they are published to.

    Resolved once at configuration time so the publish path never inspects
    class hierarchies.

    Usage::

        routes = PublicationRegistry()
        routes.register(OrderPlaced, Destination.topic("order-placed"))
        routes.resolve(OrderPlaced)
    """

    def __init__(self) -> None:
        self._routes: dict[str, Destination] = {}

    def register(self, message_class: type[Message], destination: Destination) -> None:
        """Publish *message_class* to *destination*."""
        self._routes[message_class.message_type()] = destination
        logger.debug(
            "Registered route: %s -> %s", message_class.message_type(), destination
        )

    def resolve(self, message_class: type[Message]) -> Destination:
        """Return the destination for *message_class*."""
        destination = self._routes.get(message_class.message_type())
        if destination is None:
            raise PublisherNotFoundError(
                f"No destination registered for message type "
                f"'{message_class.message_type()}'"
            )
        return destination

    def destinations(self) -> list[Destination]:
        """Distinct destinations, in registration order."""
        return list(dict.fromkeys(self._routes.values()))

    def __contains__(self, message_class: object) -> bool:
        message_type = getattr(message_class, "message_type", None)
        return callable(message_type) and message_type() in self._routes
