"""Shared lifecycle for single and batch publishers."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ..exceptions import StartupError
from ..instrumentation import get_hook_registry
from ..monitoring import NullMessageMonitor
from ..ports.background_worker import IBackgroundWorker
from ..serialization import JsonMessageSerializer
from .configuration import PublishConfiguration

if TYPE_CHECKING:
    from ..instrumentation import HookRegistry
    from ..models.destination import Destination
    from ..ports.monitoring import IMessageMonitor
    from ..ports.serialization import IMessageSerializer
    from ..ports.transport import IMessageTransport
    from .routing import PublicationRegistry

logger = logging.getLogger("relaybus.publisher")


class BasePublisher(IBackgroundWorker):
    """Holds the collaborators every publisher needs and verifies its routes.

    ``start`` checks that every routed destination is reachable and is
    idempotent; publishing does not require it but a bus always calls it.
    """

    def __init__(
        self,
        transport: IMessageTransport,
        routes: PublicationRegistry,
        *,
        configuration: PublishConfiguration | None = None,
        serializer: IMessageSerializer | None = None,
        monitor: IMessageMonitor | None = None,
        hooks: HookRegistry | None = None,
    ) -> None:
        self._transport = transport
        self._routes = routes
        self._config = configuration or PublishConfiguration()
        self._serializer = serializer or JsonMessageSerializer()
        self._monitor = monitor or NullMessageMonitor()
        self._hooks = hooks or get_hook_registry()
        self._started = False

    @property
    def configuration(self) -> PublishConfiguration:
        return self._config

    @property
    def started(self) -> bool:
        return self._started

    async def start(self, cancellation: asyncio.Event) -> None:
        if self._started:
            return
        name = type(self).__name__
        for destination in self._routes.destinations():
            try:
                await self._transport.verify(destination)
            except Exception as e:
                raise StartupError(name, f"{destination}: {e}") from e
        self._started = True
        logger.info(
            "%s started (%d destination(s))", name, len(self._routes.destinations())
        )

    async def stop(self) -> None:
        self._started = False

    def _fan_out_destinations(self, destination: Destination) -> list[Destination]:
        """Equivalent destinations in every additional subscriber account."""
        candidates = (
            *destination.subscriber_accounts,
            *self._config.additional_subscriber_accounts,
        )
        return [
            destination.for_account(account)
            for account in dict.fromkeys(candidates)
            if account != destination.account
        ]

    @staticmethod
    def _new_cancellation(cancellation: asyncio.Event | None) -> asyncio.Event:
        return cancellation if cancellation is not None else asyncio.Event()
