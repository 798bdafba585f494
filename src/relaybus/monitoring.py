"""Message monitors — metric sinks for listeners and publishers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .ports.monitoring import IMessageMonitor

if TYPE_CHECKING:
    from datetime import timedelta

logger = logging.getLogger("relaybus.monitoring")


class NullMessageMonitor(IMessageMonitor):
    """Discards every notification; the default when no monitor is configured."""

    def handle_exception(self, message_type: str) -> None:
        pass

    def handle_error(self, exception: BaseException, message_type: str) -> None:
        pass

    def handle_time(self, duration: timedelta) -> None:
        pass

    def issue_publishing_message(self) -> None:
        pass

    def publish_message_time(self, duration: timedelta) -> None:
        pass

    def receive_message_time(self, duration: timedelta, destination: str) -> None:
        pass

    def handler_execution_time(
        self, handler: str, message_type: str, duration: timedelta
    ) -> None:
        pass


class LoggingMessageMonitor(IMessageMonitor):
    """Writes every notification to a logger at DEBUG (timings) or WARNING."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def handle_exception(self, message_type: str) -> None:
        self._log.warning("Handler raised for %s", message_type)

    def handle_error(self, exception: BaseException, message_type: str) -> None:
        self._log.warning("Failed to handle %s: %s", message_type, exception)

    def handle_time(self, duration: timedelta) -> None:
        self._log.debug("Handled message in %.2fms", duration.total_seconds() * 1000)

    def issue_publishing_message(self) -> None:
        self._log.warning("Publish attempt failed")

    def publish_message_time(self, duration: timedelta) -> None:
        self._log.debug(
            "Published message in %.2fms", duration.total_seconds() * 1000
        )

    def receive_message_time(self, duration: timedelta, destination: str) -> None:
        self._log.debug(
            "Received from %s in %.2fms",
            destination,
            duration.total_seconds() * 1000,
        )

    def handler_execution_time(
        self, handler: str, message_type: str, duration: timedelta
    ) -> None:
        self._log.debug(
            "%s handled %s in %.2fms",
            handler,
            message_type,
            duration.total_seconds() * 1000,
        )
