"""IMessageMonitor — metrics sink called by listeners and publishers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import timedelta


@runtime_checkable
class IMessageMonitor(Protocol):
    """Receives timing and failure notifications from the engine.

    Implementations must be cheap and must not raise; they are called on the
    hot dispatch path.
    """

    def handle_exception(self, message_type: str) -> None:
        """A handler raised while processing *message_type*."""
        ...

    def handle_error(self, exception: BaseException, message_type: str) -> None:
        """An envelope could not be handled (including deserialization)."""
        ...

    def handle_time(self, duration: timedelta) -> None:
        """Time spent in the handler chain for one envelope."""
        ...

    def issue_publishing_message(self) -> None:
        """A publish attempt failed."""
        ...

    def publish_message_time(self, duration: timedelta) -> None:
        """Time spent on one successful publish."""
        ...

    def receive_message_time(self, duration: timedelta, destination: str) -> None:
        """Time spent in one transport receive call."""
        ...

    def handler_execution_time(
        self, handler: str, message_type: str, duration: timedelta
    ) -> None:
        """Time spent inside the application handler."""
        ...
