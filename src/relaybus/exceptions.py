"""Exception hierarchy for relaybus."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models.response import MessageBatchResponse, MessageResponse


class RelayBusError(Exception):
    """Root exception for the entire relaybus toolkit."""


class MessagingError(RelayBusError):
    """Base class for all messaging-related errors."""


class MessagingSerializationError(MessagingError):
    """Raised when message serialization or deserialization fails.

    Never retried: the same body fails the same way on every attempt.
    """


class TransportError(MessagingError):
    """Raised by a transport when a send, receive or acknowledge call fails.

    ``retryable`` tells the publish pipeline whether another attempt may
    succeed (throttling, timeouts) or not (missing destination, bad request).
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        code: str | None = None,
    ) -> None:
        self.retryable = retryable
        self.code = code
        super().__init__(message)


class RetryableTransportError(TransportError):
    """Transient transport failure; consumes one attempt of the budget."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message, retryable=True, code=code)


class FatalTransportError(TransportError):
    """Permanent transport failure; fails the publish immediately."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message, retryable=False, code=code)


class PublishError(MessagingError):
    """Raised when a publish fails after the attempt budget is exhausted.

    The response has already been passed to the response logger.
    """

    def __init__(self, message: str, response: MessageResponse) -> None:
        self.response = response
        super().__init__(message)


class PublishBatchError(PublishError):
    """Raised when no entry of a batch could be delivered or a chunk errored."""

    def __init__(self, message: str, response: MessageBatchResponse) -> None:
        super().__init__(message, response)  # type: ignore[arg-type]


class PublisherNotFoundError(MessagingError):
    """Raised when no destination is registered for a message type."""


class DeadLetterError(MessagingError):
    """Raised when a dead-letter callback fails to take over a message."""

    def __init__(self, message: str, message_id: str | None = None) -> None:
        self.message_id = message_id
        super().__init__(message)


class HandlerTimeoutError(RelayBusError):
    """Raised when a handler does not complete within its configured timeout."""

    def __init__(self, message_type: str, timeout: float) -> None:
        self.message_type = message_type
        self.timeout = timeout
        super().__init__(f"Handler for {message_type} timed out after {timeout}s")


class OperationCancelledError(RelayBusError):
    """Raised when a cancellation signal aborts a wait or retry loop."""


class PublishCancelledError(OperationCancelledError):
    """Raised when a per-call cancellation aborts a publish.

    The cancelled response has already been passed to the response logger.
    """

    def __init__(
        self,
        message: str,
        response: MessageResponse | MessageBatchResponse,
    ) -> None:
        self.response = response
        super().__init__(message)


class StartupError(RelayBusError):
    """Raised when a bus component cannot start; fatal to the bus start."""

    def __init__(self, component: str, reason: str) -> None:
        self.component = component
        self.reason = reason
        super().__init__(f"{component} failed to start: {reason}")


class ListenerError(RelayBusError):
    """Base class for inbound listener failures."""


class ListenerStartupError(StartupError, ListenerError):
    """Raised when a listener cannot reach its destination at startup."""

    def __init__(self, subscription: str, reason: str) -> None:
        self.subscription = subscription
        super().__init__(f"Listener for {subscription}", reason)
