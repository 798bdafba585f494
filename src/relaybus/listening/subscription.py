"""Subscription records and the registry that maps message types to them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..middleware.error_handler import ErrorHandlerMiddleware
from ..middleware.handler import HandlerInvocation
from ..middleware.logging import HandleLoggingMiddleware
from ..middleware.pipeline import build_pipeline
from ..middleware.stopwatch import StopwatchMiddleware
from ..middleware.timeout import HandlerTimeoutMiddleware

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable, Iterator, Sequence

    from ..models.context import HandleMessageContext
    from ..models.destination import Destination
    from ..models.message import Message
    from ..ports.middleware import IMiddleware
    from ..ports.monitoring import IMessageMonitor

    HandlePipeline = Callable[[HandleMessageContext, asyncio.Event], Awaitable[bool]]

# SQS limits: ten messages per receive, twenty seconds of long polling.
MAX_RECEIVE_BATCH = 10
MAX_WAIT_SECONDS = 20


@dataclass(frozen=True)
class Subscription:
    """Binds one message class on one destination to one handler.

    ``middlewares`` are application nodes placed between the error handler and
    the stopwatch of the default inbound chain.
    """

    message_class: type[Message]
    destination: Destination
    handler: Any
    middlewares: Sequence[IMiddleware[HandleMessageContext, bool]] = field(
        default_factory=tuple
    )
    max_batch: int = MAX_RECEIVE_BATCH
    wait_seconds: float = MAX_WAIT_SECONDS
    visibility_timeout: int = 30
    concurrency_limit: int = MAX_RECEIVE_BATCH
    handler_timeout: float | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.max_batch <= MAX_RECEIVE_BATCH:
            raise ValueError(f"max_batch must be between 1 and {MAX_RECEIVE_BATCH}")
        if not 0 <= self.wait_seconds <= MAX_WAIT_SECONDS:
            raise ValueError(f"wait_seconds must be between 0 and {MAX_WAIT_SECONDS}")
        if self.visibility_timeout < 0:
            raise ValueError("visibility_timeout must be >= 0")
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        if self.handler_timeout is not None and self.handler_timeout <= 0:
            raise ValueError("handler_timeout must be > 0")
        object.__setattr__(self, "middlewares", tuple(self.middlewares))

    @property
    def message_type(self) -> str:
        return self.message_class.message_type()

    def __str__(self) -> str:
        return f"{self.message_type}@{self.destination}"


def build_handle_pipeline(
    subscription: Subscription, monitor: IMessageMonitor
) -> HandlePipeline:
    """Default inbound chain around the subscription's handler.

    Outermost first: logging, error handling, application nodes, stopwatch,
    then the handler timeout when one is configured.
    """
    invocation = HandlerInvocation(subscription.handler)
    nodes: list[IMiddleware[HandleMessageContext, bool]] = [
        HandleLoggingMiddleware(),
        ErrorHandlerMiddleware(monitor),
        *subscription.middlewares,
        StopwatchMiddleware(monitor, invocation.name),
    ]
    if subscription.handler_timeout is not None:
        nodes.append(HandlerTimeoutMiddleware(subscription.handler_timeout))
    return build_pipeline(nodes, invocation)


class SubscriptionRegistry:
    """Message-type tag to subscription, fixed once the bus is configured."""

    def __init__(self, subscriptions: Sequence[Subscription] = ()) -> None:
        self._by_type: dict[str, Subscription] = {}
        for subscription in subscriptions:
            self.add(subscription)

    def add(self, subscription: Subscription) -> None:
        key = subscription.message_type
        if key in self._by_type:
            raise ValueError(f"A subscription for {key!r} is already registered")
        self._by_type[key] = subscription

    def get(self, message_type: str) -> Subscription | None:
        return self._by_type.get(message_type)

    def resolve(self, message_type: str) -> Subscription:
        subscription = self._by_type.get(message_type)
        if subscription is None:
            raise KeyError(f"No subscription registered for {message_type!r}")
        return subscription

    def by_destination(self, destination: Destination) -> list[Subscription]:
        return [s for s in self._by_type.values() if s.destination == destination]

    def __contains__(self, message_type: object) -> bool:
        return message_type in self._by_type

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._by_type.values()))

    def __len__(self) -> int:
        return len(self._by_type)
