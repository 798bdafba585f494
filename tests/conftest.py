"""Shared fixtures: sample messages, an in-memory transport and a recording monitor."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any

import pytest

from relaybus.memory import InMemoryTransport
from relaybus.models import (
    Destination,
    HandleMessageContext,
    Message,
    ReceivedEnvelope,
    VisibilityUpdater,
)
from relaybus.serialization import JsonMessageSerializer


class OrderPlaced(Message):
    order_id: str
    amount: int = 0


class OrderShipped(Message):
    __message_type__ = "order.shipped"

    order_id: str


class RecordingMonitor:
    """IMessageMonitor that records every call for assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def handle_exception(self, message_type: str) -> None:
        self.calls.append(("handle_exception", (message_type,)))

    def handle_error(self, exception: BaseException, message_type: str) -> None:
        self.calls.append(("handle_error", (exception, message_type)))

    def handle_time(self, duration: timedelta) -> None:
        self.calls.append(("handle_time", (duration,)))

    def issue_publishing_message(self) -> None:
        self.calls.append(("issue_publishing_message", ()))

    def publish_message_time(self, duration: timedelta) -> None:
        self.calls.append(("publish_message_time", (duration,)))

    def receive_message_time(self, duration: timedelta, destination: str) -> None:
        self.calls.append(("receive_message_time", (duration, destination)))

    def handler_execution_time(
        self, handler: str, message_type: str, duration: timedelta
    ) -> None:
        self.calls.append(("handler_execution_time", (handler, message_type, duration)))


def make_context(
    message: Message | None = None,
    *,
    receive_count: int = 1,
    transport: Any = None,
    destination: Destination | None = None,
) -> HandleMessageContext:
    message = message or OrderPlaced(order_id="1")
    destination = destination or Destination.queue("orders")
    envelope = ReceivedEnvelope(
        message_id="m-1",
        body=JsonMessageSerializer().serialize(message),
        receipt_handle="rh-1",
        receive_count=receive_count,
    )
    return HandleMessageContext(
        envelope=envelope,
        message=message,
        message_class=type(message),
        destination=destination,
        visibility=VisibilityUpdater(transport, destination, envelope),
    )


async def wait_until(predicate: Any, timeout: float = 2.0) -> None:
    """Poll *predicate* until it is true or fail after *timeout* seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def monitor() -> RecordingMonitor:
    return RecordingMonitor()


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def cancellation() -> asyncio.Event:
    return asyncio.Event()
