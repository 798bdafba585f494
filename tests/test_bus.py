"""End-to-end tests: publishers, listeners and the bus over the in-memory transport."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from conftest import OrderPlaced, wait_until

from relaybus import BusState, MessagingBus
from relaybus.exceptions import ListenerStartupError, StartupError
from relaybus.listening import ListenerState, MessageListener, Subscription
from relaybus.memory import InMemoryTransport
from relaybus.models import Destination
from relaybus.publishing import (
    MessageBatchPublisher,
    MessagePublisher,
    PublicationRegistry,
)
from relaybus.retry import RetryPolicy

FAST_RETRY = RetryPolicy(max_attempts=1, base_delay=0.01, max_delay=0.05)


class Recorder:
    def __init__(self, succeed: bool = True) -> None:
        self.handled: list[OrderPlaced] = []
        self.succeed = succeed

    async def handle(self, message: OrderPlaced) -> bool:
        self.handled.append(message)
        return self.succeed


def _listener(
    transport: InMemoryTransport,
    destination: Destination,
    handler: Recorder,
    **tuning: Any,
) -> MessageListener:
    tuning.setdefault("wait_seconds", 0.1)
    return MessageListener(
        transport,
        Subscription(OrderPlaced, destination, handler, **tuning),
        receive_retry=FAST_RETRY,
        drain_timeout=1.0,
    )


def _publisher(
    transport: InMemoryTransport, destination: Destination
) -> MessagePublisher:
    routes = PublicationRegistry()
    routes.register(OrderPlaced, destination)
    return MessagePublisher(transport, routes)


async def _run(bus: MessagingBus, cancellation: asyncio.Event) -> asyncio.Task[None]:
    runner = asyncio.create_task(bus.start(cancellation))
    await asyncio.wait_for(bus.started.wait(), timeout=1.0)
    return runner


@pytest.mark.asyncio
async def test_queue_message_is_handled_exactly_once(
    transport: InMemoryTransport, cancellation: asyncio.Event
) -> None:
    queue = transport.create_queue("orders")
    recorder = Recorder()
    publisher = _publisher(transport, queue)
    bus = MessagingBus([_listener(transport, queue, recorder)], [publisher])

    runner = await _run(bus, cancellation)
    assert bus.state is BusState.RUNNING
    assert publisher.started

    message = OrderPlaced(order_id="42", amount=3)
    await publisher.publish(message)
    await wait_until(lambda: transport.pending(queue) == [])
    await asyncio.sleep(0.05)

    cancellation.set()
    await asyncio.wait_for(runner, timeout=2.0)

    assert recorder.handled == [message]
    assert bus.state is BusState.STOPPED
    assert not bus.started.is_set()
    assert all(lst.state is ListenerState.STOPPED for lst in bus.listeners)


@pytest.mark.asyncio
async def test_batch_of_ten_is_handled_once_per_message(
    transport: InMemoryTransport, cancellation: asyncio.Event
) -> None:
    queue = transport.create_queue("orders")
    recorder = Recorder()
    routes = PublicationRegistry()
    routes.register(OrderPlaced, queue)
    publisher = MessageBatchPublisher(transport, routes)
    bus = MessagingBus([_listener(transport, queue, recorder)], [publisher])

    runner = await _run(bus, cancellation)
    messages = [OrderPlaced(order_id=str(i)) for i in range(10)]
    await publisher.publish(messages)
    await wait_until(lambda: len(recorder.handled) == 10)
    await asyncio.sleep(0.05)
    cancellation.set()
    await asyncio.wait_for(runner, timeout=2.0)

    handled_keys = [m.unique_key() for m in recorder.handled]
    assert len(handled_keys) == 10
    assert set(handled_keys) == {m.unique_key() for m in messages}
    assert transport.pending(queue) == []


@pytest.mark.asyncio
async def test_topic_fans_out_to_every_subscribed_queue(
    transport: InMemoryTransport, cancellation: asyncio.Event
) -> None:
    topic = transport.create_topic("order-events")
    recorders: list[Recorder] = []
    listeners: list[MessageListener] = []
    for name in ("billing", "shipping", "audit"):
        queue = transport.create_queue(name)
        transport.subscribe(topic, queue)
        recorder = Recorder()
        recorders.append(recorder)
        listeners.append(_listener(transport, queue, recorder))
    publisher = _publisher(transport, topic)
    bus = MessagingBus(listeners, [publisher])

    runner = await _run(bus, cancellation)
    message = OrderPlaced(order_id="7")
    await publisher.publish(message)
    await wait_until(lambda: all(r.handled for r in recorders))
    await asyncio.sleep(0.05)
    cancellation.set()
    await asyncio.wait_for(runner, timeout=2.0)

    assert [r.handled for r in recorders] == [[message]] * 3
    assert len(transport.acknowledged) == 3


@pytest.mark.asyncio
async def test_failing_message_is_redelivered_then_redriven(
    transport: InMemoryTransport, cancellation: asyncio.Event
) -> None:
    dead_letters = transport.create_queue("orders-dlq")
    queue = transport.create_queue(
        "orders", redrive_to="orders-dlq", max_receive_count=3
    )
    failing = Recorder(succeed=False)
    inspector = Recorder()
    publisher = _publisher(transport, queue)
    bus = MessagingBus(
        [
            _listener(transport, queue, failing, visibility_timeout=0),
            _listener(transport, dead_letters, inspector),
        ],
        [publisher],
    )

    runner = await _run(bus, cancellation)
    message = OrderPlaced(order_id="1")
    await publisher.publish(message)
    await wait_until(lambda: inspector.handled == [message])
    cancellation.set()
    await asyncio.wait_for(runner, timeout=2.0)

    assert failing.handled == [message] * 3
    assert transport.pending(queue) == []


@pytest.mark.asyncio
async def test_startup_failure_stops_started_components(
    transport: InMemoryTransport, cancellation: asyncio.Event
) -> None:
    queue = transport.create_queue("orders")
    healthy = _listener(transport, queue, Recorder())
    broken = _listener(transport, Destination.queue("missing"), Recorder())
    bus = MessagingBus([healthy, broken])

    with pytest.raises(ListenerStartupError, match="missing"):
        await asyncio.wait_for(bus.start(cancellation), timeout=2.0)

    assert healthy.state is ListenerState.STOPPED
    assert broken.state is ListenerState.STOPPED
    assert bus.state is BusState.STOPPED
    assert not bus.started.is_set()


@pytest.mark.asyncio
async def test_publisher_startup_failure_is_fatal(
    transport: InMemoryTransport, cancellation: asyncio.Event
) -> None:
    queue = transport.create_queue("orders")
    listener = _listener(transport, queue, Recorder())
    publisher = _publisher(transport, Destination.topic("missing"))
    bus = MessagingBus([listener], [publisher])

    with pytest.raises(StartupError) as excinfo:
        await asyncio.wait_for(bus.start(cancellation), timeout=2.0)

    assert excinfo.value.component == "MessagePublisher"
    assert listener.state is ListenerState.STOPPED


@pytest.mark.asyncio
async def test_cancellation_during_long_poll_returns_promptly(
    transport: InMemoryTransport, cancellation: asyncio.Event
) -> None:
    queue = transport.create_queue("orders")
    bus = MessagingBus([_listener(transport, queue, Recorder(), wait_seconds=20)])

    runner = await _run(bus, cancellation)
    await asyncio.sleep(0.05)
    cancellation.set()

    await asyncio.wait_for(runner, timeout=1.0)
    assert bus.state is BusState.STOPPED


@pytest.mark.asyncio
async def test_bus_cannot_be_started_twice(
    transport: InMemoryTransport, cancellation: asyncio.Event
) -> None:
    queue = transport.create_queue("orders")
    bus = MessagingBus([_listener(transport, queue, Recorder())])
    runner = await _run(bus, cancellation)

    with pytest.raises(RuntimeError, match="running"):
        await bus.start(cancellation)

    cancellation.set()
    await asyncio.wait_for(runner, timeout=2.0)


def test_shutdown_timeout_must_be_positive() -> None:
    with pytest.raises(ValueError):
        MessagingBus([], shutdown_timeout=0)
