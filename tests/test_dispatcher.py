"""Tests for MessageDispatcher."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import OrderPlaced, OrderShipped, RecordingMonitor

from relaybus.correlation import get_correlation_id
from relaybus.instrumentation import HookRegistry
from relaybus.listening import MessageDispatcher, Subscription, SubscriptionRegistry
from relaybus.memory import InMemoryTransport
from relaybus.models import Destination, Message, ReceivedEnvelope
from relaybus.serialization import JsonMessageSerializer

ORDERS = Destination.queue("orders")


async def _deliver(transport: InMemoryTransport, body: str) -> ReceivedEnvelope:
    await transport.send(ORDERS, body, message_id="x")
    (envelope,) = await transport.receive(
        ORDERS, max_messages=1, wait_seconds=0, visibility_timeout=30
    )
    return envelope


def _dispatcher(
    transport: InMemoryTransport,
    *subscriptions: Subscription,
    monitor: RecordingMonitor | None = None,
    hooks: HookRegistry | None = None,
) -> MessageDispatcher:
    return MessageDispatcher(
        transport,
        ORDERS,
        SubscriptionRegistry(subscriptions),
        monitor=monitor,
        hooks=hooks or HookRegistry(),
    )


def _body(message: Message) -> str:
    return JsonMessageSerializer().serialize(message)


def _handler(**kwargs: Any) -> MagicMock:
    """Handler object whose ``handle`` coroutine is a mock."""
    return MagicMock(handle=AsyncMock(**kwargs))


@pytest.fixture
def transport() -> InMemoryTransport:
    transport = InMemoryTransport()
    transport.create_queue("orders")
    return transport


@pytest.mark.asyncio
async def test_successful_handler_acknowledges(transport: InMemoryTransport) -> None:
    handled: list[Message] = []

    async def handler(message: OrderPlaced) -> bool:
        handled.append(message)
        return True

    message = OrderPlaced(order_id="1")
    envelope = await _deliver(transport, _body(message))
    dispatcher = _dispatcher(transport, Subscription(OrderPlaced, ORDERS, handler))

    assert await dispatcher.dispatch(envelope, asyncio.Event()) is True
    assert handled == [message]
    assert transport.pending(ORDERS) == []
    assert transport.acknowledged == [envelope.message_id]


@pytest.mark.asyncio
async def test_failed_handler_leaves_envelope(transport: InMemoryTransport) -> None:
    handler = _handler(return_value=False)
    envelope = await _deliver(transport, _body(OrderPlaced(order_id="1")))
    dispatcher = _dispatcher(transport, Subscription(OrderPlaced, ORDERS, handler))

    assert await dispatcher.dispatch(envelope, asyncio.Event()) is False
    assert len(transport.pending(ORDERS)) == 1
    assert transport.acknowledged == []


@pytest.mark.asyncio
async def test_cancelled_dispatch_skips_the_handler(
    transport: InMemoryTransport,
) -> None:
    handler = _handler(return_value=True)
    envelope = await _deliver(transport, _body(OrderPlaced(order_id="1")))
    dispatcher = _dispatcher(transport, Subscription(OrderPlaced, ORDERS, handler))
    cancellation = asyncio.Event()
    cancellation.set()

    assert await dispatcher.dispatch(envelope, cancellation) is False
    handler.handle.assert_not_awaited()
    assert len(transport.pending(ORDERS)) == 1
    assert transport.acknowledged == []


@pytest.mark.asyncio
async def test_raising_handler_is_reported_not_raised(
    transport: InMemoryTransport, monitor: RecordingMonitor
) -> None:
    handler = _handler(side_effect=RuntimeError("db down"))
    envelope = await _deliver(transport, _body(OrderPlaced(order_id="1")))
    dispatcher = _dispatcher(
        transport, Subscription(OrderPlaced, ORDERS, handler), monitor=monitor
    )

    assert await dispatcher.dispatch(envelope, asyncio.Event()) is False
    assert len(transport.pending(ORDERS)) == 1
    assert "handle_exception" in monitor.names()
    assert "handle_time" in monitor.names()


@pytest.mark.asyncio
async def test_undeserializable_body_is_left_unacknowledged(
    transport: InMemoryTransport, monitor: RecordingMonitor
) -> None:
    handler = _handler()
    envelope = await _deliver(transport, "{not json")
    dispatcher = _dispatcher(
        transport, Subscription(OrderPlaced, ORDERS, handler), monitor=monitor
    )

    assert await dispatcher.dispatch(envelope, asyncio.Event()) is False
    handler.handle.assert_not_awaited()
    assert monitor.names() == ["handle_error"]
    assert len(transport.pending(ORDERS)) == 1


@pytest.mark.asyncio
async def test_unknown_type_is_left_unacknowledged(
    transport: InMemoryTransport,
) -> None:
    handler = _handler()
    envelope = await _deliver(transport, _body(OrderShipped(order_id="1")))
    dispatcher = _dispatcher(transport, Subscription(OrderPlaced, ORDERS, handler))

    assert await dispatcher.dispatch(envelope, asyncio.Event()) is False
    handler.handle.assert_not_awaited()


@pytest.mark.asyncio
async def test_routes_by_type_tag(transport: InMemoryTransport) -> None:
    placed = _handler(return_value=True)
    shipped = _handler(return_value=True)
    dispatcher = _dispatcher(
        transport,
        Subscription(OrderPlaced, ORDERS, placed),
        Subscription(OrderShipped, ORDERS, shipped),
    )
    message = OrderShipped(order_id="7")

    envelope = await _deliver(transport, _body(message))
    assert await dispatcher.dispatch(envelope, asyncio.Event())

    placed.handle.assert_not_awaited()
    shipped.handle.assert_awaited_once_with(message)


@pytest.mark.asyncio
async def test_correlation_id_follows_the_conversation(
    transport: InMemoryTransport,
) -> None:
    seen: list[str | None] = []

    async def handler(message: OrderPlaced) -> None:
        seen.append(get_correlation_id())

    dispatcher = _dispatcher(transport, Subscription(OrderPlaced, ORDERS, handler))
    with_conversation = OrderPlaced(order_id="1", conversation="conv-1")
    without = OrderPlaced(order_id="2")

    for message in (with_conversation, without):
        envelope = await _deliver(transport, _body(message))
        await dispatcher.dispatch(envelope, asyncio.Event())

    assert seen == ["conv-1", without.unique_key()]
    assert get_correlation_id() is None


@pytest.mark.asyncio
async def test_dispatch_runs_inside_instrumentation_hook(
    transport: InMemoryTransport,
) -> None:
    operations: list[tuple[str, dict[str, Any]]] = []

    async def hook(
        operation: str, attributes: dict[str, Any], next_handler: Any
    ) -> Any:
        operations.append((operation, attributes))
        return await next_handler()

    hooks = HookRegistry()
    hooks.register(hook, operations=["listener.dispatch.*"])
    dispatcher = _dispatcher(
        transport,
        Subscription(OrderPlaced, ORDERS, _handler(return_value=True)),
        hooks=hooks,
    )
    envelope = await _deliver(transport, _body(OrderPlaced(order_id="1")))

    await dispatcher.dispatch(envelope, asyncio.Event())

    ((operation, attributes),) = operations
    assert operation == "listener.dispatch.OrderPlaced"
    assert attributes["destination"] == "queue:orders"
    assert attributes["attempt"] == 1


@pytest.mark.asyncio
async def test_application_middleware_sees_the_context(
    transport: InMemoryTransport,
) -> None:
    attempts: list[int] = []

    async def record(context: Any, next_handler: Any, cancellation: Any) -> bool:
        attempts.append(context.attempt)
        return await next_handler(context)

    subscription = Subscription(
        OrderPlaced, ORDERS, _handler(return_value=False), middlewares=[record]
    )
    dispatcher = _dispatcher(transport, subscription)
    await transport.send(ORDERS, _body(OrderPlaced(order_id="1")), message_id="x")

    for _ in range(2):
        (envelope,) = await transport.receive(
            ORDERS, max_messages=1, wait_seconds=0, visibility_timeout=0
        )
        await dispatcher.dispatch(envelope, asyncio.Event())

    assert attempts == [1, 2]


@pytest.mark.asyncio
async def test_acknowledge_failure_returns_false(
    transport: InMemoryTransport, monitor: RecordingMonitor
) -> None:
    envelope = await _deliver(transport, _body(OrderPlaced(order_id="1")))
    failing = AsyncMock(side_effect=RuntimeError("network"))
    transport.acknowledge = failing  # type: ignore[method-assign]
    dispatcher = _dispatcher(
        transport,
        Subscription(OrderPlaced, ORDERS, _handler(return_value=True)),
        monitor=monitor,
    )

    assert await dispatcher.dispatch(envelope, asyncio.Event()) is False
    assert "handle_error" in monitor.names()


def test_dispatcher_needs_subscriptions(transport: InMemoryTransport) -> None:
    with pytest.raises(ValueError):
        MessageDispatcher(transport, ORDERS, SubscriptionRegistry())


def test_duplicate_subscription_is_rejected() -> None:
    subscription = Subscription(OrderPlaced, ORDERS, _handler())
    with pytest.raises(ValueError, match="OrderPlaced"):
        SubscriptionRegistry([subscription, subscription])


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_batch": 0},
        {"max_batch": 11},
        {"wait_seconds": 21},
        {"visibility_timeout": -1},
        {"concurrency_limit": 0},
        {"handler_timeout": 0},
    ],
)
def test_subscription_validates_tuning(kwargs: dict[str, Any]) -> None:
    with pytest.raises(ValueError):
        Subscription(OrderPlaced, ORDERS, _handler(), **kwargs)
