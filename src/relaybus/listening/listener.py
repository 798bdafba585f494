"""MessageListener — the per-destination receive and dispatch loop."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
from datetime import timedelta
from typing import TYPE_CHECKING

from ..cancellation import wait_cancellable
from ..exceptions import ListenerStartupError, OperationCancelledError
from ..monitoring import NullMessageMonitor
from ..ports.background_worker import IBackgroundWorker
from ..retry import RetryPolicy
from .dispatcher import MessageDispatcher
from .subscription import Subscription, SubscriptionRegistry

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..instrumentation import HookRegistry
    from ..models.destination import Destination
    from ..models.envelope import ReceivedEnvelope
    from ..ports.monitoring import IMessageMonitor
    from ..ports.serialization import IMessageSerializer
    from ..ports.transport import IMessageTransport

logger = logging.getLogger("relaybus.listener")

# Keeps the exponential receive backoff at its cap instead of overflowing.
_MAX_BACKOFF_STEP = 16


class ListenerState(str, enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    POLLING = "polling"
    DISPATCHING = "dispatching"
    STOPPING = "stopping"


def default_receive_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=1, base_delay=1.0, max_delay=30.0)


class MessageListener(IBackgroundWorker):
    """Polls one destination and dispatches what it receives.

    Every subscription passed in must share a destination; the dispatcher
    picks the subscription by the type tag of each body. Receive tuning is
    merged across them: the smallest batch, wait and concurrency limit and the
    largest visibility timeout win.

    ``start`` verifies the destination and returns once the loop is running.
    The loop stops when the start cancellation is set or :meth:`stop` is
    called. No dispatch starts after that; in-flight dispatches get
    ``drain_timeout`` seconds to finish and are then cancelled, leaving their
    envelopes to the transport's redelivery.
    """

    def __init__(
        self,
        transport: IMessageTransport,
        subscriptions: Subscription | Sequence[Subscription],
        *,
        serializer: IMessageSerializer | None = None,
        monitor: IMessageMonitor | None = None,
        hooks: HookRegistry | None = None,
        receive_retry: RetryPolicy | None = None,
        drain_timeout: float = 30.0,
    ) -> None:
        if isinstance(subscriptions, Subscription):
            subscriptions = (subscriptions,)
        registry = SubscriptionRegistry(subscriptions)
        destinations = {s.destination for s in registry}
        if len(destinations) != 1:
            raise ValueError(
                "A listener needs subscriptions on exactly one destination, "
                f"got {len(destinations)}"
            )
        if drain_timeout < 0:
            raise ValueError("drain_timeout must be >= 0")
        self._destination = destinations.pop()
        self._transport = transport
        self._monitor = monitor or NullMessageMonitor()
        self._dispatcher = MessageDispatcher(
            transport,
            self._destination,
            registry,
            serializer=serializer,
            monitor=self._monitor,
            hooks=hooks,
        )
        self._max_batch = min(s.max_batch for s in registry)
        self._wait_seconds = min(s.wait_seconds for s in registry)
        self._visibility_timeout = max(s.visibility_timeout for s in registry)
        self._concurrency = min(s.concurrency_limit for s in registry)
        self._receive_retry = receive_retry or default_receive_retry()
        self._drain_timeout = drain_timeout
        self._name = ", ".join(str(s) for s in registry)

        self._state = ListenerState.STOPPED
        self._task: asyncio.Task[None] | None = None
        self._watcher: asyncio.Task[None] | None = None
        self._stopping: asyncio.Event | None = None
        self._in_flight: set[asyncio.Task[bool]] = set()

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def destination(self) -> Destination:
        return self._destination

    @property
    def in_flight(self) -> int:
        return sum(1 for task in self._in_flight if not task.done())

    def __str__(self) -> str:
        return self._name

    async def start(self, cancellation: asyncio.Event) -> None:
        """Verify the destination and spawn the poll loop."""
        if self._task is not None and not self._task.done():
            return
        self._state = ListenerState.STARTING
        try:
            await self._transport.verify(self._destination)
        except Exception as e:
            self._state = ListenerState.STOPPED
            raise ListenerStartupError(self._name, str(e)) from e

        self._stopping = asyncio.Event()
        self._watcher = asyncio.create_task(self._watch(cancellation, self._stopping))
        self._task = asyncio.create_task(
            self._run(self._stopping), name=f"relaybus-listener:{self._destination}"
        )
        self._state = ListenerState.POLLING
        logger.info("Listening on %s for %s", self._destination, self._name)

    async def stop(self) -> None:
        """Signal the loop to stop and wait until in-flight work has drained."""
        if self._stopping is not None:
            self._stopping.set()
        await self.wait_stopped()

    async def wait_stopped(self) -> None:
        if self._task is not None:
            await asyncio.wait({self._task})
        if self._watcher is not None:
            self._watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watcher
            self._watcher = None

    @staticmethod
    async def _watch(external: asyncio.Event, internal: asyncio.Event) -> None:
        await external.wait()
        internal.set()

    async def _run(self, cancellation: asyncio.Event) -> None:
        failures = 0
        try:
            while not cancellation.is_set():
                try:
                    capacity = await self._wait_for_capacity(cancellation)
                except OperationCancelledError:
                    break

                self._state = ListenerState.POLLING
                start = time.perf_counter()
                try:
                    envelopes = await wait_cancellable(
                        self._transport.receive(
                            self._destination,
                            max_messages=min(self._max_batch, capacity),
                            wait_seconds=self._wait_seconds,
                            visibility_timeout=self._visibility_timeout,
                        ),
                        cancellation,
                    )
                except OperationCancelledError:
                    break
                except Exception as e:
                    failures += 1
                    logger.error(
                        "Receive from %s failed (%d in a row): %s",
                        self._destination,
                        failures,
                        e,
                    )
                    self._monitor.handle_error(e, self._name)
                    try:
                        await self._receive_retry.wait_before_retry(
                            min(failures, _MAX_BACKOFF_STEP), cancellation
                        )
                    except OperationCancelledError:
                        break
                    continue

                failures = 0
                self._monitor.receive_message_time(
                    timedelta(seconds=time.perf_counter() - start),
                    str(self._destination),
                )
                if envelopes:
                    self._state = ListenerState.DISPATCHING
                    self._spawn(envelopes, cancellation)
        finally:
            self._state = ListenerState.STOPPING
            await self._drain()
            self._state = ListenerState.STOPPED
            logger.info("Stopped listening on %s", self._destination)

    async def _wait_for_capacity(self, cancellation: asyncio.Event) -> int:
        """Block until a dispatch slot is free; return how many are free."""
        while True:
            running = {task for task in self._in_flight if not task.done()}
            if len(running) < self._concurrency:
                return self._concurrency - len(running)
            await wait_cancellable(
                asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED),
                cancellation,
            )

    def _spawn(
        self, envelopes: list[ReceivedEnvelope], cancellation: asyncio.Event
    ) -> None:
        for envelope in envelopes:
            if cancellation.is_set():
                logger.debug(
                    "Not dispatching %s after cancellation", envelope.message_id
                )
                continue
            task = asyncio.create_task(
                self._dispatcher.dispatch(envelope, cancellation)
            )
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)

    async def _drain(self) -> None:
        pending = {task for task in self._in_flight if not task.done()}
        if not pending:
            return
        logger.info(
            "Waiting up to %.1fs for %d in-flight message(s) on %s",
            self._drain_timeout,
            len(pending),
            self._destination,
        )
        _, pending = await asyncio.wait(pending, timeout=self._drain_timeout)
        if not pending:
            return
        logger.warning(
            "Cancelling %d message(s) on %s still running after %.1fs",
            len(pending),
            self._destination,
            self._drain_timeout,
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
