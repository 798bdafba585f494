"""MessagingBus — starts listeners and publishers and owns their shutdown."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING

from .exceptions import StartupError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .listening.listener import MessageListener
    from .ports.background_worker import IBackgroundWorker

logger = logging.getLogger("relaybus.bus")


class BusState(str, enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class MessagingBus:
    """Supervises a fixed set of listeners and publishers.

    :meth:`start` is the single join point: it starts every component
    concurrently, fails fast if any of them cannot start, then blocks until
    the cancellation event is set and every listener has drained.

    Usage::

        stopping = asyncio.Event()
        bus = MessagingBus([listener], [publisher])
        runner = asyncio.create_task(bus.start(stopping))
        await bus.started.wait()
        ...
        stopping.set()
        await runner
    """

    def __init__(
        self,
        listeners: Sequence[MessageListener],
        publishers: Sequence[IBackgroundWorker] = (),
        *,
        shutdown_timeout: float = 30.0,
    ) -> None:
        if shutdown_timeout <= 0:
            raise ValueError("shutdown_timeout must be > 0")
        self._listeners = tuple(listeners)
        self._publishers = tuple(publishers)
        self._shutdown_timeout = shutdown_timeout
        self._state = BusState.STOPPED
        self.started = asyncio.Event()

    @property
    def state(self) -> BusState:
        return self._state

    @property
    def listeners(self) -> tuple[MessageListener, ...]:
        return self._listeners

    async def start(self, cancellation: asyncio.Event) -> None:
        """Run the bus until *cancellation* is set.

        Raises :class:`StartupError` (``ListenerStartupError`` for listeners)
        when a component cannot start; whatever did start is stopped first.
        """
        if self._state is not BusState.STOPPED:
            raise RuntimeError(f"Bus is already {self._state.value}")
        self._state = BusState.STARTING
        components: list[IBackgroundWorker] = [*self._listeners, *self._publishers]
        logger.info(
            "Starting bus with %d listener(s) and %d publisher(s)",
            len(self._listeners),
            len(self._publishers),
        )

        results = await asyncio.gather(
            *(component.start(cancellation) for component in components),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            started = [
                component
                for component, result in zip(components, results)
                if not isinstance(result, BaseException)
            ]
            await self._stop_all(started)
            self._state = BusState.STOPPED
            for failure in failures[1:]:
                logger.error("Another component failed to start: %s", failure)
            first = failures[0]
            logger.error("Bus failed to start: %s", first)
            if isinstance(first, StartupError):
                raise first
            raise StartupError("MessagingBus", str(first)) from first

        self._state = BusState.RUNNING
        self.started.set()
        logger.info("Bus started")
        try:
            await cancellation.wait()
        finally:
            self._state = BusState.STOPPING
            logger.info("Stopping bus")
            await self._stop_all(components)
            self.started.clear()
            self._state = BusState.STOPPED
            logger.info("Bus stopped")

    async def _stop_all(self, components: Sequence[IBackgroundWorker]) -> None:
        if not components:
            return
        tasks = [asyncio.ensure_future(component.stop()) for component in components]
        done, pending = await asyncio.wait(tasks, timeout=self._shutdown_timeout)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error("Component failed to stop: %s", task.exception())
        if pending:
            logger.warning(
                "%d component(s) did not stop within %.1fs",
                len(pending),
                self._shutdown_timeout,
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
