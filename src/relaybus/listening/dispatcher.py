"""MessageDispatcher — one received envelope through its handler chain."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from typing import TYPE_CHECKING

from ..correlation import correlation_scope
from ..exceptions import MessagingSerializationError
from ..instrumentation import get_hook_registry
from ..models.context import HandleMessageContext, VisibilityUpdater
from ..monitoring import NullMessageMonitor
from ..serialization import JsonMessageSerializer
from .subscription import SubscriptionRegistry, build_handle_pipeline

if TYPE_CHECKING:
    from ..instrumentation import HookRegistry
    from ..models.destination import Destination
    from ..models.envelope import ReceivedEnvelope
    from ..models.message import Message
    from ..ports.monitoring import IMessageMonitor
    from ..ports.serialization import IMessageSerializer
    from ..ports.transport import IMessageTransport
    from .subscription import HandlePipeline, Subscription

logger = logging.getLogger("relaybus.dispatcher")


class MessageDispatcher:
    """Maps envelopes to typed contexts, runs the chain and applies the ack.

    The subscription for an envelope is looked up by the type tag of its body
    in a registry built once at construction; each subscription's chain is
    built once as well. An envelope is acknowledged only after its chain
    returned ``True``. Nothing raised while handling escapes :meth:`dispatch`
    except task cancellation.
    """

    def __init__(
        self,
        transport: IMessageTransport,
        destination: Destination,
        subscriptions: SubscriptionRegistry,
        *,
        serializer: IMessageSerializer | None = None,
        monitor: IMessageMonitor | None = None,
        hooks: HookRegistry | None = None,
    ) -> None:
        if not len(subscriptions):
            raise ValueError("A dispatcher needs at least one subscription")
        self._transport = transport
        self._destination = destination
        self._subscriptions = subscriptions
        self._serializer = serializer or JsonMessageSerializer()
        self._monitor = monitor or NullMessageMonitor()
        self._hooks = hooks or get_hook_registry()
        self._pipelines: dict[str, HandlePipeline] = {
            s.message_type: build_handle_pipeline(s, self._monitor)
            for s in subscriptions
        }

    @property
    def destination(self) -> Destination:
        return self._destination

    async def dispatch(
        self, envelope: ReceivedEnvelope, cancellation: asyncio.Event
    ) -> bool:
        """Handle *envelope*; return whether it was acknowledged."""
        if cancellation.is_set():
            logger.debug(
                "Not dispatching %s from %s: cancelled",
                envelope.message_id,
                self._destination,
            )
            return False
        try:
            subscription, message = self._decode(envelope)
        except MessagingSerializationError as e:
            logger.error(
                "Could not deserialize message %s from %s: %s",
                envelope.message_id,
                self._destination,
                e,
            )
            self._monitor.handle_error(e, "unknown")
            return False

        context = HandleMessageContext(
            envelope=envelope,
            message=message,
            message_class=subscription.message_class,
            destination=self._destination,
            visibility=VisibilityUpdater(self._transport, self._destination, envelope),
        )
        message_type = subscription.message_type
        pipeline = self._pipelines[message_type]

        with correlation_scope(message.conversation or message.unique_key()):
            start = time.perf_counter()
            try:
                handled = await self._hooks.execute_all(
                    f"listener.dispatch.{message_type}",
                    {
                        "destination": str(self._destination),
                        "message_type": message_type,
                        "message_id": message.unique_key(),
                        "transport_message_id": envelope.message_id,
                        "attempt": envelope.receive_count,
                    },
                    lambda: pipeline(context, cancellation),
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    "Unhandled error dispatching %s %s",
                    message_type,
                    envelope.message_id,
                )
                self._monitor.handle_exception(message_type)
                self._monitor.handle_error(e, message_type)
                handled = False
            finally:
                self._monitor.handle_time(
                    timedelta(seconds=time.perf_counter() - start)
                )

            if not handled:
                logger.debug(
                    "Leaving %s %s unacknowledged", message_type, envelope.message_id
                )
                return False
            return await self._acknowledge(envelope, message_type)

    def _decode(self, envelope: ReceivedEnvelope) -> tuple[Subscription, Message]:
        tag = self._serializer.message_type(envelope.body)
        if tag is None and len(self._subscriptions) == 1:
            subscription = next(iter(self._subscriptions))
        else:
            found = self._subscriptions.get(tag) if tag is not None else None
            if found is None:
                raise MessagingSerializationError(
                    f"No subscription on {self._destination} for type {tag!r}"
                )
            subscription = found
        message = self._serializer.deserialize(
            envelope.body, subscription.message_class
        )
        return subscription, message

    async def _acknowledge(self, envelope: ReceivedEnvelope, message_type: str) -> bool:
        try:
            await self._transport.acknowledge(self._destination, envelope)
        except Exception as e:
            logger.error(
                "Failed to acknowledge %s %s on %s: %s",
                message_type,
                envelope.message_id,
                self._destination,
                e,
            )
            self._monitor.handle_error(e, message_type)
            return False
        return True
