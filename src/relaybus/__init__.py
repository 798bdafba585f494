"""relaybus — typed pub/sub messaging over queues and topics.

Listeners poll destinations and drive every envelope through a middleware
chain to its handler; publishers send through a retrying chain and report
every outcome. ``MessagingBus`` supervises both.
"""

from .bus import BusState, MessagingBus
from .exceptions import (
    DeadLetterError,
    FatalTransportError,
    HandlerTimeoutError,
    ListenerError,
    ListenerStartupError,
    MessagingError,
    MessagingSerializationError,
    OperationCancelledError,
    PublishBatchError,
    PublishCancelledError,
    PublishError,
    PublisherNotFoundError,
    RelayBusError,
    RetryableTransportError,
    StartupError,
    TransportError,
)
from .instrumentation import HookRegistry, get_hook_registry, set_hook_registry
from .listening import (
    ListenerState,
    MessageDispatcher,
    MessageListener,
    Subscription,
    SubscriptionRegistry,
)
from .models import (
    BatchOutcome,
    Destination,
    DestinationKind,
    HandleMessageContext,
    Message,
    MessageBatchResponse,
    MessageResponse,
    PublishOutcome,
    ReceivedEnvelope,
)
from .monitoring import LoggingMessageMonitor, NullMessageMonitor
from .publishing import (
    MessageBatchPublisher,
    MessagePublisher,
    PublicationRegistry,
    PublishConfiguration,
)
from .retry import RetryPolicy
from .serialization import JsonMessageSerializer

__all__ = [
    "BatchOutcome",
    "BusState",
    "DeadLetterError",
    "Destination",
    "DestinationKind",
    "FatalTransportError",
    "HandleMessageContext",
    "HandlerTimeoutError",
    "HookRegistry",
    "JsonMessageSerializer",
    "ListenerError",
    "ListenerStartupError",
    "ListenerState",
    "LoggingMessageMonitor",
    "Message",
    "MessageBatchPublisher",
    "MessageBatchResponse",
    "MessageDispatcher",
    "MessageListener",
    "MessagePublisher",
    "MessageResponse",
    "MessagingBus",
    "MessagingError",
    "MessagingSerializationError",
    "NullMessageMonitor",
    "OperationCancelledError",
    "PublicationRegistry",
    "PublishBatchError",
    "PublishCancelledError",
    "PublishConfiguration",
    "PublishError",
    "PublishOutcome",
    "PublisherNotFoundError",
    "ReceivedEnvelope",
    "RelayBusError",
    "RetryPolicy",
    "RetryableTransportError",
    "StartupError",
    "Subscription",
    "SubscriptionRegistry",
    "TransportError",
    "get_hook_registry",
    "set_hook_registry",
]
