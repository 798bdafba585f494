"""Message, destination, envelope, context and response models."""

from .context import HandleMessageContext, VisibilityUpdater
from .destination import Destination, DestinationKind
from .envelope import BatchEntry, ReceivedEnvelope
from .message import Message
from .response import (
    BatchEntryFailure,
    BatchEntrySuccess,
    BatchOutcome,
    MessageBatchResponse,
    MessageResponse,
    PublishOutcome,
)

__all__ = [
    "BatchEntry",
    "BatchEntryFailure",
    "BatchEntrySuccess",
    "BatchOutcome",
    "Destination",
    "DestinationKind",
    "HandleMessageContext",
    "Message",
    "MessageBatchResponse",
    "MessageResponse",
    "PublishOutcome",
    "ReceivedEnvelope",
    "VisibilityUpdater",
]
