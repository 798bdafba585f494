"""Ports (protocols) implemented by adapters and applications."""

from .background_worker import IBackgroundWorker
from .handler import IHandlerAsync
from .locking import IMessageLock
from .middleware import IMiddleware
from .monitoring import IMessageMonitor
from .serialization import IMessageSerializer
from .transport import IMessageTransport

__all__ = [
    "IBackgroundWorker",
    "IHandlerAsync",
    "IMessageLock",
    "IMessageMonitor",
    "IMessageSerializer",
    "IMessageTransport",
    "IMiddleware",
]
