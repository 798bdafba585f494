"""In-process transport and lock for tests and local runs."""

from .lock import InMemoryMessageLock
from .transport import DEFAULT_ACCOUNT, InMemoryTransport, SentRecord

__all__ = ["DEFAULT_ACCOUNT", "InMemoryMessageLock", "InMemoryTransport", "SentRecord"]
