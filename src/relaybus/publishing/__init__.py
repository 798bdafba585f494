"""Outbound side: routing, retry and single or batch publishers."""

from .base import BasePublisher
from .batch_publisher import MessageBatchPublisher
from .configuration import (
    MessageBatchResponseLogger,
    MessageResponseLogger,
    PublishConfiguration,
)
from .context import BatchPublishContext, PublishContext
from .publisher import MessagePublisher
from .retry import BatchRetryMiddleware, PublishRetryMiddleware, is_retryable
from .routing import PublicationRegistry

__all__ = [
    "BasePublisher",
    "BatchPublishContext",
    "BatchRetryMiddleware",
    "MessageBatchPublisher",
    "MessageBatchResponseLogger",
    "MessagePublisher",
    "MessageResponseLogger",
    "PublicationRegistry",
    "PublishConfiguration",
    "PublishContext",
    "PublishRetryMiddleware",
    "is_retryable",
]
