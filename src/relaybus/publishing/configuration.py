"""PublishConfiguration — process-wide publish policy."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from ..retry import RetryPolicy

if TYPE_CHECKING:
    from ..models.message import Message
    from ..models.response import MessageBatchResponse, MessageResponse

MessageResponseLogger = Callable[["MessageResponse", "Message"], None]
MessageBatchResponseLogger = Callable[["MessageBatchResponse", "list[Message]"], None]

# SQS and SNS both cap batch requests at ten entries.
DEFAULT_MAX_BATCH_SIZE = 10


@dataclass(frozen=True)
class PublishConfiguration:
    """Retry budget, backoff and response reporting for every publisher.

    Constructed once at startup and shared read-only by concurrent publish
    calls. ``publish_failure_backoff`` accepts seconds or a ``timedelta``.
    """

    publish_failure_reattempts: int = 0
    publish_failure_backoff: float | timedelta = 1.0
    message_response_logger: MessageResponseLogger | None = None
    message_batch_response_logger: MessageBatchResponseLogger | None = None
    additional_subscriber_accounts: Iterable[str] = field(default_factory=tuple)
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE

    def __post_init__(self) -> None:
        backoff = self.publish_failure_backoff
        if isinstance(backoff, timedelta):
            backoff = backoff.total_seconds()
        if self.publish_failure_reattempts < 0:
            raise ValueError("publish_failure_reattempts must be >= 0")
        if backoff < 0:
            raise ValueError("publish_failure_backoff must be >= 0")
        if self.max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        object.__setattr__(self, "publish_failure_backoff", float(backoff))
        object.__setattr__(
            self,
            "additional_subscriber_accounts",
            tuple(dict.fromkeys(self.additional_subscriber_accounts)),
        )

    @property
    def backoff_seconds(self) -> float:
        return float(self.publish_failure_backoff)  # type: ignore[arg-type]

    @property
    def max_attempts(self) -> int:
        return self.publish_failure_reattempts + 1

    def retry_policy(self) -> RetryPolicy:
        """Linear policy: the wait before retry *n* is ``backoff * n``."""
        return RetryPolicy.linear(
            reattempts=self.publish_failure_reattempts,
            backoff=self.backoff_seconds,
        )
