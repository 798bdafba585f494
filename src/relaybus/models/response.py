"""Publish outcomes for single and batch sends."""

from __future__ import annotations

import enum
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field


class PublishOutcome(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BatchOutcome(str, enum.Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


class MessageResponse(BaseModel):
    """Outcome of a single-message publish."""

    model_config = ConfigDict(frozen=True)

    outcome: PublishOutcome = PublishOutcome.SUCCEEDED
    message_id: str | None = None
    sequence_number: str | None = None
    http_status_code: int | None = None
    destination: str | None = None
    attempts: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is PublishOutcome.SUCCEEDED


class BatchEntrySuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry_id: str
    message_id: str | None = None
    sequence_number: str | None = None


class BatchEntryFailure(BaseModel):
    """A batch entry the destination rejected.

    ``sender_fault`` entries are malformed on our side and are never retried.
    """

    model_config = ConfigDict(frozen=True)

    entry_id: str
    code: str | None = None
    reason: str | None = None
    sender_fault: bool = False


class MessageBatchResponse(BaseModel):
    """Outcome of a batch publish with per-entry status.

    Entry ids are the unique keys of the published messages.
    """

    model_config = ConfigDict(frozen=True)

    successful: tuple[BatchEntrySuccess, ...] = Field(default_factory=tuple)
    failed: tuple[BatchEntryFailure, ...] = Field(default_factory=tuple)
    destination: str | None = None
    attempts: int = 0

    @property
    def outcome(self) -> BatchOutcome:
        if not self.failed:
            return BatchOutcome.SUCCEEDED
        if not self.successful:
            return BatchOutcome.FAILED
        return BatchOutcome.PARTIAL

    @property
    def succeeded_ids(self) -> list[str]:
        return [entry.entry_id for entry in self.successful]

    @property
    def failed_ids(self) -> list[str]:
        return [entry.entry_id for entry in self.failed]

    @classmethod
    def combine(
        cls,
        responses: Iterable[MessageBatchResponse],
        *,
        destination: str | None = None,
    ) -> MessageBatchResponse:
        """Merge chunk responses into one aggregate response."""
        successful: list[BatchEntrySuccess] = []
        failed: list[BatchEntryFailure] = []
        attempts = 0
        for response in responses:
            successful.extend(response.successful)
            failed.extend(response.failed)
            attempts = max(attempts, response.attempts)
        return cls(
            successful=tuple(successful),
            failed=tuple(failed),
            destination=destination,
            attempts=attempts,
        )
