"""ReceivedEnvelope — the raw transport record before deserialization."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class ReceivedEnvelope(BaseModel):
    """Immutable raw message as handed over by a transport receive call.

    ``receipt_handle`` is the opaque token the transport needs to acknowledge
    or re-hide the message; ``receive_count`` is how many times the transport
    has delivered it so far (1 on first delivery).
    """

    model_config = ConfigDict(frozen=True)

    message_id: str
    body: str
    receipt_handle: str
    attributes: dict[str, str] = Field(default_factory=dict)
    receive_count: int = Field(default=1, ge=1)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BatchEntry(BaseModel):
    """One serialized message inside an outbound batch request."""

    model_config = ConfigDict(frozen=True)

    entry_id: str
    body: str
    attributes: dict[str, str] = Field(default_factory=dict)
