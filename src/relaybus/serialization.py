"""JsonMessageSerializer — JSON bodies with a type subject."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, TypeVar

from .exceptions import MessagingSerializationError
from .ports.serialization import IMessageSerializer

if TYPE_CHECKING:
    from .models.message import Message

M = TypeVar("M", bound="Message")


def _loads_object(raw: str) -> dict[str, Any]:
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


class JsonMessageSerializer(IMessageSerializer):
    """Serialize messages to ``{"Subject": <type>, "Message": <json>}``.

    The same shape SNS uses for notifications, so bodies that reached a queue
    through a topic subscription are unwrapped transparently.
    """

    def serialize(self, message: Message) -> str:
        """Encode *message* to a JSON body."""
        try:
            payload = message.model_dump_json()
            return json.dumps({"Subject": message.message_type(), "Message": payload})
        except (TypeError, ValueError) as e:
            raise MessagingSerializationError(str(e)) from e

    def deserialize(self, body: str, message_class: type[M]) -> M:
        """Decode *body* into an instance of *message_class*."""
        try:
            data = self._unwrap(_loads_object(body))
            subject = data.get("Subject")
            if subject is not None and subject != message_class.message_type():
                raise ValueError(
                    f"body carries {subject!r}, expected "
                    f"{message_class.message_type()!r}"
                )
            payload = data.get("Message")
            if payload is None:
                raise ValueError("body has no 'Message' field")
            if isinstance(payload, str):
                return message_class.model_validate_json(payload)
            return message_class.model_validate(payload)
        except (TypeError, ValueError) as e:
            raise MessagingSerializationError(str(e)) from e

    def message_type(self, body: str) -> str | None:
        """Read the ``Subject`` tag without decoding the payload."""
        try:
            subject = self._unwrap(_loads_object(body)).get("Subject")
        except (TypeError, ValueError) as e:
            raise MessagingSerializationError(str(e)) from e
        return subject if isinstance(subject, str) else None

    @staticmethod
    def _unwrap(data: dict[str, Any]) -> dict[str, Any]:
        """Strip an SNS notification wrapper if present."""
        if data.get("Type") != "Notification":
            return data
        raw = data.get("Message")
        if not isinstance(raw, str):
            raise ValueError("notification has no 'Message' string")
        inner = _loads_object(raw)
        if "Subject" in inner and "Message" in inner:
            return inner
        return {"Subject": data.get("Subject"), "Message": raw}
