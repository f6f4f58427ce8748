from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from message_relay.domain.entities.message import USER_ID_MAX_LENGTH, Message
from message_relay.domain.value_objects.enums import DeliveryStatus


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    to_user_id: str
    body: str


@dataclass(frozen=True, slots=True)
class SendReceipt:
    """Result of an accepted send: the stored message and how far it got."""

    message: Message
    status: DeliveryStatus


@dataclass(frozen=True, slots=True)
class DeliveryPolicy:
    max_body_length: int = 1000
    allow_self_messages: bool = True
    max_user_id_length: int = USER_ID_MAX_LENGTH


def message_to_payload(message: Message) -> dict[str, Any]:
    """Wire shape of a persisted message, shared by the live channel and REST."""
    return {
        "id": str(message.id),
        "from": message.sender,
        "to": message.recipient,
        "message": message.body,
        "isRead": message.is_read,
        "timestamp": message.created_at.isoformat(),
    }
