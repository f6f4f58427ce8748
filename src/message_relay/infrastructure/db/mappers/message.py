from __future__ import annotations

from message_relay.domain.entities.message import Message
from message_relay.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        sender=model.sender,
        recipient=model.recipient,
        body=model.body,
        is_read=model.is_read,
        created_at=model.created_at,
    )


def entity_to_model(entity: Message) -> MessageModel:
    return MessageModel(
        id=entity.id,
        sender=entity.sender,
        recipient=entity.recipient,
        body=entity.body,
        is_read=entity.is_read,
        created_at=entity.created_at,
    )
