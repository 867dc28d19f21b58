from __future__ import annotations

from community_chat.domain.entities.message import Message
from community_chat.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        sender_id=model.sender_id,
        receiver_id=model.receiver_id,
        body=model.body,
        type=model.type,
        conversation_id=model.conversation_id,
        attachment_url=model.attachment_url,
        attachment_name=model.attachment_name,
        created_at=model.created_at,
        is_read=model.is_read,
        read_at=model.read_at,
    )


def entity_to_model(entity: Message) -> MessageModel:
    return MessageModel(
        id=entity.id,
        sender_id=entity.sender_id,
        receiver_id=entity.receiver_id,
        body=entity.body,
        type=entity.type,
        conversation_id=entity.conversation_id,
        attachment_url=entity.attachment_url,
        attachment_name=entity.attachment_name,
        created_at=entity.created_at,
        is_read=entity.is_read,
        read_at=entity.read_at,
    )
