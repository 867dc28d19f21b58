from __future__ import annotations

import uuid
from datetime import datetime, timezone

from community_chat.application.dto.chat import ChatListEntry, MessagePage
from community_chat.application.dto.message import SendMessageDTO
from community_chat.application.exceptions import NotFoundError, ValidationError
from community_chat.application.uow import UnitOfWork
from community_chat.domain.addressing import conversation_id
from community_chat.domain.entities.message import Message


async def send_message(
    dto: SendMessageDTO,
    uow: UnitOfWork,
    *,
    now: datetime | None = None,
) -> Message:
    """Persist a direct message and commit.

    The returned message carries the server-assigned id and timestamp
    (``now``, or the current UTC time); callers broadcast only after this
    returns so durability precedes visibility.
    """
    if not dto.sender_id or not dto.receiver_id:
        raise ValidationError("senderId and receiverId are required")
    if not dto.body and not dto.attachment_url:
        raise ValidationError("message or attachment is required")

    msg = Message(
        id=uuid.uuid4(),
        sender_id=dto.sender_id,
        receiver_id=dto.receiver_id,
        body=dto.body,
        type=dto.type.value,
        conversation_id=conversation_id(dto.sender_id, dto.receiver_id),
        attachment_url=dto.attachment_url,
        attachment_name=dto.attachment_name,
        created_at=now or datetime.now(timezone.utc),
    )
    msg = await uow.messages_w.create(msg)
    await uow.commit()
    return msg


async def mark_read(
    message_ids: list[uuid.UUID],
    reader_id: str,
    uow: UnitOfWork,
    *,
    now: datetime | None = None,
) -> list[Message]:
    if not message_ids:
        return []
    updated = await uow.messages_w.mark_read(message_ids, reader_id, now or datetime.now(timezone.utc))
    await uow.commit()
    return updated


async def mark_read_from(
    sender_id: str,
    reader_id: str,
    uow: UnitOfWork,
    *,
    now: datetime | None = None,
) -> list[Message]:
    """Mark every unread message ``sender_id`` sent to ``reader_id`` read."""
    updated = await uow.messages_w.mark_read_from(sender_id, reader_id, now or datetime.now(timezone.utc))
    await uow.commit()
    return updated


async def get_history(
    user_a: str,
    user_b: str,
    page: int,
    limit: int,
    uow: UnitOfWork,
) -> MessagePage:
    """Return one page of a pair's conversation.

    Pages are counted from the newest message backwards; messages inside a
    page are returned oldest first.
    """
    conv_id = conversation_id(user_a, user_b)
    newest_first = await uow.messages.list_for_conversation(
        conv_id, offset=(page - 1) * limit, limit=limit,
    )
    total = await uow.messages.count_for_conversation(conv_id)
    return MessagePage(
        messages=list(reversed(newest_first)),
        page=page,
        limit=limit,
        total=total,
    )


async def get_chat_list(user_id: str, uow: UnitOfWork) -> list[ChatListEntry]:
    entries = await uow.messages.chat_list(user_id)
    if not entries:
        return []
    users = await uow.users.get_many([e.counterpart_id for e in entries])
    by_id = {u.id: u for u in users}
    return [
        ChatListEntry(
            counterpart_id=e.counterpart_id,
            last_message=e.last_message,
            unread_count=e.unread_count,
            counterpart=by_id.get(e.counterpart_id),
        )
        for e in entries
    ]


async def search_messages(
    user_id: str,
    query: str,
    page: int,
    limit: int,
    uow: UnitOfWork,
) -> MessagePage:
    if not query.strip():
        raise ValidationError("query must not be empty")
    messages = await uow.messages.search(
        user_id, query, offset=(page - 1) * limit, limit=limit,
    )
    total = await uow.messages.count_search(user_id, query)
    return MessagePage(messages=messages, page=page, limit=limit, total=total)


async def delete_message(message_id: uuid.UUID, user_id: str, uow: UnitOfWork) -> Message:
    """Delete a message on behalf of its sender."""
    msg = await uow.messages.get_by_id(message_id)
    if msg is None or msg.sender_id != user_id:
        raise NotFoundError("Message not found or you are not authorized to delete it")
    await uow.messages_w.delete(message_id)
    await uow.commit()
    return msg
