"""Builders for outbound event payloads shared by the socket and HTTP paths."""
from __future__ import annotations

from collections import defaultdict
from typing import Any

from community_chat.domain.addressing import personal_channel
from community_chat.domain.entities.connection import LiveConnection
from community_chat.domain.entities.message import Message
from community_chat.infrastructure.ws.protocol import OutboundEvent


def user_info(conn: LiveConnection) -> dict[str, Any]:
    return {
        "userId": conn.user_id,
        "displayName": conn.display_name,
        "avatar": conn.avatar,
    }


def online_user(conn: LiveConnection) -> dict[str, Any]:
    return {**user_info(conn), "status": "online", "since": conn.joined_at}


def message_data(msg: Message) -> dict[str, Any]:
    return {
        "id": str(msg.id),
        "senderId": msg.sender_id,
        "receiverId": msg.receiver_id,
        "message": msg.body,
        "messageType": msg.type,
        "conversationId": msg.conversation_id,
        "attachmentUrl": msg.attachment_url,
        "attachmentName": msg.attachment_name,
        "timestamp": msg.created_at,
        "isRead": msg.is_read,
    }


def read_receipts(
    updated: list[Message],
    reader_id: str,
    *,
    batch: bool,
) -> list[tuple[str, str, dict[str, Any]]]:
    """One ``(room, event, data)`` receipt per original sender, addressed to their personal channel."""
    by_sender: dict[str, list[Message]] = defaultdict(list)
    for msg in updated:
        by_sender[msg.sender_id].append(msg)

    receipts = []
    for sender_id, msgs in by_sender.items():
        read_at = max((m.read_at for m in msgs if m.read_at is not None), default=None)
        ids = [str(m.id) for m in msgs]
        if batch:
            event = OutboundEvent.MESSAGES_READ_RECEIPT
            data: dict[str, Any] = {"messageIds": ids}
        else:
            event = OutboundEvent.MESSAGE_READ_RECEIPT
            data = {"messageId": ids[0]}
        data.update(readBy=reader_id, readAt=read_at)
        receipts.append((personal_channel(sender_id), event.value, data))
    return receipts
