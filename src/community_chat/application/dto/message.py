from __future__ import annotations

from dataclasses import dataclass

from community_chat.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    sender_id: str
    receiver_id: str
    body: str | None = None
    type: MessageType = MessageType.TEXT
    attachment_url: str | None = None
    attachment_name: str | None = None
