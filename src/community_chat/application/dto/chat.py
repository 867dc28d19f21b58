from __future__ import annotations

from dataclasses import dataclass

from community_chat.domain.entities.message import Message
from community_chat.domain.entities.user import User


@dataclass(frozen=True, slots=True)
class ChatListEntry:
    counterpart_id: str
    last_message: Message
    unread_count: int
    counterpart: User | None = None


@dataclass(frozen=True, slots=True)
class MessagePage:
    messages: list[Message]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0
