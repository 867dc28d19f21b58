from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from community_chat.application.dto.chat import ChatListEntry
from community_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def get_by_id(self, message_id: UUID) -> Message | None: ...

    async def list_for_conversation(
        self,
        conversation_id: str,
        *,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Message]:
        """Newest first."""
        ...

    async def count_for_conversation(self, conversation_id: str) -> int: ...

    async def search(
        self,
        user_id: str,
        query: str,
        *,
        offset: int = 0,
        limit: int = 20,
    ) -> list[Message]: ...

    async def count_search(self, user_id: str, query: str) -> int: ...

    async def chat_list(self, user_id: str) -> list[ChatListEntry]: ...


class MessageWriter(Protocol):
    async def create(self, message: Message) -> Message: ...

    async def mark_read(
        self,
        message_ids: list[UUID],
        reader_id: str,
        read_at: datetime,
    ) -> list[Message]:
        """Mark unread messages addressed to ``reader_id`` read. Returns the updated messages."""
        ...

    async def mark_read_from(self, sender_id: str, reader_id: str, read_at: datetime) -> list[Message]: ...

    async def delete(self, message_id: UUID) -> None: ...
