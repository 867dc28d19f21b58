from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from community_chat.application.dto.chat import ChatListEntry, MessagePage
from community_chat.domain.entities.user import User
from community_chat.domain.value_objects.enums import MessageType


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageResponse(_CamelModel):
    id: UUID
    sender_id: str
    receiver_id: str
    body: str | None = Field(alias="message")
    type: MessageType = Field(alias="messageType")
    conversation_id: str
    attachment_url: str | None
    attachment_name: str | None
    created_at: datetime = Field(alias="timestamp")
    is_read: bool
    read_at: datetime | None


class UserResponse(_CamelModel):
    id: str = Field(alias="userId")
    display_name: str | None
    avatar_url: str | None
    is_online: bool
    last_seen: datetime | None


class PaginationResponse(_CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class MessagePageResponse(_CamelModel):
    messages: list[MessageResponse]
    pagination: PaginationResponse

    @classmethod
    def from_page(cls, page: MessagePage) -> MessagePageResponse:
        return cls(
            messages=[MessageResponse.model_validate(m) for m in page.messages],
            pagination=PaginationResponse(
                page=page.page,
                limit=page.limit,
                total=page.total,
                total_pages=page.total_pages,
            ),
        )


class ChatListEntryResponse(_CamelModel):
    counterpart_id: str
    last_message: MessageResponse
    unread_count: int
    user: UserResponse | None = None

    @classmethod
    def from_entry(cls, entry: ChatListEntry) -> ChatListEntryResponse:
        return cls(
            counterpart_id=entry.counterpart_id,
            last_message=MessageResponse.model_validate(entry.last_message),
            unread_count=entry.unread_count,
            user=UserResponse.model_validate(entry.counterpart) if entry.counterpart else None,
        )


class RoomRequest(_CamelModel):
    user_id1: str = Field(min_length=1)
    user_id2: str = Field(min_length=1)


class RoomResponse(_CamelModel):
    room_id: str


class MarkReadRequest(_CamelModel):
    user_id: str = Field(min_length=1)
    message_ids: list[UUID] | None = None
    sender_id: str | None = None

    @model_validator(mode="after")
    def _require_target(self) -> MarkReadRequest:
        if not self.message_ids and not self.sender_id:
            raise ValueError("Either messageIds or senderId is required")
        return self


class MarkReadResponse(_CamelModel):
    modified_count: int


class DeleteMessageRequest(_CamelModel):
    user_id: str = Field(min_length=1)


class DeleteMessageResponse(_CamelModel):
    id: UUID
    deleted: bool = True


def to_user_responses(users: list[User]) -> list[UserResponse]:
    return [UserResponse.model_validate(u) for u in users]

