"""WebSocket message envelope and event payload models.

Every frame is ``{"type": <event>, "data": {...}}``. Inbound payloads are
validated against the model registered for their event in
``INBOUND_PAYLOADS``; payload keys are camelCase on the wire.
"""
from __future__ import annotations

from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from community_chat.domain.value_objects.enums import MessageType


class InboundEvent(StrEnum):
    JOIN = "join"
    GO_ONLINE = "goOnline"
    GO_OFFLINE = "goOffline"
    GET_ONLINE_USERS = "getOnlineUsers"
    JOIN_ROOM = "joinRoom"
    LEAVE_ROOM = "leaveRoom"
    SEND_MESSAGE = "sendMessage"
    TYPING = "typing"
    MESSAGE_READ = "messageRead"
    PING = "ping"
    DISCONNECT = "disconnect"


class OutboundEvent(StrEnum):
    JOIN_SUCCESS = "joinSuccess"
    ONLINE_USERS_LIST = "onlineUsersList"
    ONLINE_USERS_COUNT = "onlineUsersCount"
    USER_ONLINE = "userOnline"
    USER_OFFLINE = "userOffline"
    USER_STATUS_CHANGED = "userStatusChanged"
    ROOM_JOINED = "roomJoined"
    USER_JOINED_ROOM = "userJoinedRoom"
    USER_LEFT_ROOM = "userLeftRoom"
    RECEIVE_MESSAGE = "receiveMessage"
    NEW_MESSAGE = "newMessage"
    MESSAGE_SENT = "messageSent"
    MESSAGE_ERROR = "messageError"
    MESSAGE_DELETED = "messageDeleted"
    USER_TYPING = "userTyping"
    MESSAGE_READ_RECEIPT = "messageReadReceipt"
    MESSAGES_READ_RECEIPT = "messagesReadReceipt"
    PONG = "pong"
    ERROR = "error"


class WsInbound(BaseModel):
    """Client → Server."""

    type: str
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str
    data: dict[str, Any] = {}


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class EmptyPayload(_Payload):
    pass


class JoinPayload(_Payload):
    user_id: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    avatar: str | None = None


class JoinRoomPayload(_Payload):
    room_id: str = Field(min_length=1)


class LeaveRoomPayload(_Payload):
    # Falls back to the connection's current room.
    room_id: str | None = None


class SendMessagePayload(_Payload):
    sender_id: str = Field(min_length=1)
    receiver_id: str = Field(min_length=1)
    message: str | None = None
    message_type: MessageType = MessageType.TEXT
    attachment_url: str | None = None
    attachment_name: str | None = None
    client_temp_id: str | int | None = None

    @model_validator(mode="after")
    def _require_content(self) -> SendMessagePayload:
        if not self.message and not self.attachment_url:
            raise ValueError("message or attachmentUrl is required")
        return self


class TypingPayload(_Payload):
    room_id: str | None = None
    receiver_id: str | None = None
    is_typing: bool = True


class MessageReadPayload(_Payload):
    message_id: UUID | None = None
    message_ids: list[UUID] | None = None
    sender_id: str | None = None

    @model_validator(mode="after")
    def _require_target(self) -> MessageReadPayload:
        if self.message_id is None and not self.message_ids:
            raise ValueError("messageId or messageIds is required")
        return self

    @property
    def is_batch(self) -> bool:
        return bool(self.message_ids)


INBOUND_PAYLOADS: dict[InboundEvent, type[_Payload]] = {
    InboundEvent.JOIN: JoinPayload,
    InboundEvent.GO_ONLINE: EmptyPayload,
    InboundEvent.GO_OFFLINE: EmptyPayload,
    InboundEvent.GET_ONLINE_USERS: EmptyPayload,
    InboundEvent.JOIN_ROOM: JoinRoomPayload,
    InboundEvent.LEAVE_ROOM: LeaveRoomPayload,
    InboundEvent.SEND_MESSAGE: SendMessagePayload,
    InboundEvent.TYPING: TypingPayload,
    InboundEvent.MESSAGE_READ: MessageReadPayload,
    InboundEvent.PING: EmptyPayload,
    InboundEvent.DISCONNECT: EmptyPayload,
}


def describe_validation_error(exc: ValidationError) -> str:
    """Flatten pydantic errors into ``field: reason`` pairs."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)
