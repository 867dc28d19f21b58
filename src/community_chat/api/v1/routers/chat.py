from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Query

from community_chat.api.deps import PublisherDep, UoWDep
from community_chat.api.v1.schemas.chat import (
    ChatListEntryResponse,
    DeleteMessageRequest,
    DeleteMessageResponse,
    MarkReadRequest,
    MarkReadResponse,
    MessagePageResponse,
    RoomRequest,
    RoomResponse,
    UserResponse,
    to_user_responses,
)
from community_chat.config import settings
from community_chat.domain.addressing import conversation_id
from community_chat.infrastructure.ws.protocol import OutboundEvent
from community_chat.realtime import events
from community_chat.services import message_service, presence_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


@router.get("/history", response_model=MessagePageResponse)
async def get_history(
    uow: UoWDep,
    sender_id: str = Query(..., alias="senderId", min_length=1),
    receiver_id: str = Query(..., alias="receiverId", min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.CHAT_HISTORY_DEFAULT_LIMIT, ge=1, le=settings.CHAT_HISTORY_MAX_LIMIT),
) -> MessagePageResponse:
    result = await message_service.get_history(sender_id, receiver_id, page, limit, uow)
    return MessagePageResponse.from_page(result)


@router.get("/list/{user_id}", response_model=list[ChatListEntryResponse])
async def get_chat_list(user_id: str, uow: UoWDep) -> list[ChatListEntryResponse]:
    entries = await message_service.get_chat_list(user_id, uow)
    return [ChatListEntryResponse.from_entry(e) for e in entries]


@router.get("/online-users", response_model=list[UserResponse])
async def get_online_users(uow: UoWDep) -> list[UserResponse]:
    users = await presence_service.list_online_users(uow)
    return to_user_responses(users)


@router.post("/room", response_model=RoomResponse)
async def get_room_id(body: RoomRequest) -> RoomResponse:
    return RoomResponse(room_id=conversation_id(body.user_id1, body.user_id2))


@router.post("/mark-read", response_model=MarkReadResponse)
async def mark_read(
    body: MarkReadRequest,
    uow: UoWDep,
    publisher: PublisherDep,
) -> MarkReadResponse:
    if body.message_ids:
        updated = await message_service.mark_read(body.message_ids, body.user_id, uow)
    else:
        assert body.sender_id is not None
        updated = await message_service.mark_read_from(body.sender_id, body.user_id, uow)

    for room, event, data in events.read_receipts(updated, body.user_id, batch=True):
        try:
            await publisher.publish(room, event, data)
        except Exception:
            logger.exception("Failed to publish read receipt to %s", room)
    return MarkReadResponse(modified_count=len(updated))


@router.get("/search", response_model=MessagePageResponse)
async def search_messages(
    uow: UoWDep,
    user_id: str = Query(..., alias="userId", min_length=1),
    query: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.CHAT_SEARCH_DEFAULT_LIMIT, ge=1, le=settings.CHAT_HISTORY_MAX_LIMIT),
) -> MessagePageResponse:
    result = await message_service.search_messages(user_id, query, page, limit, uow)
    return MessagePageResponse.from_page(result)


@router.delete("/message/{message_id}", response_model=DeleteMessageResponse)
async def delete_message(
    message_id: UUID,
    body: DeleteMessageRequest,
    uow: UoWDep,
    publisher: PublisherDep,
) -> DeleteMessageResponse:
    msg = await message_service.delete_message(message_id, body.user_id, uow)
    try:
        await publisher.publish(
            msg.conversation_id,
            OutboundEvent.MESSAGE_DELETED.value,
            {"messageId": str(msg.id), "conversationId": msg.conversation_id, "deletedBy": body.user_id},
        )
    except Exception:
        logger.exception("Failed to publish deletion of %s", msg.id)
    return DeleteMessageResponse(id=msg.id)
