"""Interprets inbound real-time events for one connection at a time.

Connection states: unauthenticated (no registry record) → joined (has a
registry record) → optionally in a room. The caller awaits ``dispatch``
for each frame before reading the next, which keeps per-connection events
in arrival order.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError as PydanticValidationError

from community_chat.application.dto.message import SendMessageDTO
from community_chat.application.exceptions import AppError
from community_chat.application.ports.clock import Clock, SystemClock
from community_chat.application.ports.emitter import EventEmitter
from community_chat.application.uow import UnitOfWorkFactory
from community_chat.domain.addressing import is_personal_channel, personal_channel
from community_chat.domain.entities.connection import LiveConnection
from community_chat.domain.entities.message import Message
from community_chat.infrastructure.ws.protocol import (
    INBOUND_PAYLOADS,
    EmptyPayload,
    InboundEvent,
    JoinPayload,
    JoinRoomPayload,
    LeaveRoomPayload,
    MessageReadPayload,
    OutboundEvent,
    SendMessagePayload,
    TypingPayload,
    WsInbound,
    describe_validation_error,
)
from community_chat.realtime import events
from community_chat.realtime.presence import PresenceTracker
from community_chat.realtime.registry import ConnectionRegistry
from community_chat.services import message_service

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]


class EventDispatcher:
    def __init__(
        self,
        registry: ConnectionRegistry,
        emitter: EventEmitter,
        presence: PresenceTracker,
        uow_factory: UnitOfWorkFactory,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._emitter = emitter
        self._presence = presence
        self._uow_factory = uow_factory
        self._clock = clock or SystemClock()
        self._handlers: dict[InboundEvent, Handler] = {
            InboundEvent.JOIN: self._on_join,
            InboundEvent.GO_ONLINE: self._on_go_online,
            InboundEvent.GO_OFFLINE: self._on_go_offline,
            InboundEvent.GET_ONLINE_USERS: self._on_get_online_users,
            InboundEvent.JOIN_ROOM: self._on_join_room,
            InboundEvent.LEAVE_ROOM: self._on_leave_room,
            InboundEvent.SEND_MESSAGE: self._on_send_message,
            InboundEvent.TYPING: self._on_typing,
            InboundEvent.MESSAGE_READ: self._on_message_read,
            InboundEvent.PING: self._on_ping,
        }

    async def dispatch(self, connection_id: str, raw: str) -> bool:
        """Handle one raw frame. Returns False when the client asked to disconnect."""
        try:
            envelope = WsInbound.model_validate_json(raw)
        except PydanticValidationError:
            await self._error(connection_id, "invalid_payload", "Malformed event envelope")
            return True
        return await self.handle(connection_id, envelope.type, envelope.data)

    async def handle(self, connection_id: str, event_type: str, data: dict[str, Any]) -> bool:
        try:
            event = InboundEvent(event_type)
        except ValueError:
            await self._error(connection_id, "unknown_event", f"Unknown event: {event_type}")
            return True
        if event is InboundEvent.DISCONNECT:
            return False

        try:
            payload = INBOUND_PAYLOADS[event].model_validate(data)
        except PydanticValidationError as exc:
            detail = describe_validation_error(exc)
            if event is InboundEvent.SEND_MESSAGE:
                await self._message_error(connection_id, detail, data.get("clientTempId"))
            else:
                await self._error(connection_id, "invalid_data", detail, event=event)
            return True

        try:
            await self._handlers[event](connection_id, payload)
        except Exception:
            logger.exception("Error handling %s for %s", event, connection_id)
            await self._error(connection_id, "internal_error", f"Failed to handle {event}")
        return True

    async def handle_disconnect(self, connection_id: str, *, reason: str | None = None) -> None:
        """Registry cleanup plus the offline transition when it was the user's last connection."""
        removal = self._registry.unregister(connection_id)
        if removal is None:
            logger.debug("Unknown client disconnected: %s", connection_id)
            return
        conn = removal.connection
        if removal.owner_emptied:
            await self._presence.user_disconnected(conn, reason=reason)
        else:
            logger.info(
                "%s (%s) disconnected (still has other connections)",
                conn.display_name,
                conn.user_id,
            )

    async def evict(self, connection_id: str) -> None:
        """Force out an idle connection as if it had disconnected."""
        await self._emitter.close(connection_id, 4000, "inactive")
        await self.handle_disconnect(connection_id, reason="inactive")

    # -- handlers ------------------------------------------------------------

    async def _on_join(self, connection_id: str, payload: JoinPayload) -> None:
        registration = self._registry.register(
            connection_id, payload.user_id, payload.display_name, payload.avatar,
        )
        replaced = registration.replaced
        if replaced is not None:
            self._emitter.leave_room(connection_id, personal_channel(replaced.user_id))
            if registration.replaced_owner_emptied:
                await self._presence.user_disconnected(replaced)

        conn = registration.connection
        self._emitter.join_room(connection_id, personal_channel(conn.user_id))
        if registration.first_for_user:
            await self._presence.user_connected(conn)

        online = self._presence.online_users()
        await self._emitter.send_to_connection(
            connection_id,
            OutboundEvent.JOIN_SUCCESS,
            {
                **events.user_info(conn),
                "connectionId": connection_id,
                "onlineUsers": online,
                "totalOnline": len(online),
            },
        )
        await self._presence.broadcast_online_count()
        logger.info("%s (%s) joined (connection %s)", conn.display_name, conn.user_id, connection_id)

    async def _on_go_online(self, connection_id: str, _payload: EmptyPayload) -> None:
        conn = self._touch(connection_id)
        if conn is not None:
            await self._presence.set_status(conn, True)

    async def _on_go_offline(self, connection_id: str, _payload: EmptyPayload) -> None:
        conn = self._touch(connection_id)
        if conn is not None:
            await self._presence.set_status(conn, False)

    async def _on_get_online_users(self, connection_id: str, _payload: EmptyPayload) -> None:
        users = self._presence.online_users()
        await self._emitter.send_to_connection(
            connection_id,
            OutboundEvent.ONLINE_USERS_LIST,
            {"users": users, "count": len(users), "timestamp": self._clock.now()},
        )

    async def _on_join_room(self, connection_id: str, payload: JoinRoomPayload) -> None:
        conn = await self._require_joined(connection_id)
        if conn is None:
            return
        room = payload.room_id
        if is_personal_channel(room) and room != personal_channel(conn.user_id):
            await self._error(connection_id, "reserved_room", "Room ID is reserved")
            return

        self._emitter.join_room(connection_id, room)
        self._registry.set_room(connection_id, room)
        now = self._clock.now()
        await self._emitter.send_to_room(
            room,
            OutboundEvent.USER_JOINED_ROOM,
            {**events.user_info(conn), "roomId": room, "timestamp": now},
            exclude=connection_id,
        )
        await self._emitter.send_to_connection(
            connection_id, OutboundEvent.ROOM_JOINED, {"roomId": room, "timestamp": now},
        )
        logger.debug("%s joined room %s", conn.user_id, room)

    async def _on_leave_room(self, connection_id: str, payload: LeaveRoomPayload) -> None:
        conn = await self._require_joined(connection_id)
        if conn is None:
            return
        room = payload.room_id or conn.current_room
        if room and not is_personal_channel(room) and self._emitter.leave_room(connection_id, room):
            await self._emitter.send_to_room(
                room,
                OutboundEvent.USER_LEFT_ROOM,
                {
                    "userId": conn.user_id,
                    "displayName": conn.display_name,
                    "roomId": room,
                    "timestamp": self._clock.now(),
                },
            )
            logger.debug("%s left room %s", conn.user_id, room)
        if conn.current_room == room:
            self._registry.set_room(connection_id, None)

    async def _on_send_message(self, connection_id: str, payload: SendMessagePayload) -> None:
        temp_id = payload.client_temp_id
        conn = self._touch(connection_id)
        if conn is None:
            await self._message_error(connection_id, "Join before sending messages", temp_id)
            return
        if payload.sender_id != conn.user_id:
            await self._message_error(connection_id, "senderId does not match the joined user", temp_id)
            return

        dto = SendMessageDTO(
            sender_id=payload.sender_id,
            receiver_id=payload.receiver_id,
            body=payload.message,
            type=payload.message_type,
            attachment_url=payload.attachment_url,
            attachment_name=payload.attachment_name,
        )
        try:
            async with self._uow_factory() as uow:
                msg = await message_service.send_message(dto, uow, now=self._clock.now())
        except AppError as exc:
            await self._message_error(connection_id, exc.detail, temp_id)
            return
        except Exception as exc:
            logger.exception("Failed to persist message from %s", conn.user_id)
            await self._message_error(connection_id, "Failed to send message", temp_id, details=str(exc))
            return

        await self._deliver(conn, msg)
        await self._emitter.send_to_connection(
            connection_id,
            OutboundEvent.MESSAGE_SENT,
            {
                "clientTempId": temp_id,
                "messageId": str(msg.id),
                "timestamp": msg.created_at,
                "status": "sent",
            },
        )
        logger.debug("Message %s: %s -> %s", msg.id, msg.sender_id, msg.receiver_id)

    async def _deliver(self, sender: LiveConnection, msg: Message) -> None:
        data = events.message_data(msg)
        await self._emitter.send_to_room(msg.conversation_id, OutboundEvent.RECEIVE_MESSAGE, data)
        await self._emitter.send_to_room(
            personal_channel(msg.receiver_id),
            OutboundEvent.NEW_MESSAGE,
            {**data, "senderInfo": events.user_info(sender)},
        )

    async def _on_typing(self, connection_id: str, payload: TypingPayload) -> None:
        conn = self._touch(connection_id)
        if conn is None or not (payload.room_id or payload.receiver_id):
            return
        data = {
            "senderId": conn.user_id,
            "displayName": conn.display_name,
            "avatar": conn.avatar,
            "isTyping": payload.is_typing,
            "roomId": payload.room_id,
            "timestamp": self._clock.now(),
        }
        if payload.room_id:
            await self._emitter.send_to_room(
                payload.room_id, OutboundEvent.USER_TYPING, data, exclude=connection_id,
            )
        if payload.receiver_id:
            await self._emitter.send_to_room(
                personal_channel(payload.receiver_id), OutboundEvent.USER_TYPING, data,
            )

    async def _on_message_read(self, connection_id: str, payload: MessageReadPayload) -> None:
        conn = await self._require_joined(connection_id)
        if conn is None:
            return
        self._registry.touch(connection_id)
        ids = payload.message_ids if payload.is_batch else [payload.message_id]
        try:
            async with self._uow_factory() as uow:
                updated = await message_service.mark_read(ids, conn.user_id, uow, now=self._clock.now())
        except Exception:
            logger.exception("Failed to mark messages read for %s", conn.user_id)
            await self._error(connection_id, "read_failed", "Failed to mark message as read")
            return
        for room, event, data in events.read_receipts(updated, conn.user_id, batch=payload.is_batch):
            await self._emitter.send_to_room(room, event, data)

    async def _on_ping(self, connection_id: str, _payload: EmptyPayload) -> None:
        self._registry.touch(connection_id)
        await self._emitter.send_to_connection(
            connection_id, OutboundEvent.PONG, {"timestamp": self._clock.now()},
        )

    # -- helpers -------------------------------------------------------------

    def _touch(self, connection_id: str) -> LiveConnection | None:
        if not self._registry.touch(connection_id):
            return None
        return self._registry.get(connection_id)

    async def _require_joined(self, connection_id: str) -> LiveConnection | None:
        conn = self._registry.get(connection_id)
        if conn is None:
            await self._error(connection_id, "not_joined", "Join before using this event")
        return conn

    async def _error(
        self,
        connection_id: str,
        code: str,
        message: str,
        *,
        event: str | None = None,
    ) -> None:
        data: dict[str, Any] = {"code": code, "message": message}
        if event is not None:
            data["event"] = event
        await self._emitter.send_to_connection(connection_id, OutboundEvent.ERROR, data)

    async def _message_error(
        self,
        connection_id: str,
        error: str,
        temp_id: Any,
        *,
        details: str | None = None,
    ) -> None:
        data: dict[str, Any] = {"error": error, "clientTempId": temp_id}
        if details:
            data["details"] = details
        await self._emitter.send_to_connection(connection_id, OutboundEvent.MESSAGE_ERROR, data)

