"""In-process WebSocket connection manager."""
from __future__ import annotations

import logging
from typing import Any, Iterable

from fastapi import WebSocket

from community_chat.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Owns the open sockets and their room subscriptions, keyed by connection id.

    Implements ``application.ports.emitter.EventEmitter``.
    """

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}
        self._rooms: dict[str, set[str]] = {}
        self._memberships: dict[str, set[str]] = {}

    async def connect(self, ws: WebSocket, connection_id: str) -> None:
        await ws.accept()
        self._sockets[connection_id] = ws
        self._memberships[connection_id] = set()
        logger.debug("WS connected: %s (total=%d)", connection_id, len(self._sockets))

    def disconnect(self, connection_id: str) -> None:
        if self._sockets.pop(connection_id, None) is None:
            return
        for room in self._memberships.pop(connection_id, set()):
            members = self._rooms.get(room)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self._rooms[room]
        logger.debug("WS disconnected: %s", connection_id)

    def join_room(self, connection_id: str, room: str) -> bool:
        """Subscribe a connection to a room. Returns False if it already was."""
        memberships = self._memberships.get(connection_id)
        if memberships is None or room in memberships:
            return False
        memberships.add(room)
        self._rooms.setdefault(room, set()).add(connection_id)
        return True

    def leave_room(self, connection_id: str, room: str) -> bool:
        memberships = self._memberships.get(connection_id)
        if not memberships or room not in memberships:
            return False
        memberships.discard(room)
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._rooms[room]
        return True

    def room_members(self, room: str) -> frozenset[str]:
        return frozenset(self._rooms.get(room, ()))

    async def send_to_connection(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        await self._send_many([connection_id], self._encode(event, data))

    async def send_to_room(
        self,
        room: str,
        event: str,
        data: dict[str, Any],
        *,
        exclude: str | None = None,
    ) -> None:
        """Send a WS message to every connection subscribed to a room."""
        targets = [cid for cid in self._rooms.get(room, ()) if cid != exclude]
        await self._send_many(targets, self._encode(event, data))

    async def send_to_connections(self, connection_ids: Iterable[str], event: str, data: dict[str, Any]) -> None:
        await self._send_many(connection_ids, self._encode(event, data))

    async def close(self, connection_id: str, code: int, reason: str) -> None:
        ws = self._sockets.get(connection_id)
        self.disconnect(connection_id)
        if ws is None:
            return
        try:
            await ws.close(code=code, reason=reason)
        except Exception:
            logger.debug("WS close failed for %s", connection_id, exc_info=True)

    async def close_all(self, code: int = 1001, reason: str = "server shutdown") -> None:
        for cid in list(self._sockets):
            await self.close(cid, code, reason)

    @staticmethod
    def _encode(event: str, data: dict[str, Any]) -> str:
        return WsOutbound(type=event, data=data).model_dump_json()

    async def _send_many(self, connection_ids: Iterable[str], raw: str) -> None:
        dead: list[str] = []
        for cid in connection_ids:
            ws = self._sockets.get(cid)
            if ws is None:
                continue
            try:
                await ws.send_text(raw)
            except Exception:
                dead.append(cid)
        for cid in dead:
            logger.debug("Dropping unwritable WS %s", cid)
            self.disconnect(cid)
