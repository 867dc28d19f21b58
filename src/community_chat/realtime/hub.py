"""Composition root of the real-time subsystem."""
from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import WebSocket

from community_chat.application.ports.clock import Clock, SystemClock
from community_chat.application.uow import UnitOfWorkFactory
from community_chat.infrastructure.ws.manager import ConnectionManager
from community_chat.realtime.dispatcher import EventDispatcher
from community_chat.realtime.presence import PresenceTracker
from community_chat.realtime.registry import ConnectionRegistry
from community_chat.realtime.sweeper import InactivitySweeper

logger = logging.getLogger(__name__)


class ChatHub:
    """Owns the registry, transport manager, presence tracker, dispatcher and sweeper.

    Built once per application; ``start``/``stop`` bracket the sweeper task.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        sweep_interval: float,
        inactivity: float,
        clock: Clock | None = None,
    ) -> None:
        clock = clock or SystemClock()
        self.registry = ConnectionRegistry(clock)
        self.manager = ConnectionManager()
        self.presence = PresenceTracker(self.registry, self.manager, uow_factory, clock)
        self.dispatcher = EventDispatcher(
            self.registry, self.manager, self.presence, uow_factory, clock,
        )
        self.sweeper = InactivitySweeper(
            self.registry, self.dispatcher, interval=sweep_interval, inactivity=inactivity,
        )

    async def start(self) -> None:
        await self.sweeper.start()

    async def stop(self) -> None:
        await self.sweeper.stop()
        await self.manager.close_all()
        # Persist the offline transition for everyone still registered.
        for connection_id in self.registry.connection_ids():
            await self.dispatcher.handle_disconnect(connection_id, reason="shutdown")

    async def open(self, websocket: WebSocket) -> str:
        connection_id = uuid.uuid4().hex
        await self.manager.connect(websocket, connection_id)
        return connection_id

    async def close(self, connection_id: str) -> None:
        # Drop the socket first so nothing is sent to a closed connection.
        self.manager.disconnect(connection_id)
        await self.dispatcher.handle_disconnect(connection_id)

    async def relay(self, room: str, event_type: str, data: dict[str, Any]) -> None:
        """Deliver a fan-out bus event to local subscribers of ``room``."""
        logger.debug("Relaying %s to room %s", event_type, room)
        await self.manager.send_to_room(room, event_type, data)
