"""Bridges the connection registry to the durable user directory."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

from community_chat.application.ports.clock import Clock, SystemClock
from community_chat.application.ports.emitter import EventEmitter
from community_chat.application.uow import UnitOfWorkFactory
from community_chat.domain.entities.connection import LiveConnection
from community_chat.domain.value_objects.enums import PresenceStatus
from community_chat.infrastructure.ws.protocol import OutboundEvent
from community_chat.realtime import events
from community_chat.realtime.registry import ConnectionRegistry
from community_chat.services import presence_service

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Applies presence transitions reported by the registry.

    Transitions for one user are serialized by a per-user lock. Inside the
    lock the durable flag is written from the registry's current state and
    ``userOnline``/``userOffline`` is broadcast only when that state differs
    from the last one announced, so racing connects and disconnects converge
    without duplicate or missing broadcasts.

    Presence events go to joined connections only; a socket that has not
    sent ``join`` yet receives nothing but its own replies.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        emitter: EventEmitter,
        uow_factory: UnitOfWorkFactory,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._emitter = emitter
        self._uow_factory = uow_factory
        self._clock = clock or SystemClock()
        # Last state announced per user; False also marks an explicit goOffline.
        self._announced: dict[str, bool] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._pending: dict[str, int] = {}

    def online_users(self) -> list[dict[str, Any]]:
        return [
            events.online_user(c)
            for c in self._registry.list_distinct_users()
            if self._announced.get(c.user_id, True)
        ]

    async def broadcast_online_count(self, *, exclude: str | None = None) -> None:
        users = self.online_users()
        await self._broadcast(
            OutboundEvent.ONLINE_USERS_COUNT,
            {"count": len(users), "users": users},
            exclude=exclude,
        )

    async def user_connected(self, conn: LiveConnection) -> None:
        """Call after the registry reported the user's first connection."""
        await self._sync(conn, exclude=conn.connection_id)

    async def user_disconnected(self, conn: LiveConnection, *, reason: str | None = None) -> None:
        """Call after the registry reported the user's last connection gone."""
        await self._sync(conn, reason=reason)

    async def set_status(self, conn: LiveConnection, online: bool) -> None:
        """Explicit status change; applies regardless of connection count."""
        status = PresenceStatus.ONLINE if online else PresenceStatus.OFFLINE
        async with self._guard(conn.user_id):
            now = self._clock.now()
            await self._persist(conn.user_id, online, now)
            self._announced[conn.user_id] = online
            await self._broadcast(
                OutboundEvent.USER_STATUS_CHANGED,
                {"userId": conn.user_id, "status": status, "timestamp": now},
            )
            await self._announce(conn, online, now, exclude=conn.connection_id)
            await self.broadcast_online_count()
        logger.info("%s (%s) set status %s", conn.display_name, conn.user_id, status)

    async def _sync(
        self,
        conn: LiveConnection,
        *,
        exclude: str | None = None,
        reason: str | None = None,
    ) -> None:
        user_id = conn.user_id
        async with self._guard(user_id):
            online = self._registry.is_online(user_id)
            now = self._clock.now()
            await self._persist(user_id, online, now)
            changed = self._announced.get(user_id, False) != online
            if changed:
                self._announced[user_id] = online
                await self._announce(conn, online, now, exclude=exclude, reason=reason)
            if not online:
                await self.broadcast_online_count()
        if changed:
            logger.info(
                "%s (%s) went %s%s",
                conn.display_name,
                user_id,
                "ONLINE" if online else "OFFLINE",
                f" ({reason})" if reason else "",
            )

    async def _announce(
        self,
        conn: LiveConnection,
        online: bool,
        now: datetime,
        *,
        exclude: str | None = None,
        reason: str | None = None,
    ) -> None:
        data: dict[str, Any] = {**events.user_info(conn), "timestamp": now}
        if online:
            data["status"] = PresenceStatus.ONLINE
            await self._broadcast(OutboundEvent.USER_ONLINE, data, exclude=exclude)
            return
        data["status"] = PresenceStatus.OFFLINE
        data["lastSeen"] = now
        if reason:
            data["reason"] = reason
        await self._broadcast(OutboundEvent.USER_OFFLINE, data, exclude=exclude)

    async def _broadcast(self, event: str, data: dict[str, Any], *, exclude: str | None = None) -> None:
        targets = [cid for cid in self._registry.connection_ids() if cid != exclude]
        await self._emitter.send_to_connections(targets, event, data)

    async def _persist(self, user_id: str, online: bool, now: datetime) -> None:
        try:
            async with self._uow_factory() as uow:
                await presence_service.set_presence(user_id, online, now, uow)
        except Exception:
            logger.exception("Failed to persist presence for %s", user_id)

    @asynccontextmanager
    async def _guard(self, user_id: str) -> AsyncIterator[None]:
        """Hold the user's lock; state for offline users is dropped once nobody waits on it."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._pending[user_id] = self._pending.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._pending[user_id] -= 1
            if not self._pending[user_id]:
                del self._pending[user_id]
                del self._locks[user_id]
                if not self._registry.is_online(user_id):
                    self._announced.pop(user_id, None)
