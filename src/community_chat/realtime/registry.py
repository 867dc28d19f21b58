"""In-memory registry of live connections and the users they belong to.

The registry is the single source of truth for presence: a user is online
iff at least one connection is registered for them. Every mutating method
is synchronous, so on an asyncio event loop each mutation and the
transition it reports (first connection / last connection) happen
atomically with respect to other tasks.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from community_chat.application.ports.clock import Clock, SystemClock
from community_chat.domain.entities.connection import LiveConnection


@dataclass(frozen=True, slots=True)
class Registration:
    connection: LiveConnection
    first_for_user: bool
    # Set when the connection id was previously joined as a different user.
    replaced: LiveConnection | None = None
    replaced_owner_emptied: bool = False


@dataclass(frozen=True, slots=True)
class Removal:
    connection: LiveConnection
    owner_emptied: bool


class ConnectionRegistry:
    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._connections: dict[str, LiveConnection] = {}
        self._by_user: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def register(
        self,
        connection_id: str,
        user_id: str,
        display_name: str,
        avatar: str | None = None,
    ) -> Registration:
        """Insert or overwrite the record for ``connection_id``."""
        now = self._clock.now()
        previous = self._connections.get(connection_id)
        replaced: LiveConnection | None = None
        replaced_emptied = False
        if previous is not None and previous.user_id != user_id:
            replaced = previous
            replaced_emptied = self._detach(previous)
            previous = None

        sockets = self._by_user.setdefault(user_id, set())
        first = not sockets
        sockets.add(connection_id)

        conn = LiveConnection(
            connection_id=connection_id,
            user_id=user_id,
            display_name=display_name,
            avatar=avatar,
            joined_at=previous.joined_at if previous else now,
            last_activity=now,
            current_room=previous.current_room if previous else None,
        )
        self._connections[connection_id] = conn
        return Registration(
            connection=conn,
            first_for_user=first,
            replaced=replaced,
            replaced_owner_emptied=replaced_emptied,
        )

    def unregister(self, connection_id: str) -> Removal | None:
        conn = self._connections.get(connection_id)
        if conn is None:
            return None
        emptied = self._detach(conn)
        return Removal(connection=conn, owner_emptied=emptied)

    def touch(self, connection_id: str) -> bool:
        conn = self._connections.get(connection_id)
        if conn is None:
            return False
        conn.last_activity = self._clock.now()
        return True

    def set_room(self, connection_id: str, room: str | None) -> None:
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.current_room = room

    def connection_ids(self) -> list[str]:
        return list(self._connections)

    def get(self, connection_id: str) -> LiveConnection | None:
        return self._connections.get(connection_id)

    def connections_for(self, user_id: str) -> frozenset[str]:
        return frozenset(self._by_user.get(user_id, ()))

    def is_online(self, user_id: str) -> bool:
        return bool(self._by_user.get(user_id))

    def count_distinct_users(self) -> int:
        return len(self._by_user)

    def list_distinct_users(self) -> list[LiveConnection]:
        """One record per online user (their earliest connection), oldest first."""
        earliest: dict[str, LiveConnection] = {}
        for conn in self._connections.values():
            seen = earliest.get(conn.user_id)
            if seen is None or conn.joined_at < seen.joined_at:
                earliest[conn.user_id] = conn
        return sorted(earliest.values(), key=lambda c: (c.joined_at, c.user_id))

    def stale(self, inactivity: timedelta) -> list[LiveConnection]:
        cutoff = self._clock.now() - inactivity
        return [c for c in self._connections.values() if c.last_activity < cutoff]

    def _detach(self, conn: LiveConnection) -> bool:
        del self._connections[conn.connection_id]
        sockets = self._by_user.get(conn.user_id)
        if sockets is None:
            return True
        sockets.discard(conn.connection_id)
        if sockets:
            return False
        del self._by_user[conn.user_id]
        return True
