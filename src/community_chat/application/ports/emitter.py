from __future__ import annotations

from typing import Any, Iterable, Protocol


class EventEmitter(Protocol):
    """Outbound side of the real-time channel.

    Rooms are broadcast groups of connection ids. Every send is
    fire-and-forget: a connection that cannot be written to is dropped
    by the implementation and never raises into the caller.
    """

    async def send_to_connection(self, connection_id: str, event: str, data: dict[str, Any]) -> None: ...

    async def send_to_room(
        self,
        room: str,
        event: str,
        data: dict[str, Any],
        *,
        exclude: str | None = None,
    ) -> None: ...

    async def send_to_connections(self, connection_ids: Iterable[str], event: str, data: dict[str, Any]) -> None: ...

    def join_room(self, connection_id: str, room: str) -> bool: ...

    def leave_room(self, connection_id: str, room: str) -> bool: ...

    async def close(self, connection_id: str, code: int, reason: str) -> None: ...
