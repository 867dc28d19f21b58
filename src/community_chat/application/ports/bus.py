from __future__ import annotations

from typing import Any, Protocol


class EventPublisher(Protocol):
    """Fan-out of real-time events raised outside a socket handler."""

    async def publish(self, room: str, event_type: str, payload: dict[str, Any]) -> None: ...
