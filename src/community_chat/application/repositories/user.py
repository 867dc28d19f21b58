from __future__ import annotations

from datetime import datetime
from typing import Protocol

from community_chat.domain.entities.user import User


class UserReader(Protocol):
    async def get_by_id(self, user_id: str) -> User | None: ...

    async def get_many(self, user_ids: list[str]) -> list[User]: ...

    async def list_online(self) -> list[User]: ...


class UserWriter(Protocol):
    async def set_presence(self, user_id: str, is_online: bool, last_seen: datetime) -> bool:
        """Update presence flags. Returns False when the user record does not exist."""
        ...
