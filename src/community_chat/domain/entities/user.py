from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class User:
    """Subset of the user record the chat core reads and updates."""

    id: str
    display_name: str | None
    avatar_url: str | None
    is_online: bool
    last_seen: datetime | None
