from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class LiveConnection:
    """One joined transport session. Never persisted."""

    connection_id: str
    user_id: str
    display_name: str
    avatar: str | None
    joined_at: datetime
    last_activity: datetime
    current_room: str | None = None
