from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    sender_id: str
    receiver_id: str
    body: str | None
    type: str
    conversation_id: str
    attachment_url: str | None
    attachment_name: str | None
    created_at: datetime
    is_read: bool = False
    read_at: datetime | None = None
