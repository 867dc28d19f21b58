"""Room and conversation addressing.

A conversation between two users is addressed by the pair's identifiers
sorted lexicographically and joined with ``ROOM_SEPARATOR``. The same value
names the live broadcast room and groups persisted messages, so history
queries and live delivery always agree.
"""
from __future__ import annotations

ROOM_SEPARATOR = "_"
PERSONAL_CHANNEL_PREFIX = "user_"


def conversation_id(user_a: str, user_b: str) -> str:
    return ROOM_SEPARATOR.join(sorted((user_a, user_b)))


def personal_channel(user_id: str) -> str:
    """Room every connection of ``user_id`` is subscribed to after ``join``."""
    return f"{PERSONAL_CHANNEL_PREFIX}{user_id}"


def is_personal_channel(room_id: str) -> bool:
    return room_id.startswith(PERSONAL_CHANNEL_PREFIX)
