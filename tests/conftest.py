"""Shared test fixtures."""
from __future__ import annotations

import dataclasses
import json
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable
from uuid import UUID

import pytest

from community_chat.application.dto.chat import ChatListEntry
from community_chat.domain.addressing import conversation_id
from community_chat.domain.entities.message import Message
from community_chat.domain.entities.user import User
from community_chat.domain.value_objects.enums import MessageType
from community_chat.realtime.hub import ChatHub

T0 = datetime(2025, 9, 22, 12, 0, tzinfo=timezone.utc)


def make_user(user_id: str, name: str | None = None, *, online: bool = False) -> User:
    return User(
        id=user_id,
        display_name=name or user_id.title(),
        avatar_url=None,
        is_online=online,
        last_seen=None,
    )


def make_message(
    *,
    sender_id: str = "u1",
    receiver_id: str = "u2",
    body: str = "hello",
    created_at: datetime | None = None,
    is_read: bool = False,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        sender_id=sender_id,
        receiver_id=receiver_id,
        body=body,
        type=MessageType.TEXT,
        conversation_id=conversation_id(sender_id, receiver_id),
        attachment_url=None,
        attachment_name=None,
        created_at=created_at or datetime.now(timezone.utc),
        is_read=is_read,
    )


@dataclass
class FakeClock:
    current: datetime = T0

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    @staticmethod
    def _newest_first(items: list[Message]) -> list[Message]:
        return sorted(items, key=lambda m: m.created_at, reverse=True)

    async def get_by_id(self, message_id: UUID) -> Message | None:
        return next((m for m in self._messages if m.id == message_id), None)

    async def list_for_conversation(self, conversation_id: str, *, offset: int = 0, limit: int = 50) -> list[Message]:
        items = self._newest_first([m for m in self._messages if m.conversation_id == conversation_id])
        return items[offset:offset + limit]

    async def count_for_conversation(self, conversation_id: str) -> int:
        return sum(1 for m in self._messages if m.conversation_id == conversation_id)

    def _matches(self, user_id: str, query: str) -> list[Message]:
        return [
            m for m in self._messages
            if user_id in (m.sender_id, m.receiver_id) and m.body and query.lower() in m.body.lower()
        ]

    async def search(self, user_id: str, query: str, *, offset: int = 0, limit: int = 20) -> list[Message]:
        return self._newest_first(self._matches(user_id, query))[offset:offset + limit]

    async def count_search(self, user_id: str, query: str) -> int:
        return len(self._matches(user_id, query))

    async def chat_list(self, user_id: str) -> list[ChatListEntry]:
        latest: dict[str, Message] = {}
        unread: dict[str, int] = {}
        for m in self._newest_first(self._messages):
            if user_id not in (m.sender_id, m.receiver_id):
                continue
            other = m.receiver_id if m.sender_id == user_id else m.sender_id
            latest.setdefault(other, m)
            if m.receiver_id == user_id and not m.is_read:
                unread[other] = unread.get(other, 0) + 1
        return [
            ChatListEntry(counterpart_id=other, last_message=msg, unread_count=unread.get(other, 0))
            for other, msg in latest.items()
        ]


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader
    fail_with: Exception | None = None

    async def create(self, message: Message) -> Message:
        if self.fail_with is not None:
            raise self.fail_with
        self._reader._messages.append(message)
        return message

    def _mark(self, predicate: Callable[[Message], bool], read_at: datetime) -> list[Message]:
        updated = []
        for i, m in enumerate(self._reader._messages):
            if predicate(m) and not m.is_read:
                m = dataclasses.replace(m, is_read=True, read_at=read_at)
                self._reader._messages[i] = m
                updated.append(m)
        return updated

    async def mark_read(self, message_ids: list[UUID], reader_id: str, read_at: datetime) -> list[Message]:
        ids = set(message_ids)
        return self._mark(lambda m: m.id in ids and m.receiver_id == reader_id, read_at)

    async def mark_read_from(self, sender_id: str, reader_id: str, read_at: datetime) -> list[Message]:
        return self._mark(lambda m: m.sender_id == sender_id and m.receiver_id == reader_id, read_at)

    async def delete(self, message_id: UUID) -> None:
        self._reader._messages = [m for m in self._reader._messages if m.id != message_id]


@dataclass
class FakeUserReader:
    _users: dict[str, User] = field(default_factory=dict)

    async def get_by_id(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def get_many(self, user_ids: list[str]) -> list[User]:
        return [self._users[u] for u in user_ids if u in self._users]

    async def list_online(self) -> list[User]:
        return [u for u in self._users.values() if u.is_online]


@dataclass
class FakeUserWriter:
    _reader: FakeUserReader
    presence_log: list[tuple[str, bool]] = field(default_factory=list)
    fail_with: Exception | None = None

    async def set_presence(self, user_id: str, is_online: bool, last_seen: datetime) -> bool:
        if self.fail_with is not None:
            raise self.fail_with
        user = self._reader._users.get(user_id)
        if user is None:
            return False
        self._reader._users[user_id] = dataclasses.replace(user, is_online=is_online, last_seen=last_seen)
        self.presence_log.append((user_id, is_online))
        return True


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    users: FakeUserReader = field(default_factory=FakeUserReader)
    users_w: FakeUserWriter | None = None
    commits: int = 0

    def __post_init__(self) -> None:
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)
        if self.users_w is None:
            self.users_w = FakeUserWriter(self.users)

    def add_users(self, *users: User) -> None:
        for u in users:
            self.users._users[u.id] = u

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        pass


def uow_factory_for(uow: FakeUoW):
    @asynccontextmanager
    async def _factory() -> AsyncIterator[FakeUoW]:
        yield uow

    return _factory


@dataclass
class FakeWebSocket:
    """Records every frame the server sends."""
    frames: list[dict[str, Any]] = field(default_factory=list)
    accepted: bool = False
    closed: tuple[int, str | None] | None = None

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, raw: str) -> None:
        if self.closed is not None:
            raise RuntimeError("socket closed")
        self.frames.append(json.loads(raw))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = (code, reason)

    def events(self, event_type: str) -> list[dict[str, Any]]:
        return [f["data"] for f in self.frames if f["type"] == event_type]

    def types(self) -> list[str]:
        return [f["type"] for f in self.frames]

    def clear(self) -> None:
        self.frames.clear()


@dataclass
class FakePublisher:
    published: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    async def publish(self, room: str, event_type: str, payload: dict[str, Any]) -> None:
        self.published.append((room, event_type, payload))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def uow() -> FakeUoW:
    uow = FakeUoW()
    uow.add_users(make_user("u1", "Alice"), make_user("u2", "Bob"), make_user("u3", "Carol"))
    return uow


@pytest.fixture
def hub(uow: FakeUoW, clock: FakeClock) -> ChatHub:
    return ChatHub(uow_factory_for(uow), sweep_interval=300, inactivity=300, clock=clock)


async def open_socket(hub: ChatHub) -> tuple[str, FakeWebSocket]:
    ws = FakeWebSocket()
    connection_id = await hub.open(ws)  # type: ignore[arg-type]
    return connection_id, ws


async def send(hub: ChatHub, connection_id: str, event_type: str, data: dict[str, Any] | None = None) -> bool:
    return await hub.dispatcher.dispatch(
        connection_id, json.dumps({"type": event_type, "data": data or {}}),
    )


async def join(hub: ChatHub, user_id: str, name: str | None = None) -> tuple[str, FakeWebSocket]:
    connection_id, ws = await open_socket(hub)
    await send(hub, connection_id, "join", {"userId": user_id, "displayName": name or user_id})
    return connection_id, ws
