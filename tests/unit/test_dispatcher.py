from __future__ import annotations

import pytest

from tests.conftest import FakeClock, FakeUoW, join, make_message, open_socket, send


def _msg(sender: str = "u1", receiver: str = "u2", text: str = "hi", temp_id: str | None = "tmp-1") -> dict:
    return {"senderId": sender, "receiverId": receiver, "message": text, "clientTempId": temp_id}


@pytest.mark.asyncio
async def test_join_acknowledges_with_online_users(hub):
    c1, ws1 = await join(hub, "u1", "Alice")

    assert ws1.types() == ["joinSuccess", "onlineUsersCount"]
    ack = ws1.events("joinSuccess")[0]
    assert ack["userId"] == "u1"
    assert ack["connectionId"] == c1
    assert ack["totalOnline"] == 1
    assert [u["userId"] for u in ack["onlineUsers"]] == ["u1"]


@pytest.mark.asyncio
async def test_join_missing_display_name_is_rejected(hub):
    cid, ws = await open_socket(hub)

    await send(hub, cid, "join", {"userId": "u1"})

    err = ws.events("error")[0]
    assert err["code"] == "invalid_data"
    assert err["event"] == "join"
    assert cid not in hub.registry


@pytest.mark.asyncio
async def test_two_users_exchange_a_message(hub, uow: FakeUoW):
    c1, ws1 = await join(hub, "u1", "Alice")
    c2, ws2 = await join(hub, "u2", "Bob")
    await send(hub, c2, "joinRoom", {"roomId": "u1_u2"})

    assert [e["userId"] for e in ws1.events("userOnline")] == ["u2"]

    ws1.clear()
    ws2.clear()
    await send(hub, c1, "sendMessage", _msg())

    new = ws2.events("newMessage")
    assert len(new) == 1
    assert new[0]["message"] == "hi"
    assert new[0]["senderId"] == "u1"
    assert new[0]["senderInfo"]["displayName"] == "Alice"

    received = ws2.events("receiveMessage")
    assert len(received) == 1
    assert received[0]["conversationId"] == "u1_u2"
    assert received[0]["id"] == new[0]["id"]

    acks = ws1.events("messageSent")
    assert len(acks) == 1
    assert acks[0]["clientTempId"] == "tmp-1"
    assert acks[0]["messageId"] == new[0]["id"]

    stored = uow.messages._messages
    assert len(stored) == 1
    assert stored[0].is_read is False
    assert str(stored[0].id) == acks[0]["messageId"]


@pytest.mark.asyncio
async def test_send_message_missing_receiver(hub, uow: FakeUoW):
    c1, ws1 = await join(hub, "u1")

    await send(hub, c1, "sendMessage", {"senderId": "u1", "message": "hi", "clientTempId": 7})

    errors = ws1.events("messageError")
    assert len(errors) == 1
    assert errors[0]["clientTempId"] == 7
    assert "receiverId" in errors[0]["error"]
    assert uow.messages._messages == []


@pytest.mark.asyncio
async def test_send_message_without_content(hub, uow: FakeUoW):
    c1, ws1 = await join(hub, "u1")

    await send(hub, c1, "sendMessage", {"senderId": "u1", "receiverId": "u2", "clientTempId": "x"})

    assert ws1.events("messageError")[0]["clientTempId"] == "x"
    assert uow.messages._messages == []


@pytest.mark.asyncio
async def test_send_message_before_join(hub, uow: FakeUoW):
    cid, ws = await open_socket(hub)

    await send(hub, cid, "sendMessage", _msg())

    assert ws.events("messageError")[0]["clientTempId"] == "tmp-1"
    assert uow.messages._messages == []


@pytest.mark.asyncio
async def test_send_message_as_someone_else(hub, uow: FakeUoW):
    c1, ws1 = await join(hub, "u1")

    await send(hub, c1, "sendMessage", _msg(sender="u3"))

    assert len(ws1.events("messageError")) == 1
    assert uow.messages._messages == []


@pytest.mark.asyncio
async def test_persistence_failure_is_reported_without_broadcast(hub, uow: FakeUoW):
    uow.messages_w.fail_with = RuntimeError("database unavailable")
    c1, ws1 = await join(hub, "u1")
    _, ws2 = await join(hub, "u2")
    ws2.clear()

    await send(hub, c1, "sendMessage", _msg())

    err = ws1.events("messageError")[0]
    assert err["clientTempId"] == "tmp-1"
    assert err["details"] == "database unavailable"
    assert ws1.events("messageSent") == []
    assert ws2.events("newMessage") == []


@pytest.mark.asyncio
async def test_join_room_twice(hub):
    c1, ws1 = await join(hub, "u1")
    c2, ws2 = await join(hub, "u2")
    await send(hub, c1, "joinRoom", {"roomId": "u1_u2"})
    ws1.clear()

    await send(hub, c2, "joinRoom", {"roomId": "u1_u2"})
    await send(hub, c2, "joinRoom", {"roomId": "u1_u2"})

    assert len(ws1.events("userJoinedRoom")) == 2
    assert len(ws2.events("roomJoined")) == 2
    assert ws2.events("userJoinedRoom") == []
    assert hub.manager.room_members("u1_u2") == frozenset({c1, c2})
    assert hub.registry.get(c2).current_room == "u1_u2"


@pytest.mark.asyncio
async def test_join_room_requires_join(hub):
    cid, ws = await open_socket(hub)

    await send(hub, cid, "joinRoom", {"roomId": "u1_u2"})

    assert ws.events("error")[0]["code"] == "not_joined"
    assert hub.manager.room_members("u1_u2") == frozenset()


@pytest.mark.asyncio
async def test_join_room_missing_room_id(hub):
    c1, ws1 = await join(hub, "u1")

    await send(hub, c1, "joinRoom", {})

    assert ws1.events("error")[0]["code"] == "invalid_data"


@pytest.mark.asyncio
async def test_cannot_join_another_users_personal_channel(hub):
    c1, ws1 = await join(hub, "u1")

    await send(hub, c1, "joinRoom", {"roomId": "user_u2"})

    assert ws1.events("error")[0]["code"] == "reserved_room"
    assert c1 not in hub.manager.room_members("user_u2")


@pytest.mark.asyncio
async def test_leave_room_notifies_remaining_members(hub):
    c1, ws1 = await join(hub, "u1")
    c2, _ = await join(hub, "u2")
    await send(hub, c1, "joinRoom", {"roomId": "u1_u2"})
    await send(hub, c2, "joinRoom", {"roomId": "u1_u2"})
    ws1.clear()

    await send(hub, c2, "leaveRoom", {})
    await send(hub, c2, "leaveRoom", {"roomId": "u1_u2"})

    left = ws1.events("userLeftRoom")
    assert len(left) == 1
    assert left[0]["userId"] == "u2"
    assert hub.manager.room_members("u1_u2") == frozenset({c1})
    assert hub.registry.get(c2).current_room is None


@pytest.mark.asyncio
async def test_typing_reaches_receiver_personal_channel(hub):
    c1, _ = await join(hub, "u1", "Alice")
    _, ws2 = await join(hub, "u2")
    ws2.clear()

    await send(hub, c1, "typing", {"receiverId": "u2", "isTyping": True})
    await send(hub, c1, "typing", {"isTyping": True})

    typing = ws2.events("userTyping")
    assert len(typing) == 1
    assert typing[0]["senderId"] == "u1"
    assert typing[0]["isTyping"] is True


@pytest.mark.asyncio
async def test_message_read_notifies_sender(hub, uow: FakeUoW):
    _, ws1 = await join(hub, "u1")
    c2, ws2 = await join(hub, "u2")
    msg = make_message(sender_id="u1", receiver_id="u2")
    uow.messages._messages.append(msg)
    ws1.clear()

    await send(hub, c2, "messageRead", {"messageId": str(msg.id), "senderId": "u1"})

    receipts = ws1.events("messageReadReceipt")
    assert len(receipts) == 1
    assert receipts[0]["messageId"] == str(msg.id)
    assert receipts[0]["readBy"] == "u2"
    assert uow.messages._messages[0].is_read is True
    assert ws2.events("messageReadReceipt") == []


@pytest.mark.asyncio
async def test_batch_message_read(hub, uow: FakeUoW):
    _, ws1 = await join(hub, "u1")
    c2, _ = await join(hub, "u2")
    msgs = [make_message(sender_id="u1", receiver_id="u2") for _ in range(3)]
    uow.messages._messages += msgs
    ws1.clear()

    await send(hub, c2, "messageRead", {"messageIds": [str(m.id) for m in msgs[:2]]})

    receipts = ws1.events("messagesReadReceipt")
    assert len(receipts) == 1
    assert receipts[0]["messageIds"] == [str(m.id) for m in msgs[:2]]
    assert [m.is_read for m in uow.messages._messages] == [True, True, False]


@pytest.mark.asyncio
async def test_message_read_ignores_messages_for_others(hub, uow: FakeUoW):
    _, ws1 = await join(hub, "u1")
    c3, _ = await join(hub, "u3")
    msg = make_message(sender_id="u1", receiver_id="u2")
    uow.messages._messages.append(msg)
    ws1.clear()

    await send(hub, c3, "messageRead", {"messageId": str(msg.id)})

    assert ws1.events("messageReadReceipt") == []
    assert uow.messages._messages[0].is_read is False


@pytest.mark.asyncio
async def test_ping_refreshes_activity(hub, clock: FakeClock):
    c1, ws1 = await join(hub, "u1")
    clock.advance(120)

    await send(hub, c1, "ping")

    assert len(ws1.events("pong")) == 1
    assert hub.registry.get(c1).last_activity == clock.now()


@pytest.mark.asyncio
async def test_get_online_users(hub):
    c1, ws1 = await join(hub, "u1")
    await join(hub, "u2")

    await send(hub, c1, "getOnlineUsers")

    listing = ws1.events("onlineUsersList")[0]
    assert listing["count"] == 2
    assert {u["userId"] for u in listing["users"]} == {"u1", "u2"}


@pytest.mark.asyncio
async def test_unknown_event(hub):
    cid, ws = await open_socket(hub)

    assert await send(hub, cid, "selfDestruct") is True

    assert ws.events("error")[0]["code"] == "unknown_event"


@pytest.mark.asyncio
async def test_malformed_frame(hub):
    cid, ws = await open_socket(hub)

    assert await hub.dispatcher.dispatch(cid, "not json") is True

    assert ws.events("error")[0]["code"] == "invalid_payload"


@pytest.mark.asyncio
async def test_disconnect_event_ends_the_session(hub):
    c1, _ = await join(hub, "u1")

    assert await send(hub, c1, "disconnect") is False


@pytest.mark.asyncio
async def test_handler_failure_becomes_error_event(hub, monkeypatch):
    c1, ws1 = await join(hub, "u1")

    def _boom():
        raise RuntimeError("boom")

    monkeypatch.setattr(hub.presence, "online_users", _boom)
    await send(hub, c1, "getOnlineUsers")

    assert ws1.events("error")[0]["code"] == "internal_error"


@pytest.mark.asyncio
async def test_rejoin_as_different_user_moves_presence(hub):
    _, observer = await join(hub, "u3")
    c1, _ = await join(hub, "u1")
    observer.clear()

    await send(hub, c1, "join", {"userId": "u2", "displayName": "Bob"})

    assert [e["userId"] for e in observer.events("userOffline")] == ["u1"]
    assert [e["userId"] for e in observer.events("userOnline")] == ["u2"]
    assert not hub.registry.is_online("u1")
    assert c1 in hub.manager.room_members("user_u2")
    assert c1 not in hub.manager.room_members("user_u1")


@pytest.mark.asyncio
async def test_message_read_with_id_and_empty_list_is_single(hub, uow: FakeUoW):
    _, ws1 = await join(hub, "u1")
    c2, _ = await join(hub, "u2")
    msg = make_message(sender_id="u1", receiver_id="u2")
    uow.messages._messages.append(msg)
    ws1.clear()

    await send(hub, c2, "messageRead", {"messageId": str(msg.id), "messageIds": [], "senderId": "u1"})

    assert uow.messages._messages[0].is_read is True
    assert ws1.events("messageReadReceipt")[0]["messageId"] == str(msg.id)
    assert ws1.events("messagesReadReceipt") == []


@pytest.mark.asyncio
async def test_server_timestamps_follow_clock(hub, uow: FakeUoW, clock: FakeClock):
    c1, _ = await join(hub, "u1")
    c2, _ = await join(hub, "u2")
    await send(hub, c1, "sendMessage", _msg())
    sent_at = clock.now()
    clock.advance(30)

    await send(hub, c2, "messageRead", {"messageId": str(uow.messages._messages[0].id)})

    stored = uow.messages._messages[0]
    assert stored.created_at == sent_at
    assert stored.read_at == clock.now()
