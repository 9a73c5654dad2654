"""
Connection hub tests.
"""
from conftest import FakeWebSocket


class BrokenWebSocket:
    async def send_text(self, data):
        raise RuntimeError("socket closed")


async def test_emit_to_room_excludes_sender(hub):
    a, b, outsider = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
    a_id, b_id, o_id = hub.register(a), hub.register(b), hub.register(outsider)
    hub.join(a_id, "room")
    hub.join(b_id, "room")

    await hub.emit_to_room("room", "newMessage", {"message": "hi"}, exclude=b_id)

    assert a.sent == [{"event": "newMessage", "data": {"message": "hi"}}]
    assert b.sent == []
    assert outsider.sent == []


async def test_emit_to_connection(hub):
    ws = FakeWebSocket()
    connection_id = hub.register(ws)

    await hub.emit_to_connection(connection_id, "systemMessage", "Room is full.")
    await hub.emit_to_connection("unknown", "systemMessage", "dropped")

    assert ws.sent == [{"event": "systemMessage", "data": "Room is full."}]


async def test_failed_send_does_not_block_others(hub):
    good = FakeWebSocket()
    good_id, bad_id = hub.register(good), hub.register(BrokenWebSocket())
    hub.join(good_id, "room")
    hub.join(bad_id, "room")

    await hub.emit_to_room("room", "showTyping")

    assert good.sent == [{"event": "showTyping", "data": None}]


def test_join_leave_and_members(hub):
    hub.join("a", "room")
    hub.join("a", "room")
    hub.join("b", "room")
    assert hub.members_of("room") == {"a", "b"}

    members = hub.members_of("room")
    members.add("c")
    assert hub.members_of("room") == {"a", "b"}

    hub.leave("a", "room")
    hub.leave("b", "room")
    assert hub.members_of("room") == set()
    assert "room" not in hub.groups


def test_unregister_leaves_every_group(hub):
    connection_id = hub.register(FakeWebSocket())
    hub.join(connection_id, "one")
    hub.join(connection_id, "two")
    hub.join("other", "two")

    hub.unregister(connection_id)

    assert connection_id not in hub.connections
    assert hub.members_of("one") == set()
    assert hub.members_of("two") == {"other"}


def test_leave_room_detaches_all(hub):
    hub.join("a", "room")
    hub.join("b", "room")

    assert hub.leave_room("room") == {"a", "b"}
    assert hub.members_of("room") == set()
    assert hub.leave_room("room") == set()
