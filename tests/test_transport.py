import asyncio
import json

from transport import ConnectionManager


class RecordingWebSocket:
    def __init__(self):
        self.sent = []

    async def send_text(self, text):
        self.sent.append(json.loads(text))


def run(coro):
    return asyncio.run(coro)


def test_send_is_written_by_writer_task():
    async def scenario():
        manager = ConnectionManager()
        ws = RecordingWebSocket()
        connection = manager.register(ws, "a")

        assert manager.send("a", "hello", {"x": 1}) is True
        assert manager.send("a", "ack", {"ok": True}, ack=4) is True
        await manager.unregister("a")

        assert connection.writer_task.done()
        return ws.sent

    assert run(scenario()) == [
        {"event": "hello", "data": {"x": 1}},
        {"event": "ack", "data": {"ok": True}, "ack": 4},
    ]


def test_send_to_unknown_connection_is_dropped():
    manager = ConnectionManager()
    assert manager.send("missing", "hello") is False


def test_broadcast_excludes_sender_and_non_members():
    async def scenario():
        manager = ConnectionManager()
        sockets = {cid: RecordingWebSocket() for cid in ("a", "b", "c", "d")}
        for cid, ws in sockets.items():
            manager.register(ws, cid)
        for cid in ("a", "b", "c"):
            manager.join(cid, "room")

        count = manager.broadcast("room", "signal", {"n": 1}, exclude="a")
        for cid in list(sockets):
            await manager.unregister(cid)
        return count, sockets

    count, sockets = run(scenario())
    assert count == 2
    assert sockets["a"].sent == []
    assert sockets["b"].sent == [{"event": "signal", "data": {"n": 1}}]
    assert sockets["c"].sent == [{"event": "signal", "data": {"n": 1}}]
    assert sockets["d"].sent == []


def test_unregister_leaves_all_rooms():
    async def scenario():
        manager = ConnectionManager()
        manager.register(RecordingWebSocket(), "a")
        manager.register(RecordingWebSocket(), "b")
        manager.join("a", "r1")
        manager.join("a", "r2")
        manager.join("b", "r2")

        await manager.unregister("a")
        rooms = {room: set(members) for room, members in manager.rooms.items()}
        await manager.unregister("b")
        return rooms, manager

    rooms, manager = run(scenario())
    assert rooms == {"r2": {"b"}}
    assert manager.rooms == {}
    assert len(manager) == 0


def test_close_room_drops_membership():
    async def scenario():
        manager = ConnectionManager()
        manager.register(RecordingWebSocket(), "a")
        manager.join("a", "room")
        manager.close_room("room")
        members = manager.members("room")
        rooms_of_a = set(manager.connections["a"].rooms)
        await manager.unregister("a")
        return members, rooms_of_a

    assert run(scenario()) == (set(), set())


def test_full_outbox_drops_frames():
    async def scenario():
        manager = ConnectionManager(outbox_size=1)
        manager.register(RecordingWebSocket(), "a")
        # Writer has not run yet, so the single slot fills up
        first = manager.send("a", "one")
        second = manager.send("a", "two")
        await manager.unregister("a")
        return first, second

    assert run(scenario()) == (True, False)
