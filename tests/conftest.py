import pytest
from fastapi.testclient import TestClient

from app import create_app
from registry import SessionRegistry
from signaling import SignalRouter


class FakeTransport:
    """Records deliveries instead of writing to sockets."""

    def __init__(self, connections=()):
        self.connections = set(connections)
        self.rooms = {}
        # (connection_id, event, data) per delivered frame
        self.delivered = []

    def connect(self, connection_id):
        self.connections.add(connection_id)

    def disconnect(self, connection_id):
        self.connections.discard(connection_id)
        for members in self.rooms.values():
            members.discard(connection_id)

    def send(self, connection_id, event, data=None):
        if connection_id not in self.connections:
            return False
        self.delivered.append((connection_id, event, data))
        return True

    def broadcast(self, room, event, data=None, exclude=None):
        count = 0
        for connection_id in sorted(self.rooms.get(room, set())):
            if connection_id != exclude and self.send(connection_id, event, data):
                count += 1
        return count

    def join(self, connection_id, room):
        self.rooms.setdefault(room, set()).add(connection_id)

    def leave(self, connection_id, room):
        self.rooms.get(room, set()).discard(connection_id)

    def close_room(self, room):
        self.rooms.pop(room, None)

    def members(self, room):
        return set(self.rooms.get(room, set()))

    def events_for(self, connection_id, event=None):
        return [
            data for (cid, ev, data) in self.delivered
            if cid == connection_id and (event is None or ev == event)
        ]


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def transport():
    return FakeTransport(connections={"host", "client", "client2", "stranger"})


@pytest.fixture
def router(registry, transport):
    return SignalRouter(registry, transport)


@pytest.fixture
def client():
    with TestClient(create_app()) as test_client:
        yield test_client
