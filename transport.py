import asyncio
import json
import uuid
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from constants import OUTBOX_SIZE
from logging_config import get_logger

logger = get_logger(__name__)


class Connection:
    """A live WebSocket plus its outbound queue and writer task."""

    def __init__(self, connection_id: str, websocket: WebSocket, outbox_size: int = OUTBOX_SIZE):
        self.connection_id = connection_id
        self.websocket = websocket
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self.rooms: Set[str] = set()
        self.writer_task: Optional[asyncio.Task] = None

    async def writer(self):
        """Drain the outbox into the socket until a ``None`` sentinel arrives."""
        while True:
            text = await self.outbox.get()
            if text is None:
                break
            try:
                await self.websocket.send_text(text)
            except Exception as e:
                logger.warning(f"Error sending to connection {self.connection_id}: {e}")
                break


class ConnectionManager:
    """
    In-process registry of connections and named groups (rooms).

    ``send`` and ``broadcast`` never await: frames are queued and written by
    each connection's writer task, so callers can use them from synchronous
    handlers. Delivery is best effort; frames for unknown or saturated
    connections are dropped.
    """

    def __init__(self, outbox_size: int = OUTBOX_SIZE):
        self.outbox_size = outbox_size
        # Format: {connection_id: Connection}
        self.connections: Dict[str, Connection] = {}
        # Format: {room: {connection_id, ...}}
        self.rooms: Dict[str, Set[str]] = {}

    def __len__(self) -> int:
        return len(self.connections)

    @staticmethod
    def new_connection_id() -> str:
        return uuid.uuid4().hex

    def register(self, websocket: WebSocket, connection_id: Optional[str] = None) -> Connection:
        connection_id = connection_id or self.new_connection_id()
        connection = Connection(connection_id, websocket, self.outbox_size)
        connection.writer_task = asyncio.create_task(connection.writer())
        self.connections[connection_id] = connection
        logger.debug(f"Registered connection {connection_id} (total: {len(self.connections)})")
        return connection

    async def unregister(self, connection_id: str):
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return

        for room in list(connection.rooms):
            self.leave(connection_id, room)

        # Let the writer flush what is already queued, then stop it
        task = connection.writer_task
        if task and not task.done():
            try:
                connection.outbox.put_nowait(None)
            except asyncio.QueueFull:
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug(f"Unregistered connection {connection_id} (total: {len(self.connections)})")

    def join(self, connection_id: str, room: str) -> None:
        connection = self.connections.get(connection_id)
        if connection is None:
            logger.debug(f"Ignoring join of unknown connection {connection_id} to room {room}")
            return
        self.rooms.setdefault(room, set()).add(connection_id)
        connection.rooms.add(room)
        logger.debug(f"Connection {connection_id} joined room {room} (members: {len(self.rooms[room])})")

    def leave(self, connection_id: str, room: str) -> None:
        members = self.rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self.rooms[room]
        connection = self.connections.get(connection_id)
        if connection is not None:
            connection.rooms.discard(room)

    def close_room(self, room: str) -> None:
        for connection_id in self.rooms.pop(room, set()):
            connection = self.connections.get(connection_id)
            if connection is not None:
                connection.rooms.discard(room)
        logger.debug(f"Closed room {room}")

    def members(self, room: str) -> Set[str]:
        return set(self.rooms.get(room, set()))

    def send(self, connection_id: str, event: str, data: Any = None, ack: Optional[int] = None) -> bool:
        connection = self.connections.get(connection_id)
        if connection is None:
            logger.debug(f"Dropping {event} for unknown connection {connection_id}")
            return False

        frame = {"event": event}
        if data is not None:
            frame["data"] = data
        if ack is not None:
            frame["ack"] = ack
        text = json.dumps(frame)
        try:
            connection.outbox.put_nowait(text)
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for connection {connection_id}, dropping {event}")
            return False
        return True

    def broadcast(self, room: str, event: str, data: Any = None, exclude: Optional[str] = None) -> int:
        delivered = 0
        for connection_id in self.members(room):
            if connection_id == exclude:
                continue
            if self.send(connection_id, event, data):
                delivered += 1
        return delivered
