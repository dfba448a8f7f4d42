"""
Signal routing between hosts and clients.

The router is transport agnostic: it only needs something that can send an
event to one connection, broadcast to a named group and manage group
membership (see ``transport.ConnectionManager``). All handlers are plain
synchronous methods that run to completion without awaiting, so registry
check-then-act sequences are never interleaved with other events.
"""
from typing import Any, Optional, Protocol

from logging_config import get_logger
from registry import SessionRegistry
from schemas.events import (
    CLIENT_CONNECTED,
    HOST_CREDENTIALS,
    HOST_DISCONNECTED,
    SIGNAL,
    ClientConnected,
    HostCredentials,
    VerifyResult,
)

logger = get_logger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid ID or Password"


class Transport(Protocol):
    def send(self, connection_id: str, event: str, data: Any = None) -> bool: ...

    def broadcast(self, room: str, event: str, data: Any = None, exclude: Optional[str] = None) -> int: ...

    def join(self, connection_id: str, room: str) -> None: ...

    def leave(self, connection_id: str, room: str) -> None: ...

    def close_room(self, room: str) -> None: ...


class SignalRouter:
    def __init__(self, registry: SessionRegistry, transport: Transport):
        self.registry = registry
        self.transport = transport

    def handle_host_request(self, connection_id: str) -> HostCredentials:
        """Register the connection as host of a fresh session and send it the credentials.

        A connection hosts at most one session; asking again tears down the
        previous session first.
        """
        self._end_session(connection_id)

        session = self.registry.create_session(connection_id)
        self.transport.join(connection_id, session.session_id)

        credentials = HostCredentials(session_id=session.session_id, secret=session.secret)
        self.transport.send(connection_id, HOST_CREDENTIALS, credentials.model_dump(by_alias=True))
        logger.info(f"Host registered - ID: {session.session_id}, connection: {connection_id}")
        return credentials

    def handle_verify(self, connection_id: str, session_id: str, secret: str) -> VerifyResult:
        session = self.registry.lookup(session_id)

        # Unknown id and wrong secret must be indistinguishable to the caller
        if session is None or session.secret != secret:
            logger.warning(f"Failed connection attempt for host {session_id} from {connection_id}")
            return VerifyResult(success=False, message=INVALID_CREDENTIALS_MESSAGE)

        self.transport.join(connection_id, session.session_id)
        self.transport.send(
            session.host_connection_id,
            CLIENT_CONNECTED,
            ClientConnected(caller_id=connection_id).model_dump(by_alias=True),
        )
        logger.info(f"Client {connection_id} verified for host {session.session_id}")
        return VerifyResult(success=True)

    def handle_signal(self, connection_id: str, envelope: Any) -> None:
        if not isinstance(envelope, dict):
            logger.debug(f"Dropping non-object signal from {connection_id}")
            return

        # Never trust a sender-supplied "from"
        message = dict(envelope)
        message["from"] = connection_id

        to = message.get("to")
        if to:
            if str(to) == connection_id:
                logger.debug(f"Dropping signal addressed to its own sender {connection_id}")
                return
            delivered = self.transport.send(str(to), SIGNAL, message)
            logger.debug(f"Signal {connection_id} -> {to} (delivered={delivered})")
            return

        room = message.get("room")
        if room is None or room == "":
            # Neither "to" nor "room": nothing to route to
            logger.debug(f"Dropping unaddressed signal from {connection_id}")
            return

        count = self.transport.broadcast(str(room), SIGNAL, message, exclude=connection_id)
        logger.debug(f"Signal {connection_id} -> room {room} ({count} recipients)")

    def handle_release(self, connection_id: str) -> bool:
        """Explicitly end the session hosted by this connection, keeping the connection open."""
        return self._end_session(connection_id) is not None

    def handle_disconnect(self, connection_id: str) -> Optional[str]:
        session_id = self._end_session(connection_id)
        if session_id is None:
            logger.debug(f"Connection {connection_id} disconnected (not a host)")
        return session_id

    def _end_session(self, connection_id: str) -> Optional[str]:
        session_id = self.registry.remove_by_host_connection(connection_id)
        if session_id is None:
            return None

        self.transport.leave(connection_id, session_id)
        notified = self.transport.broadcast(
            session_id, HOST_DISCONNECTED, {"id": session_id}, exclude=connection_id
        )
        # Remaining clients must not receive traffic of a later session reusing this id
        self.transport.close_room(session_id)
        logger.info(f"Host {session_id} session removed, notified {notified} client(s)")
        return session_id
