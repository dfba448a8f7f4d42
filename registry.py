import secrets
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from constants import (
    MAX_ID_ATTEMPTS,
    SECRET_DIGITS,
    SECRET_LENGTH,
    SECRET_LETTERS,
    SESSION_ID_MAX,
    SESSION_ID_MIN,
)
from logging_config import get_logger

logger = get_logger(__name__)


class SessionAllocationError(RuntimeError):
    """Raised when no free session id could be found within the retry bound."""


@dataclass(frozen=True)
class Session:
    session_id: str
    secret: str
    host_connection_id: str


def generate_session_id() -> str:
    return str(SESSION_ID_MIN + secrets.randbelow(SESSION_ID_MAX - SESSION_ID_MIN + 1))


def shuffle(chars: List[str]) -> List[str]:
    """Fisher-Yates shuffle in place, driven by the OS CSPRNG."""
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]
    return chars


def generate_secret(length: int = SECRET_LENGTH) -> str:
    """Random lowercase alphanumeric secret with at least one letter and one digit."""
    alphabet = SECRET_LETTERS + SECRET_DIGITS
    chars = [secrets.choice(SECRET_LETTERS), secrets.choice(SECRET_DIGITS)]
    chars.extend(secrets.choice(alphabet) for _ in range(length - 2))
    return "".join(shuffle(chars))


class SessionRegistry:
    """
    In-memory map of active sessions.

    One instance is created per application and handed to the router; tests
    build their own. Every session belongs to exactly one live host connection.
    """

    def __init__(self, max_attempts: int = MAX_ID_ATTEMPTS):
        self.max_attempts = max_attempts
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id) -> bool:
        return session_id in self._sessions

    def _allocate_id(self) -> str:
        for attempt in range(1, self.max_attempts + 1):
            session_id = generate_session_id()
            if session_id not in self._sessions:
                if attempt > 1:
                    logger.debug(f"Session id allocated after {attempt} attempts")
                return session_id
        raise SessionAllocationError(
            f"Could not allocate a free session id after {self.max_attempts} attempts"
        )

    def create_session(self, host_connection_id: str) -> Session:
        secret = generate_secret()
        with self._lock:
            session = Session(
                session_id=self._allocate_id(),
                secret=secret,
                host_connection_id=host_connection_id,
            )
            self._sessions[session.session_id] = session
        logger.info(f"Session {session.session_id} created for host {host_connection_id}")
        return session

    def lookup(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def remove_by_host_connection(self, connection_id: str) -> Optional[str]:
        with self._lock:
            for session_id, session in self._sessions.items():
                if session.host_connection_id == connection_id:
                    del self._sessions[session_id]
                    logger.info(f"Session {session_id} removed (host {connection_id})")
                    return session_id
        return None

    def active_ids(self) -> List[str]:
        return list(self._sessions)
