"""In-memory registry of authenticated connections."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, NamedTuple

from app.backend.models.users import Identity, utcnow
from app.backend.services.connections import Connection
from app.common.logging import json_log

logger = logging.getLogger(__name__)


class DuplicateIdentityError(RuntimeError):
    """Raised when a registration would leave two sessions for one identity."""


@dataclass
class Session:
    """The live binding between one connection and one identity."""

    connection: Connection
    identity: Identity
    last_activity: datetime = field(default_factory=utcnow)

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id

    def touch(self) -> None:
        self.last_activity = utcnow()


class Registration(NamedTuple):
    session: Session
    evicted: Session | None


class SessionRegistry:
    """Authoritative map of connection id to :class:`Session`.

    At most one session exists per identity id. Every method is synchronous,
    so a mutation is never interleaved with another event handler.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def register(self, connection: Connection, identity: Identity) -> Registration:
        """Bind ``connection`` to ``identity``, evicting any older session.

        The evicted session is removed from the registry and returned; closing
        its connection is left to the caller.
        """

        if connection.connection_id in self._sessions:
            raise DuplicateIdentityError(f"Connection {connection.connection_id} is already registered")

        evicted = self.find_by_identity(identity.id)
        if evicted is not None:
            del self._sessions[evicted.connection_id]
            json_log(
                logger,
                logging.INFO,
                "session.evicted",
                user_id=identity.id,
                username=identity.username,
                evicted_connection_id=evicted.connection_id,
                connection_id=connection.connection_id,
            )

        session = Session(connection=connection, identity=identity.model_copy())
        self._sessions[connection.connection_id] = session
        if sum(1 for item in self._sessions.values() if item.identity.id == identity.id) != 1:
            del self._sessions[connection.connection_id]
            raise DuplicateIdentityError(f"Identity {identity.id} holds more than one session")

        json_log(
            logger,
            logging.INFO,
            "session.registered",
            user_id=identity.id,
            username=identity.username,
            connection_id=connection.connection_id,
            live_sessions=len(self._sessions),
        )
        return Registration(session=session, evicted=evicted)

    def unregister(self, connection_id: str) -> Session | None:
        """Remove a session; unknown ids are ignored."""

        session = self._sessions.pop(connection_id, None)
        if session is not None:
            json_log(
                logger,
                logging.INFO,
                "session.unregistered",
                user_id=session.identity.id,
                connection_id=connection_id,
                live_sessions=len(self._sessions),
            )
        return session

    def find(self, connection_id: str) -> Session | None:
        return self._sessions.get(connection_id)

    def find_by_identity(self, identity_id: str) -> Session | None:
        return next((session for session in self._sessions.values() if session.identity.id == identity_id), None)

    def touch(self, connection_id: str) -> None:
        session = self._sessions.get(connection_id)
        if session is not None:
            session.touch()

    def update_color(self, connection_id: str, color: str) -> bool:
        session = self._sessions.get(connection_id)
        if session is None:
            logger.warning("Color update for unregistered connection %s ignored", connection_id)
            return False
        session.identity = session.identity.model_copy(update={"color": color})
        return True

    def update_identity_color(self, identity_id: str, color: str) -> bool:
        session = self.find_by_identity(identity_id)
        if session is None:
            return False
        return self.update_color(session.connection_id, color)

    def snapshot_presence(self) -> List[Identity]:
        """One identity per live session, in registration order."""

        return [session.identity.model_copy() for session in self._sessions.values()]


__all__ = ["DuplicateIdentityError", "Registration", "Session", "SessionRegistry"]
