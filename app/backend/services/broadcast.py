"""Fan-out of chat events to every live session."""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, List

from app.backend.config import get_settings
from app.backend.models.chat import (
    DecoratedMessage,
    connected_users_frame,
    error_frame,
    message_history_frame,
    message_seen_frame,
    new_message_frame,
)
from app.backend.models.users import Identity
from app.backend.services.connections import Connection, Frame
from app.backend.services.record_store import RecordStore, StoreWriteError
from app.backend.services.session_registry import DuplicateIdentityError, Session, SessionRegistry
from app.common.logging import json_log

logger = logging.getLogger(__name__)

EVICTED_CLOSE_CODE = 4000
EVICTED_CLOSE_REASON = "Session replaced by a newer connection"
INTERNAL_CLOSE_CODE = 1011

SEND_FAILED_MESSAGE = "Failed to send the message"
COLOR_FAILED_MESSAGE = "Failed to update the color"


class BroadcastCoordinator:
    """Turn client actions into store writes plus fan-out events."""

    def __init__(self, registry: SessionRegistry, store: RecordStore) -> None:
        self._settings = get_settings()
        self._registry = registry
        self._store = store
        self._seen_by: "OrderedDict[str, List[str]]" = OrderedDict()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def connect(self, connection: Connection, identity: Identity) -> Session | None:
        """Register an authenticated connection and bring it up to date.

        The connection receives the message history before anything else,
        then every connection receives the refreshed presence list.
        """

        try:
            registration = self._registry.register(connection, identity)
        except DuplicateIdentityError as exc:
            json_log(logger, logging.ERROR, "session.register_failed", user_id=identity.id, error=str(exc))
            await connection.close(INTERNAL_CLOSE_CODE, "Registration failed")
            return None

        if registration.evicted is not None:
            await registration.evicted.connection.close(EVICTED_CLOSE_CODE, EVICTED_CLOSE_REASON)

        try:
            history = await self._history()
        except Exception as exc:
            json_log(logger, logging.ERROR, "history.failed", user_id=identity.id, error=str(exc))
            self._registry.unregister(connection.connection_id)
            await connection.close(INTERNAL_CLOSE_CODE, "Message history unavailable")
            await self._broadcast_presence()
            return None

        await connection.release(
            message_history_frame(history),
            skip_message_ids={message.id for message in history},
        )
        await self._broadcast_presence()
        return registration.session

    async def disconnect(self, connection_id: str) -> None:
        session = self._registry.unregister(connection_id)
        if session is None:
            return
        await self._broadcast_presence()

    async def send_message(self, connection_id: str, content: str) -> DecoratedMessage | None:
        """Persist and broadcast a message; returns it as the sender's ack."""

        session = self._require_session(connection_id, "sendMessage")
        if session is None:
            return None

        author = session.identity.model_copy()
        try:
            record = await self._store.append_message(content, author.id)
        except Exception as exc:
            json_log(logger, logging.ERROR, "message.send_failed", user_id=author.id, error=str(exc))
            await session.connection.send(error_frame(SEND_FAILED_MESSAGE))
            return None

        message = DecoratedMessage.decorate(record, author)
        await self._broadcast(new_message_frame(message))
        json_log(
            logger,
            logging.INFO,
            "message.sent",
            message_id=message.id,
            user_id=author.id,
            recipients=len(self._registry),
        )
        return message

    async def update_color(self, connection_id: str, color: str) -> None:
        session = self._require_session(connection_id, "updateColor")
        if session is None:
            return

        try:
            updated = await self._store.set_user_color(session.identity.id, color)
            if updated is None:
                raise StoreWriteError(f"User {session.identity.id} no longer exists")
        except Exception as exc:
            json_log(logger, logging.ERROR, "color.update_failed", user_id=session.identity.id, error=str(exc))
            await session.connection.send(error_frame(COLOR_FAILED_MESSAGE))
            return

        self._registry.update_color(connection_id, color)
        json_log(logger, logging.INFO, "color.updated", user_id=session.identity.id, color=color)
        await self._broadcast_presence()

    async def apply_color_change(self, identity_id: str, color: str) -> None:
        """Refresh a live session after its color changed through another path."""

        if self._registry.update_identity_color(identity_id, color):
            await self._broadcast_presence()

    async def mark_seen(self, connection_id: str, message_id: str) -> None:
        session = self._require_session(connection_id, "messageSeen")
        if session is None:
            return
        username = session.identity.username
        self._record_seen(message_id, username)
        await self._broadcast(message_seen_frame(message_id, username))

    def seen_by(self, message_id: str) -> List[str]:
        return list(self._seen_by.get(message_id, ()))

    def _require_session(self, connection_id: str, event: str) -> Session | None:
        session = self._registry.find(connection_id)
        if session is None:
            json_log(logger, logging.WARNING, "session.not_registered", event=event, connection_id=connection_id)
            return None
        session.touch()
        return session

    def _record_seen(self, message_id: str, username: str) -> None:
        usernames = self._seen_by.get(message_id)
        if usernames is None:
            usernames = self._seen_by[message_id] = []
            while len(self._seen_by) > self._settings.seen_tracking_limit:
                self._seen_by.popitem(last=False)
        if username not in usernames:
            usernames.append(username)

    async def _history(self) -> List[DecoratedMessage]:
        records = await self._store.list_messages(limit=self._settings.history_limit)
        authors: Dict[str, Identity | None] = {}
        history = []
        for record in records:
            if record.author_id not in authors:
                user = await self._store.get_user_by_id(record.author_id)
                authors[record.author_id] = user.identity() if user else None
            history.append(
                DecoratedMessage.decorate(record, authors[record.author_id], seen_by=self.seen_by(record.id))
            )
        return history

    async def _broadcast_presence(self) -> None:
        await self._broadcast(connected_users_frame(self._registry.snapshot_presence()))

    async def _broadcast(self, frame: Frame) -> None:
        sessions = list(self._registry)
        for session in sessions:
            session.connection.enqueue(frame)
        await asyncio.gather(*(session.connection.flush() for session in sessions))


__all__ = [
    "BroadcastCoordinator",
    "COLOR_FAILED_MESSAGE",
    "EVICTED_CLOSE_CODE",
    "EVICTED_CLOSE_REASON",
    "SEND_FAILED_MESSAGE",
]
