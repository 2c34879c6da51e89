"""CSV-backed persistence for users and chat messages."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

from pydantic import ValidationError

from app.backend.config import get_settings
from app.backend.models.chat import MessageRecord
from app.backend.models.users import UserRecord, utcnow
from app.common.csv_table import CsvTable
from app.common.logging import json_log

logger = logging.getLogger(__name__)

USER_FIELDS = ("id", "email", "username", "passwordHash", "color", "createdAt", "updatedAt")
MESSAGE_FIELDS = ("id", "content", "createdAt", "authorId")


class StoreWriteError(RuntimeError):
    """Raised when a record could not be persisted."""


class RecordStore:
    """Keep users and messages in memory, mirrored to two CSV tables.

    The messages table is append-only; the users table is rewritten whenever
    a user is created or changes color. The async methods never suspend, so
    each call is atomic with respect to the event loop.
    """

    def __init__(self, data_dir: Path | None = None) -> None:
        self._settings = get_settings()
        root = data_dir or self._settings.data_dir
        self._users_table = CsvTable(root / "users.csv", USER_FIELDS)
        self._messages_table = CsvTable(root / "messages.csv", MESSAGE_FIELDS)
        self._users: List[UserRecord] = []
        self._messages: List[MessageRecord] = []
        self._load()

    @property
    def data_dir(self) -> Path:
        return self._users_table.path.parent

    def _load(self) -> None:
        self._users_table.ensure()
        self._messages_table.ensure()
        self._users = [user for user in map(self._parse_user, self._users_table.read()) if user]
        self._messages = [message for message in map(self._parse_message, self._messages_table.read()) if message]
        json_log(
            logger,
            logging.INFO,
            "store.loaded",
            data_dir=str(self.data_dir),
            counts={"users": len(self._users), "messages": len(self._messages)},
        )

    @staticmethod
    def _parse_user(row: Dict[str, str]) -> UserRecord | None:
        try:
            return UserRecord.from_row(row)
        except (ValidationError, ValueError):
            logger.warning("Skipping malformed user row %s", row.get("id"))
            return None

    @staticmethod
    def _parse_message(row: Dict[str, str]) -> MessageRecord | None:
        try:
            return MessageRecord.from_row(row)
        except (ValidationError, ValueError):
            logger.warning("Skipping malformed message row %s", row.get("id"))
            return None

    def _save_users(self) -> None:
        try:
            self._users_table.rewrite(user.to_row() for user in self._users)
        except OSError as exc:
            json_log(logger, logging.ERROR, "store.write_failed", table=self._users_table.path.name, error=str(exc))
            raise StoreWriteError(f"Failed to write {self._users_table.path.name}") from exc

    async def create_user(self, email: str, username: str, password_hash: str) -> UserRecord:
        """Persist a new user with the default color."""

        user = UserRecord(
            email=email,
            username=username,
            password_hash=password_hash,
            color=self._settings.default_color,
        )
        self._users.append(user)
        try:
            self._save_users()
        except StoreWriteError:
            self._users.remove(user)
            raise
        return user

    async def find_user_by_email(self, email: str) -> UserRecord | None:
        return next((user for user in self._users if user.email == email), None)

    async def find_user_by_username(self, username: str) -> UserRecord | None:
        return next((user for user in self._users if user.username == username), None)

    async def get_user_by_id(self, user_id: str) -> UserRecord | None:
        return next((user for user in self._users if user.id == user_id), None)

    async def list_users(self) -> List[UserRecord]:
        return list(self._users)

    async def set_user_color(self, user_id: str, color: str) -> UserRecord | None:
        """Change a user's color; returns ``None`` when the user is unknown."""

        for index, user in enumerate(self._users):
            if user.id != user_id:
                continue
            updated = user.model_copy(update={"color": color, "updated_at": utcnow()})
            self._users[index] = updated
            try:
                self._save_users()
            except StoreWriteError:
                self._users[index] = user
                raise
            return updated
        return None

    async def append_message(self, content: str, author_id: str) -> MessageRecord:
        """Persist a new message authored by ``author_id``."""

        message = MessageRecord(content=content, author_id=author_id)
        try:
            self._messages_table.append(message.to_row())
        except OSError as exc:
            json_log(logger, logging.ERROR, "store.write_failed", table=self._messages_table.path.name, error=str(exc))
            raise StoreWriteError(f"Failed to write {self._messages_table.path.name}") from exc
        self._messages.append(message)
        return message

    async def list_messages(self, limit: int | None = None) -> List[MessageRecord]:
        """Return the most recent ``limit`` messages, oldest first.

        The sort is stable, so messages sharing a ``created_at`` keep their
        append order.
        """

        ordered = sorted(self._messages, key=lambda message: message.created_at)
        if limit is not None:
            ordered = ordered[-limit:] if limit > 0 else []
        return ordered


__all__ = ["MESSAGE_FIELDS", "RecordStore", "StoreWriteError", "USER_FIELDS"]
