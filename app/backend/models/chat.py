"""Models related to chat messages and WebSocket events."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Sequence, Union
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter

from app.backend.models.users import CamelModel, Identity, format_timestamp, parse_timestamp, utcnow

UNKNOWN_AUTHOR = Identity(id="unknown", username="Unknown User", color="#808080")


class MessageRecord(BaseModel):
    """A row of the messages table."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    created_at: datetime = Field(default_factory=utcnow)
    author_id: str

    @classmethod
    def from_row(cls, row: Dict[str, str]) -> "MessageRecord":
        return cls(
            id=row["id"],
            content=row["content"],
            created_at=parse_timestamp(row["createdAt"]),
            author_id=row["authorId"],
        )

    def to_row(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "content": self.content,
            "createdAt": format_timestamp(self.created_at),
            "authorId": self.author_id,
        }


class DecoratedMessage(CamelModel):
    """A persisted message joined with its author's identity at emission time."""

    id: str
    content: str
    created_at: datetime
    author_id: str
    user: Identity
    seen_by: List[str] = Field(default_factory=list)

    @classmethod
    def decorate(
        cls,
        record: MessageRecord,
        author: Identity | None,
        seen_by: Sequence[str] = (),
    ) -> "DecoratedMessage":
        return cls(
            id=record.id,
            content=record.content,
            created_at=record.created_at,
            author_id=record.author_id,
            user=(author or UNKNOWN_AUTHOR).model_copy(),
            seen_by=list(seen_by),
        )


# Inbound frames (client -> server)


class SendMessageData(BaseModel):
    content: str = Field(..., min_length=1)


class UpdateColorData(BaseModel):
    color: str = Field(..., min_length=1, max_length=32)


class MessageSeenData(CamelModel):
    message_id: str = Field(..., min_length=1)


class SendMessageFrame(BaseModel):
    event: Literal["sendMessage"]
    data: SendMessageData
    id: str | int | None = None


class UpdateColorFrame(BaseModel):
    event: Literal["updateColor"]
    data: UpdateColorData
    id: str | int | None = None


class MessageSeenFrame(BaseModel):
    event: Literal["messageSeen"]
    data: MessageSeenData
    id: str | int | None = None


InboundFrame = Annotated[
    Union[SendMessageFrame, UpdateColorFrame, MessageSeenFrame],
    Field(discriminator="event"),
]

INBOUND_FRAME_ADAPTER: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)


# Outbound frames (server -> client)


class ServerEvent(str, Enum):
    """Names of the events the server emits."""

    MESSAGE_HISTORY = "messageHistory"
    NEW_MESSAGE = "newMessage"
    CONNECTED_USERS = "connectedUsers"
    MESSAGE_SEEN = "messageSeen"
    ERROR = "error"
    ACK = "ack"


class MessageSeenNotice(CamelModel):
    message_id: str
    username: str


class ErrorNotice(BaseModel):
    message: str


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def server_frame(event: ServerEvent, data: Any, *, ack_id: str | int | None = None) -> Dict[str, Any]:
    """Wrap an already-serialized payload in the wire envelope."""

    frame: Dict[str, Any] = {"event": event.value, "data": data}
    if ack_id is not None:
        frame["id"] = ack_id
    return frame


def message_history_frame(messages: Sequence[DecoratedMessage]) -> Dict[str, Any]:
    return server_frame(ServerEvent.MESSAGE_HISTORY, [_dump(message) for message in messages])


def new_message_frame(message: DecoratedMessage) -> Dict[str, Any]:
    return server_frame(ServerEvent.NEW_MESSAGE, _dump(message))


def connected_users_frame(identities: Sequence[Identity]) -> Dict[str, Any]:
    return server_frame(ServerEvent.CONNECTED_USERS, [_dump(identity) for identity in identities])


def message_seen_frame(message_id: str, username: str) -> Dict[str, Any]:
    return server_frame(ServerEvent.MESSAGE_SEEN, _dump(MessageSeenNotice(message_id=message_id, username=username)))


def error_frame(message: str) -> Dict[str, Any]:
    return server_frame(ServerEvent.ERROR, _dump(ErrorNotice(message=message)))


def ack_frame(ack_id: str | int, data: BaseModel | None) -> Dict[str, Any]:
    return server_frame(ServerEvent.ACK, _dump(data) if data is not None else None, ack_id=ack_id)


__all__ = [
    "DecoratedMessage",
    "ErrorNotice",
    "INBOUND_FRAME_ADAPTER",
    "InboundFrame",
    "MessageRecord",
    "MessageSeenData",
    "MessageSeenFrame",
    "MessageSeenNotice",
    "SendMessageData",
    "SendMessageFrame",
    "ServerEvent",
    "UNKNOWN_AUTHOR",
    "UpdateColorData",
    "UpdateColorFrame",
    "ack_frame",
    "connected_users_frame",
    "error_frame",
    "message_history_frame",
    "message_seen_frame",
    "new_message_frame",
    "server_frame",
]
