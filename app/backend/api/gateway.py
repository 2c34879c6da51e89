"""WebSocket gateway: handshake, frame decoding and event routing."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, WebSocket, status
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from app.backend.api.routes import get_auth_service, get_coordinator, get_record_store
from app.backend.models.chat import (
    INBOUND_FRAME_ADAPTER,
    MessageSeenFrame,
    SendMessageFrame,
    UpdateColorFrame,
    ack_frame,
    error_frame,
)
from app.backend.models.users import Identity
from app.backend.services.auth import AuthFailure, AuthService, extract_bearer_token
from app.backend.services.broadcast import BroadcastCoordinator
from app.backend.services.connections import Connection, Frame
from app.backend.services.record_store import RecordStore
from app.common.logging import json_log, scoped_connection_id

logger = logging.getLogger(__name__)

INVALID_FRAME_MESSAGE = "Malformed or unsupported event"

router = APIRouter()


class WebSocketConnection(Connection):
    """:class:`Connection` backed by a Starlette WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        super().__init__()
        self._websocket = websocket

    async def _transmit(self, frame: Frame) -> None:
        await self._websocket.send_json(frame)

    async def _shutdown(self, code: int, reason: str) -> None:
        if self._websocket.application_state == WebSocketState.CONNECTED:
            await self._websocket.close(code=code, reason=reason)


async def authenticate_handshake(
    credential: str | None,
    auth: AuthService,
    store: RecordStore,
) -> Identity | None:
    """Resolve the identity behind a handshake credential, or ``None``."""

    token = extract_bearer_token(credential)
    if token is None:
        json_log(logger, logging.WARNING, "handshake.rejected", reason="missing_token")
        return None
    try:
        claims = auth.verify_token(token)
    except AuthFailure as exc:
        json_log(logger, logging.WARNING, "handshake.rejected", reason="invalid_token", error=str(exc))
        return None
    user = await store.get_user_by_id(claims.sub)
    if user is None:
        json_log(logger, logging.WARNING, "handshake.rejected", reason="unknown_user", user_id=claims.sub)
        return None
    return user.identity()


async def dispatch(connection: Connection, coordinator: BroadcastCoordinator, raw: str) -> None:
    """Decode one inbound frame and route it to the coordinator."""

    try:
        frame = INBOUND_FRAME_ADAPTER.validate_json(raw)
    except ValidationError as exc:
        json_log(logger, logging.WARNING, "frame.invalid", errors=exc.error_count())
        await connection.send(error_frame(INVALID_FRAME_MESSAGE))
        return

    if isinstance(frame, SendMessageFrame):
        message = await coordinator.send_message(connection.connection_id, frame.data.content)
        if frame.id is not None and message is not None:
            await connection.send(ack_frame(frame.id, message))
    elif isinstance(frame, UpdateColorFrame):
        await coordinator.update_color(connection.connection_id, frame.data.color)
    elif isinstance(frame, MessageSeenFrame):
        await coordinator.mark_seen(connection.connection_id, frame.data.message_id)


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    token: str | None = Query(None),
    auth: AuthService = Depends(get_auth_service),
    store: RecordStore = Depends(get_record_store),
    coordinator: BroadcastCoordinator = Depends(get_coordinator),
) -> None:
    identity = await authenticate_handshake(websocket.headers.get("authorization") or token, auth, store)
    if identity is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection = WebSocketConnection(websocket)
    with scoped_connection_id(connection.connection_id):
        try:
            if await coordinator.connect(connection, identity) is None:
                return
            while not connection.closed:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None and message.get("bytes") is not None:
                    text = message["bytes"].decode("utf-8", errors="replace")
                if text is not None:
                    await dispatch(connection, coordinator, text)
        finally:
            await coordinator.disconnect(connection.connection_id)
            json_log(logger, logging.INFO, "connection.closed", user_id=identity.id)


__all__ = ["WebSocketConnection", "authenticate_handshake", "dispatch", "router"]
