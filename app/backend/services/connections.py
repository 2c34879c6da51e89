"""Transport-neutral connection handles with ordered delivery."""
from __future__ import annotations

import logging
from collections import deque
from typing import Any, Collection, Deque, Dict
from uuid import uuid4

from app.backend.models.chat import ServerEvent

logger = logging.getLogger(__name__)

Frame = Dict[str, Any]


class Connection:
    """A live client connection as seen by the session layer.

    Frames are queued in an outbox and written by one flusher at a time, so
    every connection receives frames in the order they were enqueued even when
    several handlers broadcast concurrently. A new connection starts *held*:
    frames accumulate but are not written until :meth:`release` puts the
    message history in front of them.

    Subclasses implement :meth:`_transmit` and :meth:`_shutdown`.
    """

    def __init__(self, connection_id: str | None = None) -> None:
        self.connection_id = connection_id or uuid4().hex
        self._outbox: Deque[Frame] = deque()
        self._held = True
        self._flushing = False
        self.closed = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.connection_id!r})"

    def enqueue(self, frame: Frame) -> None:
        if not self.closed:
            self._outbox.append(frame)

    async def send(self, frame: Frame) -> None:
        """Queue one frame and write the outbox if nothing else is writing it."""

        self.enqueue(frame)
        await self.flush()

    async def release(self, first: Frame, *, skip_message_ids: Collection[str] = ()) -> None:
        """Start delivery with ``first`` ahead of everything queued so far.

        ``newMessage`` frames for ids in ``skip_message_ids`` are dropped; they
        were broadcast after the connection was registered but are already part
        of ``first``.
        """

        pending = [frame for frame in self._outbox if not _is_new_message(frame, skip_message_ids)]
        self._outbox = deque([first, *pending])
        self._held = False
        await self.flush()

    async def flush(self) -> None:
        if self._held or self._flushing:
            return
        self._flushing = True
        try:
            while self._outbox and not self.closed:
                frame = self._outbox.popleft()
                try:
                    await self._transmit(frame)
                except Exception as exc:
                    logger.warning(
                        "Dropping %d queued frame(s) for %s after send failure: %s",
                        len(self._outbox) + 1,
                        self.connection_id,
                        exc,
                    )
                    self._outbox.clear()
                    break
        finally:
            self._flushing = False

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the transport; queued frames are discarded."""

        if self.closed:
            return
        self.closed = True
        self._outbox.clear()
        await self._shutdown(code, reason)

    async def _transmit(self, frame: Frame) -> None:
        raise NotImplementedError

    async def _shutdown(self, code: int, reason: str) -> None:
        raise NotImplementedError


def _is_new_message(frame: Frame, message_ids: Collection[str]) -> bool:
    if frame.get("event") != ServerEvent.NEW_MESSAGE.value:
        return False
    data = frame.get("data") or {}
    return data.get("id") in message_ids


__all__ = ["Connection", "Frame"]
