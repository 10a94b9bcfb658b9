# src/anvil_guard/connectors/notifier.py

"""
Notifier implementations (the Notifier port).

- LogNotifier: writes notifications to the log; the default.
- MatrixNotifier: posts notifications into one Matrix room.

MatrixNotifier raises NotificationError when a notification cannot be delivered;
callers decide whether that matters (reminders: it does not).
"""

from __future__ import annotations

import asyncio
import logging

from nio import AsyncClient, RoomSendResponse

from ..errors import NotificationError
from .matrix_client import create_matrix_client

logger = logging.getLogger(__name__)


class LogNotifier:
    async def notify(self, *, title: str, body: str) -> None:
        logger.info("NOTIFY %s: %s", title, body)


class MatrixNotifier:
    def __init__(self, settings) -> None:
        self._settings = settings
        self._room_id = (getattr(settings, "matrix_room", "") or "").strip()
        self._client: AsyncClient | None = None
        self._lock = asyncio.Lock()

    async def _get_client(self) -> AsyncClient:
        async with self._lock:
            if self._client is None:
                self._client = await create_matrix_client(self._settings)
            if self._client is None:
                raise NotificationError("Matrix client is not available")
            return self._client

    async def notify(self, *, title: str, body: str) -> None:
        if not self._room_id:
            raise NotificationError("ANVIL_MATRIX_ROOM is not set")

        client = await self._get_client()
        try:
            resp = await client.room_send(
                room_id=self._room_id,
                message_type="m.room.message",
                content={"msgtype": "m.text", "body": f"{title}\n{body}"},
                ignore_unverified_devices=True,
            )
        except Exception as e:
            raise NotificationError(f"Matrix send failed: {e!r}") from e

        if not isinstance(resp, RoomSendResponse):
            raise NotificationError(f"Matrix send rejected: {resp!r}")
        logger.debug("Matrix notification sent room=%s event=%s", self._room_id, resp.event_id)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
