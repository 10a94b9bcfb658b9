# tests/test_notifier.py

from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from anvil_guard.connectors.notifier import LogNotifier, MatrixNotifier
from anvil_guard.errors import NotificationError


@pytest.mark.asyncio
async def test_log_notifier_logs_title_and_body(caplog) -> None:
    caplog.set_level(logging.INFO, logger="anvil_guard.connectors.notifier")

    await LogNotifier().notify(title="Reminder", body="Essay is due")

    assert "NOTIFY Reminder: Essay is due" in caplog.text


@pytest.mark.asyncio
async def test_matrix_notifier_without_room_raises() -> None:
    notifier = MatrixNotifier(SimpleNamespace(matrix_room=""))

    with pytest.raises(NotificationError):
        await notifier.notify(title="t", body="b")


@pytest.mark.asyncio
async def test_matrix_notifier_without_homeserver_raises(tmp_path) -> None:
    settings = SimpleNamespace(
        matrix_room="!room:example.org",
        matrix_homeserver="",
        matrix_user_id="",
        matrix_password="",
        matrix_store_path=tmp_path,
    )

    with pytest.raises(NotificationError, match="not available"):
        await MatrixNotifier(settings).notify(title="t", body="b")
