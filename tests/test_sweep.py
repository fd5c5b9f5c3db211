"""Tests for the background refresh-token sweep in api/main.py."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from api.main import _sweep_expired_refresh_tokens
from auth.models import RefreshToken
from auth.store import to_iso


async def _run_sweep_briefly(store, passes: float = 3) -> None:
    interval = 0.01
    task = asyncio.create_task(_sweep_expired_refresh_tokens(store, interval))
    await asyncio.sleep(interval * passes + 0.1)
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


def test_sweep_removes_expired_rows(auth_state) -> None:
    now = datetime.now(timezone.utc)
    store = auth_state.refresh_store
    store.create(RefreshToken(user_id=auth_state.user_id, token="old", expires_at=to_iso(now - timedelta(seconds=1))))
    store.create(RefreshToken(user_id=auth_state.user_id, token="new", expires_at=to_iso(now + timedelta(days=1))))

    asyncio.run(_run_sweep_briefly(store))

    assert store.count() == 1
    assert store.find_by_token("new") is not None


class _FlakyStore:
    def __init__(self) -> None:
        self.calls = 0

    def purge_expired(self) -> int:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("disk I/O error")
        return 0


def test_sweep_survives_a_failed_pass(caplog) -> None:
    store = _FlakyStore()
    with caplog.at_level(logging.ERROR, logger="portfolio.api"):
        asyncio.run(_run_sweep_briefly(store, passes=5))
    assert store.calls >= 2
    assert "Refresh token sweep failed" in caplog.text
