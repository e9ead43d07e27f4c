# tests/services/test_cleanup.py
import asyncio
from datetime import timedelta

import pytest

from docbin.schemas.revision import FileData
from docbin.services.cleanup import CleanupService
from docbin.services.store import utcnow


@pytest.mark.asyncio
async def test_run_once_removes_expired(store):
    files = [FileData(name="a.txt", content="a")]
    store.create("expired1", files, expires_at=utcnow() - timedelta(seconds=1))
    store.create("living01", files)

    deleted = await CleanupService(store, interval=0).run_once()

    assert deleted == 1
    assert store.exists("living01")


@pytest.mark.asyncio
async def test_run_once_logs_errors(store, monkeypatch):
    def broken(*args):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(store, "delete_expired", broken)

    assert await CleanupService(store, interval=0).run_once() == 0


@pytest.mark.asyncio
async def test_background_loop(store):
    store.create("expired1", [FileData(name="a.txt", content="a")], expires_at=utcnow() - timedelta(seconds=1))
    cleanup = CleanupService(store, interval=0.05)

    cleanup.start()
    await asyncio.sleep(0.3)
    await cleanup.stop()

    assert cleanup._task is None
    assert store.delete_expired() == 0


@pytest.mark.asyncio
async def test_disabled_cleanup_never_starts(store):
    cleanup = CleanupService(store, interval=0)
    cleanup.start()
    assert cleanup._task is None
    await cleanup.stop()
