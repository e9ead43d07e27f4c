# backend/docbin/services/cleanup.py
import asyncio
from typing import Optional

from starlette.concurrency import run_in_threadpool

from ..utils.logging import service_logger
from .store import VersionStore


class CleanupService:
    """Periodically removes expired documents so lazy expiry doesn't leave them on disk forever"""

    def __init__(self, store: VersionStore, interval: float, expire_after: float = 0):
        self.store = store
        self.interval = interval
        self.expire_after = expire_after
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        try:
            deleted = await run_in_threadpool(self.store.delete_expired, None, self.expire_after or None)
        except Exception as e:
            service_logger.error(f"Error deleting expired documents: {str(e)}", exc_info=True)
            return 0

        if deleted:
            service_logger.info(f"Deleted {deleted} expired documents")
        return deleted

    async def _loop(self) -> None:
        service_logger.info("Starting document cleanup", extra={
            "interval": self.interval,
            "expire_after": self.expire_after
        })
        try:
            while True:
                await asyncio.sleep(self.interval)
                await self.run_once()
        finally:
            service_logger.info("Document cleanup stopped")

    def start(self) -> None:
        if self.interval <= 0 or self._task is not None:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
