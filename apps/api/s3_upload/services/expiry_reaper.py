from __future__ import annotations

import asyncio
import logging

from s3_upload.services.cors_window import CorsWindowManager

logger = logging.getLogger(__name__)


class ExpiryReaper:
    """Closes CORS windows that were never confirmed.

    One task per session; the success path cancels it through :meth:`cancel`.
    """

    def __init__(self, windows: CorsWindowManager, *, delay_seconds: float) -> None:
        self._windows = windows
        self._delay_seconds = delay_seconds
        self._tasks: dict[str, asyncio.Task] = {}
        self._buckets: dict[str, str] = {}

    @property
    def delay_seconds(self) -> float:
        return self._delay_seconds

    def pending(self) -> list[str]:
        return [session_id for session_id, task in self._tasks.items() if not task.done()]

    def schedule(self, bucket: str, session_id: str, delay_seconds: float | None = None) -> asyncio.Task:
        self.cancel(session_id)
        delay = self._delay_seconds if delay_seconds is None else delay_seconds
        task = asyncio.create_task(self._reap_later(bucket, session_id, delay), name=f"cors-reap-{session_id}")
        self._tasks[session_id] = task
        self._buckets[session_id] = bucket
        task.add_done_callback(lambda _task: self._forget(session_id, _task))
        return task

    def is_scheduled(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    def bucket_for(self, session_id: str) -> str | None:
        return self._buckets.get(session_id) if self.is_scheduled(session_id) else None

    def cancel(self, session_id: str) -> bool:
        task = self._tasks.pop(session_id, None)
        self._buckets.pop(session_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def drain(self) -> int:
        """Cancel every pending reap and close its window right away."""
        pending = [(session_id, self._buckets.get(session_id)) for session_id in self.pending()]
        closed = 0
        for session_id, bucket in pending:
            self.cancel(session_id)
            if bucket is not None and await self._reap(bucket, session_id):
                closed += 1
        return closed

    def _forget(self, session_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(session_id) is task:
            del self._tasks[session_id]
            self._buckets.pop(session_id, None)

    async def _reap_later(self, bucket: str, session_id: str, delay: float) -> bool:
        await asyncio.sleep(delay)
        return await self._reap(bucket, session_id)

    async def _reap(self, bucket: str, session_id: str) -> bool:
        try:
            closed = await self._windows.close_window(bucket, session_id)
        except Exception:
            logger.exception("Failed to reap CORS window: bucket=%s, session_id=%s", bucket, session_id)
            return False
        if closed:
            logger.info("Reaped unconfirmed CORS window: bucket=%s, session_id=%s", bucket, session_id)
        return closed
