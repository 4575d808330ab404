import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import Awaitable, Callable

SweepHandler = Callable[[], Awaitable[int]]


@dataclass
class SweepJob:
    key: str
    handler: SweepHandler
    runs: int = 0
    failures: int = 0
    last_removed: int = 0


class PeriodicSweeper:
    """
    Runs registered sweep jobs on a fixed interval in one worker task.

    Used to evict expired admin sessions and stale rate limit buckets. A
    failing job is logged and retried on the next tick; it never stops the
    worker or the other jobs.
    """

    def __init__(self, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._jobs: dict[str, SweepJob] = {}
        self._task: asyncio.Task[None] | None = None
        self._logger = logging.getLogger("oursociety.jobs")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def register(self, key: str, handler: SweepHandler) -> SweepJob:
        job = SweepJob(key=key, handler=handler)
        self._jobs[key] = job
        return job

    def job(self, key: str) -> SweepJob | None:
        return self._jobs.get(key)

    async def run_once(self) -> dict[str, int]:
        """Run every job once and return how many items each removed."""
        removed: dict[str, int] = {}
        for job in list(self._jobs.values()):
            removed[job.key] = await self._run_job(job)
        return removed

    async def start(self) -> None:
        """Ensure the worker task is running."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._worker())
            self._logger.info(
                "[SWEEP] started jobs=%s interval=%ss", sorted(self._jobs), self.interval_seconds
            )

    async def stop(self) -> None:
        """Stop the worker task."""
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._logger.info("[SWEEP] stopped")

    async def _worker(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                await self.run_once()
        except asyncio.CancelledError:
            return

    async def _run_job(self, job: SweepJob) -> int:
        job.runs += 1
        try:
            removed = await job.handler()
        except Exception as exc:
            job.failures += 1
            self._logger.error(
                "[SWEEP] job_failed job_key=%s error=%s", job.key, exc, exc_info=True
            )
            return 0
        job.last_removed = removed
        if removed:
            self._logger.info("[SWEEP] job_key=%s removed=%d", job.key, removed)
        return removed
