"""Non-overlapping interval scheduler."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from couchkit.monitoring.metrics import PERIODIC_TASK_FAILURES, PERIODIC_TASK_RUNS
from couchkit.utils.logging import get_logger

logger = get_logger(__name__)

ErrorHandler = Callable[[BaseException], None]


class PeriodicTask:
    """
    Runs ``task`` every ``interval_seconds`` on the running event loop.

    The next run is scheduled only after the previous one finishes, so runs
    never overlap. ``stop()`` prevents further runs but lets a run that is
    already in progress complete. Failures are passed to ``on_error`` and
    the loop keeps going.
    """

    def __init__(
        self,
        task: Callable[[], Awaitable[None]],
        interval_seconds: float,
        on_error: Optional[ErrorHandler] = None,
        name: Optional[str] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.task = task
        self.interval_seconds = interval_seconds
        self.name = name or getattr(task, "__name__", "periodic_task")
        self._on_error = on_error
        self._stop = asyncio.Event()
        self._runner: Optional[asyncio.Task[None]] = None

    @property
    def started(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self, wait: bool = False) -> None:
        """
        Begin scheduling. With ``wait=True`` the first run happens after one
        interval instead of immediately. Starting twice is a no-op.
        """
        if self.started:
            return
        self._stop.clear()
        self._runner = asyncio.create_task(self._loop(wait), name=f"periodic:{self.name}")

    def stop(self) -> None:
        self._stop.set()

    async def join(self) -> None:
        """Wait until the scheduling loop has exited after ``stop()``."""
        if self._runner is not None:
            await self._runner

    async def _sleep(self) -> bool:
        """Sleep one interval; return False if stopped meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            return True
        return False

    async def _loop(self, wait: bool) -> None:
        if wait and not await self._sleep():
            return
        while not self._stop.is_set():
            await self._run_once()
            if not await self._sleep():
                return

    async def _run_once(self) -> None:
        PERIODIC_TASK_RUNS.labels(task=self.name).inc()
        try:
            await self.task()
        except Exception as exc:
            PERIODIC_TASK_FAILURES.labels(task=self.name).inc()
            if self._on_error is not None:
                self._on_error(exc)
            else:
                logger.error("periodic_task_failed", task=self.name, exc_info=exc)


__all__ = ["PeriodicTask", "ErrorHandler"]
