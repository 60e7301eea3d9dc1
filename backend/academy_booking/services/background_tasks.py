"""
Side-effect runner for work that follows a committed state transition.

Notifications, payout creation and audit records must never hold up, or
roll back, the transition that triggered them. Services commit first and
then `submit()` jobs here. A bounded asyncio.Queue is drained by a small pool
of worker tasks; each job is retried with exponential backoff and finally
logged and dropped.

The queue lives in process memory, so jobs still queued at shutdown get a
grace period in `stop()` and are lost after it. Payout creation is
idempotent per (booking, transaction) and can be replayed from the ledger.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import structlog

from academy_booking.core.config import get_settings
from academy_booking.core.logging import get_logger
from academy_booking.core.metrics import record_side_effect, side_effect_queue_depth

logger = get_logger(__name__)

JobFunc = Callable[..., Awaitable[Any]]


@dataclass
class SideEffectJob:
    kind: str
    func: JobFunc
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    context: dict = field(default_factory=dict)


class SideEffectRunner:
    def __init__(
        self,
        workers: int = 4,
        queue_size: int = 1000,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        max_backoff_seconds: float = 30.0,
    ):
        self.workers = workers
        self.queue_size = queue_size
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"side-effect-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info("side_effect_runner_started", workers=self.workers, queue_size=self.queue_size)

    async def stop(self, timeout: float = 10.0) -> None:
        if not self.running:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("side_effect_runner_stop_timeout", pending=self._queue.qsize())
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._queue = None
        logger.info("side_effect_runner_stopped")

    def submit(self, kind: str, func: JobFunc, *args: Any, **kwargs: Any) -> bool:
        """Queue a job. Returns False if it was dropped because the queue is full."""
        if not self.running:
            self.start()

        job = SideEffectJob(
            kind=kind,
            func=func,
            args=args,
            kwargs=kwargs,
            context=structlog.contextvars.get_contextvars(),
        )
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            record_side_effect(kind, "dropped")
            logger.error("side_effect_dropped", kind=kind, reason="queue_full")
            return False

        side_effect_queue_depth.set(self._queue.qsize())
        return True

    async def drain(self) -> None:
        """Wait until every queued job has finished (success or final failure)."""
        if self._queue is not None:
            await self._queue.join()

    def _delay(self, attempt: int) -> float:
        delay = min(self.backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)
        return delay + random.uniform(0, 0.1 * delay)

    async def _run(self, job: SideEffectJob) -> None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await job.func(*job.args, **job.kwargs)
                record_side_effect(job.kind, "success")
                return
            except Exception as e:
                if attempt >= self.max_attempts:
                    record_side_effect(job.kind, "failed")
                    logger.error(
                        "side_effect_failed",
                        kind=job.kind,
                        attempts=attempt,
                        error=str(e),
                        exc_info=True,
                    )
                    return
                delay = self._delay(attempt)
                record_side_effect(job.kind, "retry")
                logger.warning(
                    "side_effect_retry",
                    kind=job.kind,
                    attempt=attempt,
                    delay_seconds=round(delay, 3),
                    error=str(e),
                )
                await asyncio.sleep(delay)

    async def _worker(self, index: int) -> None:
        queue = self._queue
        while True:
            job = await queue.get()
            try:
                with structlog.contextvars.bound_contextvars(**job.context):
                    await self._run(job)
            finally:
                queue.task_done()
                side_effect_queue_depth.set(queue.qsize())


_runner: Optional[SideEffectRunner] = None


def get_side_effect_runner() -> SideEffectRunner:
    """Process-wide runner, configured from settings."""
    global _runner
    if _runner is None:
        settings = get_settings()
        _runner = SideEffectRunner(
            workers=settings.SIDE_EFFECT_WORKERS,
            queue_size=settings.SIDE_EFFECT_QUEUE_SIZE,
            max_attempts=settings.SIDE_EFFECT_MAX_ATTEMPTS,
            backoff_seconds=settings.SIDE_EFFECT_RETRY_BACKOFF_SECONDS,
        )
    return _runner
