"""In-process job runner using asyncio.

Each submitted job runs as its own asyncio task, gated by a semaphore so at
most `max_concurrent` pipelines talk to the warehouse at once. The job record
is the only channel back to pollers. No external broker (Redis, Celery).
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from seatwatch.errors import (
    CANCELLED_MESSAGE,
    SHUTDOWN_MESSAGE,
    CancellationError,
    JobNotFoundError,
)
from seatwatch.jobs.dispatcher import JobDispatcher
from seatwatch.jobs.models import JobRecord, JobSnapshot
from seatwatch.jobs.registry import JobRegistry

logger = logging.getLogger(__name__)


class InProcessQueue(JobDispatcher):
    """Local async job runner backed by an explicitly owned JobRegistry."""

    def __init__(
        self,
        registry: JobRegistry,
        worker_fn: Callable[[JobRecord], Awaitable[None]],
        max_concurrent: int = 4,
        retention_seconds: float = 300.0,
    ):
        """
        worker_fn: async callable(job: JobRecord) -> None
            Drives the job to a terminal state by mutating the record.
        """
        self._registry = registry
        self._worker_fn = worker_fn
        self._max_concurrent = max(1, max_concurrent)
        self._retention_seconds = retention_seconds
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._tasks: Set[asyncio.Task] = set()
        self._running = False

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    async def submit(self, date_filter: Optional[str] = None) -> JobRecord:
        if not self._running:
            raise RuntimeError("Dispatcher is not running")
        job = self._registry.create(date_filter=date_filter)
        task = asyncio.create_task(self._run_job(job), name=f"pipeline-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job

    async def get_status(self, job_id: str) -> JobSnapshot:
        job = self._registry.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.snapshot()

    async def cancel(self, job_id: str) -> Dict[str, Any]:
        job = self._registry.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.request_cancel():
            logger.info("Job %s cancellation requested", job_id)
            return {"success": True, "message": "Job cancelled"}
        return {"success": True, "message": "Job already completed"}

    async def list_jobs(self) -> List[Dict[str, Any]]:
        return [job.summary() for job in self._registry.list()]

    async def start(self) -> None:
        self._semaphore = asyncio.Semaphore(self._max_concurrent)
        self._running = True

    async def stop(self) -> None:
        self._running = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _run_job(self, job: JobRecord) -> None:
        token = job.cancel_token
        acquired = False
        try:
            # Waiting for a slot is itself cancellable; a job cancelled while
            # queued terminates without ever running.
            await token.guard(self._semaphore.acquire())
            acquired = True
            if token.cancelled:
                job.finish(error=CANCELLED_MESSAGE)
                return
            job.mark_started()
            await self._worker_fn(job)
        except CancellationError as e:
            logger.info("Job %s cancelled before it started", job.id)
            job.finish(error=str(e))
        except asyncio.CancelledError:
            job.finish(error=SHUTDOWN_MESSAGE)
            raise
        except Exception as e:
            logger.exception("Job %s worker crashed", job.id)
            job.finish(error=f"{type(e).__name__}: {e}")
        finally:
            if acquired:
                self._semaphore.release()
            # The worker normally finishes the job itself; this covers a worker
            # that returned without reaching a terminal state.
            if job.finish(error="Pipeline ended without a result"):
                logger.error("Job %s returned without finishing", job.id)
            if self._running:
                self._registry.schedule_removal(job.id, self._retention_seconds)
