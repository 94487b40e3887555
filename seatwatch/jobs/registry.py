"""In-memory job registry with delayed, idempotent removal."""

import asyncio
import logging
import threading
from typing import Dict, List, Optional

from seatwatch.jobs.models import JobRecord

logger = logging.getLogger(__name__)


class JobRegistry:
    """Keyed store of job records.

    Owned by the application lifespan and passed explicitly to the dispatcher
    and the HTTP layer. All operations are total: lookups of unknown ids
    return None and deleting a missing id is a no-op.
    """

    def __init__(self):
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = threading.Lock()
        self._removals: Dict[str, asyncio.TimerHandle] = {}

    def create(self, date_filter: Optional[str] = None) -> JobRecord:
        with self._lock:
            job = JobRecord(date_filter=date_filter)
            while job.id in self._jobs:
                job = JobRecord(date_filter=date_filter)
            self._jobs[job.id] = job
        logger.info("Created job %s (total jobs: %d)", job.id, len(self._jobs))
        return job

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            return self._jobs.get(job_id)

    def delete(self, job_id: str) -> None:
        with self._lock:
            removed = self._jobs.pop(job_id, None)
            handle = self._removals.pop(job_id, None)
        if handle is not None:
            handle.cancel()
        if removed is not None:
            logger.info("Removed job %s", job_id)

    def list(self) -> List[JobRecord]:
        with self._lock:
            return list(self._jobs.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def schedule_removal(self, job_id: str, delay: float) -> None:
        """Delete the job `delay` seconds from now on the running event loop."""
        loop = asyncio.get_running_loop()
        handle = loop.call_later(delay, self.delete, job_id)
        with self._lock:
            previous = self._removals.pop(job_id, None)
            self._removals[job_id] = handle
        if previous is not None:
            previous.cancel()

    def close(self) -> None:
        """Cancel pending removals and drop every job."""
        with self._lock:
            handles = list(self._removals.values())
            self._removals.clear()
            self._jobs.clear()
        for handle in handles:
            handle.cancel()
