"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from seatwatch.jobs.models import JobRecord, JobSnapshot


class JobDispatcher(ABC):
    """Abstract interface for pipeline job dispatching."""

    @abstractmethod
    async def submit(self, date_filter: Optional[str] = None) -> JobRecord:
        """Create a job and schedule its pipeline. Returns before any stage runs."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> JobSnapshot:
        """Snapshot of a job. Raises JobNotFoundError for unknown or purged ids."""
        ...

    @abstractmethod
    async def cancel(self, job_id: str) -> Dict[str, Any]:
        """Request cancellation. Raises JobNotFoundError for unknown ids."""
        ...

    @abstractmethod
    async def list_jobs(self) -> List[Dict[str, Any]]:
        """Summaries of every job currently held."""
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
