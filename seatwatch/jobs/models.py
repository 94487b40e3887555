"""Job record data model for async pipeline runs."""

import threading
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.alias_generators import to_camel

from seatwatch.jobs.cancellation import CancelToken

TOTAL_STEPS = 7


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex}"


class JobSnapshot(BaseModel):
    """Point-in-time, read-only view of a job as served to pollers."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
    current_step: int = 0
    current_batch: int = 0
    total_batches: int = 0
    progress: int = 0
    total: int = 0
    cancelled: bool = False
    completed: bool = False
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


class JobRecord(BaseModel):
    """Tracks the lifecycle of one anomaly-detection pipeline run.

    Writes come from the job's own pipeline task (and `request_cancel` from the
    cancel endpoint); reads come from status polls. Every mutator and
    `snapshot()` hold the record lock, so pollers never see a torn record.
    """
    id: str = Field(default_factory=new_job_id)
    date_filter: Optional[str] = None
    cancelled: bool = False
    completed: bool = False
    error: Optional[str] = None
    current_step: int = 0
    current_batch: int = 0
    total_batches: int = 0
    progress: int = 0
    total: int = 0
    result: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    _lock: threading.RLock = PrivateAttr(default_factory=threading.RLock)
    _cancel_token: CancelToken = PrivateAttr(default_factory=CancelToken)

    @property
    def cancel_token(self) -> CancelToken:
        return self._cancel_token

    def mark_started(self) -> None:
        with self._lock:
            if self.started_at is None:
                self.started_at = datetime.utcnow()

    def advance_to(self, step: int) -> None:
        """Move to pipeline stage `step` (1-7). Steps never go backwards."""
        if not 1 <= step <= TOTAL_STEPS:
            raise ValueError(f"step must be in 1..{TOTAL_STEPS}, got {step}")
        with self._lock:
            if self.completed:
                return
            if step < self.current_step:
                raise ValueError(f"step {step} is behind current step {self.current_step}")
            self.current_step = step

    def set_batches(self, total_batches: int, total: int) -> None:
        with self._lock:
            if self.completed:
                return
            self.total_batches = total_batches
            self.total = total
            self.current_batch = 0
            self.progress = 0

    def start_batch(self, batch_number: int) -> None:
        with self._lock:
            if self.completed:
                return
            self.current_batch = min(batch_number, self.total_batches)

    def record_batch(self, processed: int) -> None:
        with self._lock:
            if self.completed:
                return
            self.progress = min(processed, self.total)

    def request_cancel(self) -> bool:
        """Flag the job and fire its token. Returns False if already completed."""
        with self._lock:
            if self.completed:
                return False
            self.cancelled = True
        self._cancel_token.cancel()
        return True

    def finish(self, result: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> bool:
        """Terminal transition. A result is only kept when there is no error."""
        with self._lock:
            if self.completed:
                return False
            self.error = error
            self.result = None if error else result
            self.completed_at = datetime.utcnow()
            self.completed = True
            return True

    def snapshot(self) -> JobSnapshot:
        with self._lock:
            return JobSnapshot(
                job_id=self.id,
                current_step=self.current_step,
                current_batch=self.current_batch,
                total_batches=self.total_batches,
                progress=self.progress,
                total=self.total,
                cancelled=self.cancelled,
                completed=self.completed,
                error=self.error,
                result=self.result if self.completed and not self.error else None,
            )

    def summary(self) -> Dict[str, Any]:
        """Diagnostic view used by the job listing: no result payload."""
        snap = self.snapshot()
        data = snap.model_dump(by_alias=True, exclude={"result"})
        data["dateFilter"] = self.date_filter
        data["createdAt"] = self.created_at.isoformat()
        data["completedAt"] = self.completed_at.isoformat() if self.completed_at else None
        return data
