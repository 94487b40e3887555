"""Error taxonomy shared by the pipeline, its collaborators and the API."""

from typing import Any, Optional

CANCELLED_MESSAGE = "Job cancelled by user"
SHUTDOWN_MESSAGE = "Job aborted: service shutting down"


class SeatwatchError(Exception):
    """Base class for all service errors."""


class FilterValidationError(SeatwatchError):
    """A request filter (e.g. the date) is malformed. Raised before any job exists."""


class QueryError(SeatwatchError):
    """Warehouse statement failed, was canceled, or timed out. Fatal to a pipeline run."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details


class InferenceError(SeatwatchError):
    """Model-serving call failed. The pipeline degrades to local predictions."""


class EnrichmentError(SeatwatchError):
    """Location lookup failed. Logged and skipped by the pipeline."""


class CancellationError(SeatwatchError):
    """The job's cancel token fired."""

    def __init__(self, message: str = CANCELLED_MESSAGE):
        super().__init__(message)


class JobNotFoundError(SeatwatchError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id
