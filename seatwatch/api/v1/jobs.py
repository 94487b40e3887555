"""Job management API: submit pipeline runs, poll status and cancel them."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional

from seatwatch.api.deps import get_dispatcher
from seatwatch.db.queries import parse_date_filter
from seatwatch.errors import FilterValidationError, JobNotFoundError
from seatwatch.jobs.dispatcher import JobDispatcher

router = APIRouter()


class JobSubmitRequest(BaseModel):
    date: Optional[str] = None


class JobSubmitResponse(BaseModel):
    job_id: str
    status: str
    message: str


@router.post("/jobs", response_model=JobSubmitResponse, status_code=202)
async def submit_job(
    request: Optional[JobSubmitRequest] = None,
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """Start an anomaly detection run. Returns before any pipeline stage executes."""
    try:
        date_filter = parse_date_filter(request.date if request else None, strict=True)
    except FilterValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    job = await dispatcher.submit(date_filter)
    return JobSubmitResponse(
        job_id=job.id,
        status="processing",
        message="Job started. Poll GET /api/v1/jobs/{id} for status.",
    )


@router.get("/jobs")
async def list_jobs(dispatcher: JobDispatcher = Depends(get_dispatcher)):
    """Diagnostic listing of every job still held in memory."""
    jobs = await dispatcher.list_jobs()
    return {"total_jobs": len(jobs), "jobs": jobs}


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, dispatcher: JobDispatcher = Depends(get_dispatcher)):
    try:
        snapshot = await dispatcher.get_status(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    return snapshot.model_dump()


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, dispatcher: JobDispatcher = Depends(get_dispatcher)):
    """Request cancellation. Poll status to observe the terminal state."""
    try:
        return await dispatcher.cancel(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
