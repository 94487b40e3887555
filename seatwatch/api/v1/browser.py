"""Browser-facing compatibility API.

Provides the paths and response shapes the dashboard already uses:
  POST /anomaly-detect          start a pipeline run, 202 with jobId
  GET  /anomaly-detect/status   poll job progress (?jobId=...)
  POST /anomaly-detect/cancel   cancel a run ({"jobId": ...})
  GET  /debug/jobs              list every job held in memory
  POST /log-error               record a client-side error report

This is a thin layer over the same dispatcher as /api/v1/jobs.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from seatwatch.api.deps import get_dispatcher
from seatwatch.db.queries import parse_date_filter
from seatwatch.errors import JobNotFoundError
from seatwatch.jobs.dispatcher import JobDispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


async def _json_body(request: Request) -> Optional[Dict[str, Any]]:
    """Parse an optional JSON object body. Returns None if it is not valid JSON."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


# ---------------------------------------------------------------------------
# POST /anomaly-detect
# ---------------------------------------------------------------------------

@router.post("/anomaly-detect")
async def start_anomaly_detection(request: Request, dispatcher: JobDispatcher = Depends(get_dispatcher)):
    """Start the pipeline. A malformed date is ignored (no filter), as the dashboard expects."""
    body = await _json_body(request)
    if body is None:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})

    date = body.get("date")
    date_filter = parse_date_filter(date if isinstance(date, str) else None, strict=False)
    job = await dispatcher.submit(date_filter)
    logger.info("Started job %s%s", job.id, f" for date {date_filter}" if date_filter else "")
    return JSONResponse(
        status_code=202,
        content={"jobId": job.id, "message": "Job started", "status": "processing"},
    )


# ---------------------------------------------------------------------------
# GET /anomaly-detect/status
# ---------------------------------------------------------------------------

@router.get("/anomaly-detect/status")
async def anomaly_detection_status(
    job_id: Optional[str] = Query(None, alias="jobId"),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    if not job_id:
        return JSONResponse(status_code=404, content={"error": "Job not found"})
    try:
        snapshot = await dispatcher.get_status(job_id)
    except JobNotFoundError:
        return JSONResponse(status_code=404, content={"error": "Job not found"})

    response = snapshot.model_dump(by_alias=True)
    if response.get("result") is None:
        response.pop("result", None)
    return response


# ---------------------------------------------------------------------------
# POST /anomaly-detect/cancel
# ---------------------------------------------------------------------------

@router.post("/anomaly-detect/cancel")
async def cancel_anomaly_detection(request: Request, dispatcher: JobDispatcher = Depends(get_dispatcher)):
    body = await _json_body(request)
    if body is None:
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid JSON"})

    job_id = body.get("jobId")
    if not isinstance(job_id, str) or not job_id:
        return JSONResponse(status_code=404, content={"success": False, "message": "Job not found"})
    try:
        return await dispatcher.cancel(job_id)
    except JobNotFoundError:
        return JSONResponse(status_code=404, content={"success": False, "message": "Job not found"})


# ---------------------------------------------------------------------------
# GET /debug/jobs
# ---------------------------------------------------------------------------

@router.get("/debug/jobs")
async def debug_jobs(dispatcher: JobDispatcher = Depends(get_dispatcher)):
    jobs = await dispatcher.list_jobs()
    return {"totalJobs": len(jobs), "jobs": jobs}


# ---------------------------------------------------------------------------
# POST /log-error
# ---------------------------------------------------------------------------

@router.post("/log-error")
async def log_client_error(request: Request):
    body = await _json_body(request)
    if body is None:
        logger.error("Failed to parse client error report")
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})
    logger.error("Client-side error reported: %s", json.dumps(body, default=str))
    return {"received": True}
