"""Health check endpoint."""

from fastapi import APIRouter, Request
import platform
import sys

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service health, job counts, and system info."""
    state = request.app.state
    settings = state.settings
    registry = getattr(state, "registry", None)
    jobs = registry.list() if registry is not None else []

    return {
        "status": "healthy",
        "warehouse_configured": bool(settings.databricks_token),
        "warehouse_host": settings.databricks_base_url,
        "model_endpoint": settings.model_endpoint_name,
        "jobs": {
            "total": len(jobs),
            "running": sum(1 for j in jobs if not j.completed),
        },
        "python_version": sys.version,
        "platform": platform.platform(),
    }
