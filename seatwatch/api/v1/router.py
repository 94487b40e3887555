"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from seatwatch.api.v1.health import router as health_router
from seatwatch.api.v1.jobs import router as jobs_router
from seatwatch.api.v1.data import router as data_router
from seatwatch.api.v1.browser import router as browser_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(jobs_router, tags=["jobs"])
v1_router.include_router(data_router, tags=["data"])

# Compatibility shim: mounts the dashboard's original /api/* paths
browser_router_compat = APIRouter(prefix="/api")
browser_router_compat.include_router(browser_router, tags=["browser"])
browser_router_compat.include_router(data_router, tags=["browser"])
