"""Seatwatch backend - FastAPI application.

Serves the flight-seat dashboard API and runs the asynchronous anomaly
detection pipeline as in-process jobs that clients poll for status.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from seatwatch.api.v1.router import v1_router, browser_router_compat
from seatwatch.api.v1.health import router as health_root_router
from seatwatch.config import Settings, settings as default_settings
from seatwatch.db.databricks_client import DatabricksSQLClient
from seatwatch.db.lookup import IataLookup
from seatwatch.jobs.in_process_queue import InProcessQueue
from seatwatch.jobs.pipeline import AnomalyPipeline, PipelineOptions
from seatwatch.jobs.registry import JobRegistry
from seatwatch.logging_config import configure_logging
from seatwatch.models.serving_client import ServingClient

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    query_executor=None,
    inference_client=None,
) -> FastAPI:
    """Build the application.

    The registry, pipeline and dispatcher are created in the lifespan and
    exposed on `app.state`. Collaborators can be injected (tests); otherwise
    they are built on a shared httpx client.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Seatwatch backend on port %d", settings.service_port)
        logger.info("Warehouse: %s (warehouse %s)", settings.databricks_base_url, settings.warehouse_id)
        if not settings.databricks_token:
            logger.warning("DATABRICKS_TOKEN is not set; warehouse and model calls will fail")

        http = httpx.AsyncClient(
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )
        executor = query_executor or DatabricksSQLClient(http, settings)
        inference = inference_client or ServingClient(http, settings)

        registry = JobRegistry()
        pipeline = AnomalyPipeline(
            query_executor=executor,
            inference_client=inference,
            lookup=IataLookup(executor, settings.iata_table),
            options=PipelineOptions.from_settings(settings),
        )
        dispatcher = InProcessQueue(
            registry,
            worker_fn=pipeline.run,
            max_concurrent=settings.max_concurrent_jobs,
            retention_seconds=settings.job_retention_seconds,
        )
        await dispatcher.start()
        logger.info("Job dispatcher started")

        app.state.registry = registry
        app.state.dispatcher = dispatcher
        app.state.query_executor = executor

        yield

        logger.info("Shutting down Seatwatch backend")
        await dispatcher.stop()
        registry.close()
        await http.aclose()

    app = FastAPI(
        title="Seatwatch Service",
        description="Flight seat dashboard data and asynchronous anomaly detection",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_root_router, tags=["health"])  # GET /health at root
    app.include_router(v1_router)  # All /api/v1/* endpoints
    app.include_router(browser_router_compat)  # /api/anomaly-detect, /api/data, ... compat layer
    return app


configure_logging(default_settings.log_level, default_settings.log_format)

app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("seatwatch.main:app", host="0.0.0.0", port=default_settings.service_port)
