"""FastAPI dependencies resolving the services owned by the app lifespan."""

from fastapi import HTTPException, Request

from seatwatch.config import Settings
from seatwatch.jobs.dispatcher import JobDispatcher


def get_dispatcher(request: Request) -> JobDispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")
    return dispatcher


def get_query_executor(request: Request):
    executor = getattr(request.app.state, "query_executor", None)
    if executor is None:
        raise HTTPException(status_code=503, detail="Query executor not initialized")
    return executor


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
