"""Dashboard table endpoints: synchronous warehouse reads."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from seatwatch.api.deps import get_query_executor, get_settings
from seatwatch.config import Settings
from seatwatch.db import queries
from seatwatch.db.databricks_client import QueryResult
from seatwatch.errors import QueryError

logger = logging.getLogger(__name__)

router = APIRouter()

DATE_COLUMN = "flight_leg_departure_date"
DEFAULT_LIMIT = 100
MAX_LIMIT = 10000


def _error_response(error: QueryError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": str(error),
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "details": error.details,
        },
    )


def parse_limit(value: Optional[str]) -> int:
    """Row limit from the query string. Missing, malformed or non-positive values mean 100."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    if limit <= 0:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)


def fold_trip_columns(result: QueryResult) -> Dict[str, Any]:
    """Map temporary trip aliases back to display names.

    A trip-level value wins over the flight-leg value for the same display
    column unless it is null.
    """
    columns: List[str] = []
    for col in result.columns:
        display = queries.TRIP_ALIAS_TO_DISPLAY.get(col, col)
        if display not in columns:
            columns.append(display)

    rows = []
    for row in result.rows:
        mapped: Dict[str, Any] = {}
        for col, value in row.items():
            display = queries.TRIP_ALIAS_TO_DISPLAY.get(col)
            if display is None:
                mapped.setdefault(col, value)
            elif value is not None:
                mapped[display] = value
            else:
                mapped.setdefault(display, row.get(display))
        rows.append(mapped)
    return {"columns": columns, "data": rows, "rowCount": result.row_count}


@router.get("/data")
async def flight_data(
    limit: Optional[str] = None,
    date: Optional[str] = None,
    executor=Depends(get_query_executor),
    settings: Settings = Depends(get_settings),
):
    """Flight table for the dashboard, optionally filtered to one departure date."""
    limit = parse_limit(limit)
    table = settings.flights_table
    date_filter = queries.parse_date_filter(date, strict=False)
    unfiltered = queries.flights_statement(table, limit)

    try:
        try:
            result = await executor.execute(queries.flights_statement(table, limit, date_filter))
        except QueryError as e:
            if not date_filter or DATE_COLUMN not in str(e):
                raise
            logger.warning("Date column error detected, retrying without date filter: %s", e)
            result = await executor.execute(unfiltered)
        else:
            if date_filter and not result.rows:
                try:
                    await executor.execute(queries.date_probe_statement(table))
                    logger.warning("Date filter returned 0 rows - no data matches date %s", date_filter)
                except QueryError as e:
                    logger.warning("Date column may not exist, retrying without date filter: %s", e)
                    result = await executor.execute(unfiltered)
    except QueryError as e:
        logger.error("Flight data query failed: %s", e)
        return _error_response(e)

    payload = fold_trip_columns(result)
    logger.info("Flight data: %d columns, %d rows", len(payload["columns"]), len(payload["data"]))
    return payload


@router.get("/anomaly-updates")
async def anomaly_updates(
    limit: Optional[str] = None,
    date: Optional[str] = None,
    executor=Depends(get_query_executor),
    settings: Settings = Depends(get_settings),
):
    """Rows of the anomaly updates table with display column names."""
    limit = parse_limit(limit)
    date_filter = queries.parse_date_filter(date, strict=False)
    statement = queries.anomaly_updates_statement(settings.anomaly_table, limit, date_filter)
    try:
        result = await executor.execute(statement)
    except QueryError as e:
        logger.error("Anomaly updates query failed: %s", e)
        return _error_response(e)
    return {"columns": result.columns, "data": result.rows, "rowCount": result.row_count}
