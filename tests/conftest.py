import asyncio
import os

# Set default env vars for tests before any seatwatch imports
os.environ.setdefault("DATABRICKS_TOKEN", "test-token")
os.environ.setdefault("DATABRICKS_HOST", "https://adb-test.azuredatabricks.net")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from seatwatch.db.databricks_client import QueryResult
from seatwatch.db.lookup import IataLookup
from seatwatch.errors import InferenceError, QueryError
from seatwatch.jobs.pipeline import AnomalyPipeline, PipelineOptions

AGG_COLUMNS = ["route", "day_of_week", "avg_seats"]


def agg_rows(*items):
    """(route, day, seats) tuples -> warehouse-style string rows."""
    return [
        {"route": route, "day_of_week": str(day), "avg_seats": None if seats is None else str(seats)}
        for route, day, seats in items
    ]


class FakeWarehouse:
    """Stands in for DatabricksSQLClient, answering by statement shape."""

    def __init__(self, aggregated=None, iata=None, fail_on=None, delay=0.0, iata_error=False):
        self.aggregated = aggregated or []
        self.iata = iata or []
        self.fail_on = fail_on
        self.delay = delay
        self.iata_error = iata_error
        self.statements = []
        self.tokens = []

    async def execute(self, statement, cancel_token=None):
        self.statements.append(statement)
        self.tokens.append(cancel_token)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_on and self.fail_on in statement:
            raise QueryError("Query failed: warehouse unavailable")
        if "WHERE iata IN" in statement:
            if self.iata_error:
                raise QueryError("Query failed: TABLE_OR_VIEW_NOT_FOUND")
            return QueryResult(columns=["iata", "city", "country"], rows=list(self.iata), row_count=len(self.iata))
        rows = [dict(r) for r in self.aggregated]
        return QueryResult(columns=AGG_COLUMNS, rows=rows, row_count=len(rows))


class FakeInference:
    """Stands in for ServingClient."""

    def __init__(self, predictions=None, fail=False, on_call=None, block=False):
        self.predictions = predictions
        self.fail = fail
        self.on_call = on_call
        self.block = block
        self.calls = []
        self.started = asyncio.Event() if block else None

    async def invoke(self, batch, cancel_token=None):
        self.calls.append(list(batch))
        if self.on_call:
            self.on_call(len(self.calls))
        if self.block:
            self.started.set()
            await cancel_token.guard(asyncio.sleep(3600))
        if self.fail:
            raise InferenceError("Model endpoint returned status 503")
        if self.predictions is not None:
            return list(self.predictions)
        return [1] * len(batch)


def make_pipeline(warehouse, inference, options=None):
    return AnomalyPipeline(
        query_executor=warehouse,
        inference_client=inference,
        lookup=IataLookup(warehouse, "mc.amadeus2.iata"),
        options=options or PipelineOptions(inter_batch_delay_seconds=0.0),
    )
