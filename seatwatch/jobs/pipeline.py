"""Seven-stage flight-seat anomaly detection pipeline.

Stages: load -> feature -> aggregate -> infer -> score -> enrich -> finalize.
One `run()` call drives one job to a terminal state, writing progress into
the job record as it goes. Every path (success, empty data, error,
cancellation) ends with `job.finish(...)`.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from seatwatch.config import Settings
from seatwatch.db import queries
from seatwatch.errors import (
    CancellationError,
    InferenceError,
    QueryError,
)
from seatwatch.jobs.cancellation import CancelToken
from seatwatch.jobs.models import TOTAL_STEPS, JobRecord
from seatwatch.models.serving_client import NORMAL, ANOMALOUS, fallback_predictions
from seatwatch.processing.deviation import compute_deviation, to_float
from seatwatch.processing.enrichment import apply_locations, route_codes

logger = logging.getLogger(__name__)

STEP_NAMES = {
    1: "Loading data",
    2: "Creating route features",
    3: "Aggregating data",
    4: "Invoking model endpoint",
    5: "Calculating metrics",
    6: "Enriching with IATA data",
    7: "Preparing results",
}


@dataclass
class PipelineOptions:
    anomaly_table: str = "mc.amadeus2.anomaly_updates"
    batch_size: int = 0
    fallback_threshold: float = 300.0
    inference_warmup_seconds: float = 0.0
    inter_batch_delay_seconds: float = 0.5
    finalize_delay_seconds: float = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineOptions":
        return cls(
            anomaly_table=settings.anomaly_table,
            batch_size=settings.inference_batch_size,
            fallback_threshold=settings.fallback_threshold,
            inference_warmup_seconds=settings.inference_warmup_seconds,
            inter_batch_delay_seconds=settings.inter_batch_delay_seconds,
            finalize_delay_seconds=settings.finalize_delay_seconds,
        )


def step_statuses(completed_through: int) -> Dict[str, str]:
    return {
        f"step{i}": "completed" if i <= completed_through else "skipped"
        for i in range(1, TOTAL_STEPS + 1)
    }


def make_batches(values: List[float], batch_size: int) -> List[List[float]]:
    """Split values into batches; batch_size <= 0 means one batch of everything."""
    if not values:
        return []
    size = batch_size if batch_size > 0 else len(values)
    return [values[i:i + size] for i in range(0, len(values), size)]


class AnomalyPipeline:
    """Runs the anomaly detection pipeline against injected collaborators.

    query_executor: `await execute(statement, cancel_token) -> QueryResult`
    inference_client: `await invoke(values, cancel_token) -> list[int]`
    lookup: `await lookup(codes, cancel_token) -> {code: {city, country}}`
    """

    def __init__(self, query_executor, inference_client, lookup, options: Optional[PipelineOptions] = None):
        self._query = query_executor
        self._inference = inference_client
        self._lookup = lookup
        self._options = options or PipelineOptions()

    async def run(self, job: JobRecord) -> None:
        log_extra = {"job_id": job.id}
        token = job.cancel_token
        try:
            result = await self._execute(job, token)
        except CancellationError as e:
            logger.info("Job %s cancelled at step %d", job.id, job.current_step, extra=log_extra)
            job.finish(error=str(e))
            return
        except Exception as e:
            logger.error("Job %s failed at step %d: %s", job.id, job.current_step, e,
                         exc_info=True, extra=log_extra)
            job.finish(error=str(e) or type(e).__name__)
            return

        result["jobId"] = job.id
        if job.finish(result=result):
            summary = result.get("summary", {})
            logger.info(
                "Job %s completed: %s total, %s anomalies, %d enriched",
                job.id, summary.get("total"), summary.get("anomalies"),
                len(result.get("enriched", [])), extra=log_extra,
            )

    def _enter(self, job: JobRecord, step: int) -> None:
        job.cancel_token.raise_if_cancelled()
        job.advance_to(step)
        logger.info("[Step %d/%d] %s... (job %s)", step, TOTAL_STEPS, STEP_NAMES[step], job.id,
                    extra={"job_id": job.id, "step": step})

    async def _execute(self, job: JobRecord, token: CancelToken) -> Dict[str, Any]:
        opts = self._options
        date_filter = job.date_filter

        self._enter(job, 1)
        raw = await self._query.execute(queries.load_statement(opts.anomaly_table, date_filter), token)
        logger.info("[Step 1/7] Loaded %d records", len(raw.rows))

        self._enter(job, 2)
        features = await self._query.execute(queries.route_feature_statement(opts.anomaly_table, date_filter), token)
        logger.info("[Step 2/7] Created %d route features", len(features.rows))

        self._enter(job, 3)
        aggregated = await self._query.execute(queries.aggregate_statement(opts.anomaly_table, date_filter), token)
        rows = [dict(r) for r in aggregated.rows]
        logger.info("[Step 3/7] Aggregated to %d route-day combinations", len(rows))
        if not rows:
            logger.info("No data found%s", f" for {date_filter}" if date_filter else "")
            return {
                "success": False,
                "message": "No data found for the selected date",
                "steps": step_statuses(3),
                "anomalies": [],
                "enriched": [],
                "summary": {"total": 0, "anomalies": 0, "normal": 0, "anomalyPercentage": 0.0},
            }
        for row in rows:
            row["avg_seats"] = to_float(row.get("avg_seats"))
            day = to_float(row.get("day_of_week"))
            row["day_of_week"] = int(day) if day is not None else None

        self._enter(job, 4)
        inference = await self._infer(job, token, rows)

        self._enter(job, 5)
        anomalies = [r for r in rows if r["anomaly"] == ANOMALOUS]
        normal = [r for r in rows if r["anomaly"] == NORMAL]
        stats = compute_deviation([r["avg_seats"] for r in rows], anomalies)
        logger.info("[Step 5/7] Calculated metrics for %d anomalies (mean=%.2f, std=%.2f)",
                    len(anomalies), stats["mean"], stats["std"])

        self._enter(job, 6)
        enriched = await self._enrich(job, token, anomalies)

        self._enter(job, 7)
        await token.sleep(opts.finalize_delay_seconds)
        return {
            "success": True,
            "steps": step_statuses(TOTAL_STEPS),
            "anomalies": anomalies,
            "enriched": enriched,
            "summary": {
                "total": len(rows),
                "anomalies": len(anomalies),
                "normal": len(normal),
                "anomalyPercentage": round(len(anomalies) / len(rows) * 100, 2),
            },
            "inference": inference,
        }

    async def _infer(self, job: JobRecord, token: CancelToken, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        opts = self._options
        await token.sleep(opts.inference_warmup_seconds)

        scored = [r for r in rows if r["avg_seats"] is not None]
        if not scored:
            raise QueryError("No valid avg_seats values found")
        values = [r["avg_seats"] for r in scored]
        batches = make_batches(values, opts.batch_size)
        job.set_batches(total_batches=len(batches), total=len(values))
        logger.info("[Step 4/7] Processing %d records in %d batches", len(values), len(batches))

        fallback_batches = 0
        offset = 0
        for index, batch in enumerate(batches):
            token.raise_if_cancelled()
            job.start_batch(index + 1)
            try:
                predictions = await self._inference.invoke(batch, token)
                source = "model"
            except InferenceError as e:
                logger.warning("[Step 4/7] Batch %d/%d model endpoint unavailable (%s), using fallback predictions",
                               index + 1, len(batches), e, extra={"job_id": job.id, "step": 4})
                predictions = fallback_predictions(batch, opts.fallback_threshold)
                source = "fallback"
                fallback_batches += 1

            for i, row in enumerate(scored[offset:offset + len(batch)]):
                row["anomaly"] = predictions[i] if i < len(predictions) else NORMAL
                row["prediction_source"] = source
            offset += len(batch)
            job.record_batch(offset)

            if index < len(batches) - 1:
                await token.sleep(opts.inter_batch_delay_seconds)

        for row in rows:
            row.setdefault("anomaly", NORMAL)
            row.setdefault("prediction_source", "none")

        if fallback_batches == 0:
            source = "model"
        elif fallback_batches == len(batches):
            source = "fallback"
        else:
            source = "mixed"
        return {"source": source, "fallbackBatches": fallback_batches, "totalBatches": len(batches)}

    async def _enrich(self, job: JobRecord, token: CancelToken, anomalies: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        codes = route_codes(anomalies)
        if not codes:
            return []
        try:
            locations = await self._lookup.lookup(codes, token)
        except CancellationError:
            raise
        except Exception as e:
            logger.warning("[Step 6/7] IATA enrichment failed (non-critical): %s", e,
                           extra={"job_id": job.id, "step": 6})
            return []
        enriched = apply_locations(anomalies, locations)
        logger.info("[Step 6/7] Enriched %d anomalies with IATA data", len(enriched))
        return enriched
