import asyncio

import pytest

from conftest import FakeInference, FakeWarehouse, agg_rows, make_pipeline
from seatwatch.errors import CANCELLED_MESSAGE
from seatwatch.jobs.models import JobRecord
from seatwatch.jobs.pipeline import PipelineOptions, make_batches, step_statuses

IATA = [
    {"iata": "JFK", "city": "New York", "country": "United States"},
    {"iata": "LHR", "city": "London", "country": "United Kingdom"},
]


def run_job(pipeline, job=None):
    job = job or JobRecord()
    asyncio.run(pipeline.run(job))
    return job


def test_successful_run_scores_and_enriches():
    warehouse = FakeWarehouse(
        aggregated=agg_rows(("JFK_to_LHR", 2, 400), ("CDG_to_AMS", 3, 100), ("CDG_to_AMS", 4, 100), ("AMS_to_CDG", 5, 100)),
        iata=IATA,
    )
    inference = FakeInference(predictions=[-1, 1, 1, 1])

    job = run_job(make_pipeline(warehouse, inference))

    snap = job.snapshot()
    assert snap.completed is True
    assert snap.error is None
    assert snap.current_step == 7
    assert snap.current_batch == snap.total_batches == 1
    assert snap.progress == snap.total == 4

    result = snap.result
    assert result["success"] is True
    assert result["jobId"] == job.id
    assert result["steps"] == step_statuses(7)
    assert result["summary"] == {"total": 4, "anomalies": 1, "normal": 3, "anomalyPercentage": 25.0}
    assert result["inference"] == {"source": "model", "fallbackBatches": 0, "totalBatches": 1}

    [anomaly] = result["anomalies"]
    assert anomaly["route"] == "JFK_to_LHR"
    assert anomaly["day_of_week"] == 2
    assert anomaly["deviation_std"] == pytest.approx(1.73)
    assert anomaly["deviation_pct"] == pytest.approx(128.6)
    assert anomaly["origin_city_full"] == "New York"
    assert anomaly["destination_city_full"] == "London"
    assert result["enriched"] == [anomaly]

    assert inference.calls == [[400.0, 100.0, 100.0, 100.0]]
    # load, features, aggregate, iata
    assert len(warehouse.statements) == 4
    assert all(t is job.cancel_token for t in warehouse.tokens)


def test_date_filter_reaches_every_query():
    warehouse = FakeWarehouse(aggregated=agg_rows(("JFK_to_LHR", 2, 120)))
    run_job(make_pipeline(warehouse, FakeInference()), JobRecord(date_filter="2024-01-15"))
    assert all("to_date('2024-01-15')" in s for s in warehouse.statements[:3])


def test_empty_aggregation_short_circuits():
    warehouse = FakeWarehouse(aggregated=[])
    inference = FakeInference()

    job = run_job(make_pipeline(warehouse, inference))

    snap = job.snapshot()
    assert snap.completed is True
    assert snap.error is None
    assert snap.current_step == 3
    assert snap.result["success"] is False
    assert snap.result["anomalies"] == []
    assert snap.result["steps"] == {
        "step1": "completed", "step2": "completed", "step3": "completed",
        "step4": "skipped", "step5": "skipped", "step6": "skipped", "step7": "skipped",
    }
    assert inference.calls == []


def test_inference_failure_falls_back_to_threshold():
    warehouse = FakeWarehouse(aggregated=agg_rows(("JFK_to_LHR", 1, 350), ("CDG_to_AMS", 1, 200)))
    inference = FakeInference(fail=True)

    job = run_job(make_pipeline(warehouse, inference, PipelineOptions(fallback_threshold=300, inter_batch_delay_seconds=0)))

    result = job.snapshot().result
    assert result["success"] is True
    assert [a["route"] for a in result["anomalies"]] == ["JFK_to_LHR"]
    assert result["anomalies"][0]["anomaly"] == -1
    assert result["anomalies"][0]["prediction_source"] == "fallback"
    assert result["summary"]["normal"] == 1
    assert result["inference"]["source"] == "fallback"


def test_query_error_terminates_without_result():
    warehouse = FakeWarehouse(aggregated=agg_rows(("JFK_to_LHR", 1, 350)), fail_on="GROUP BY")

    job = run_job(make_pipeline(warehouse, FakeInference()))

    snap = job.snapshot()
    assert snap.completed is True
    assert snap.error == "Query failed: warehouse unavailable"
    assert snap.result is None
    assert snap.current_step == 3


def test_enrichment_failure_is_not_fatal():
    warehouse = FakeWarehouse(aggregated=agg_rows(("JFK_to_LHR", 1, 500), ("CDG_to_AMS", 1, 100)), iata_error=True)

    job = run_job(make_pipeline(warehouse, FakeInference(predictions=[-1, 1])))

    snap = job.snapshot()
    assert snap.error is None
    assert snap.result["summary"]["anomalies"] == 1
    assert snap.result["enriched"] == []
    assert "origin_city_full" not in snap.result["anomalies"][0]


def test_no_valid_seat_values_is_an_error():
    warehouse = FakeWarehouse(aggregated=agg_rows(("JFK_to_LHR", 1, None)))
    job = run_job(make_pipeline(warehouse, FakeInference()))
    assert job.snapshot().error == "No valid avg_seats values found"


def test_rows_without_prediction_default_to_normal():
    warehouse = FakeWarehouse(aggregated=agg_rows(("A_to_B", 1, 100), ("C_to_D", 1, 900)))
    job = run_job(make_pipeline(warehouse, FakeInference(predictions=[1])))
    assert job.snapshot().result["summary"]["anomalies"] == 0


def test_multiple_batches_track_progress():
    warehouse = FakeWarehouse(aggregated=agg_rows(*[(f"R{i}_to_X", 1, 100 + i) for i in range(5)]))
    seen = []
    job = JobRecord()

    def record(_call):
        snap = job.snapshot()
        seen.append((snap.current_batch, snap.total_batches, snap.progress, snap.total))

    inference = FakeInference(on_call=record)
    run_job(make_pipeline(warehouse, inference, PipelineOptions(batch_size=2, inter_batch_delay_seconds=0)), job)

    assert [len(c) for c in inference.calls] == [2, 2, 1]
    assert seen == [(1, 3, 0, 5), (2, 3, 2, 5), (3, 3, 4, 5)]
    snap = job.snapshot()
    assert (snap.current_batch, snap.progress) == (3, 5)


def test_cancel_between_batches():
    warehouse = FakeWarehouse(aggregated=agg_rows(*[(f"R{i}_to_X", 1, 100) for i in range(4)]))
    job = JobRecord()
    inference = FakeInference(on_call=lambda n: job.request_cancel() if n == 1 else None)

    run_job(make_pipeline(warehouse, inference, PipelineOptions(batch_size=2, inter_batch_delay_seconds=0)), job)

    snap = job.snapshot()
    assert len(inference.calls) == 1
    assert snap.cancelled is True
    assert snap.completed is True
    assert snap.error == CANCELLED_MESSAGE
    assert snap.result is None


def test_cancel_aborts_inflight_inference():
    warehouse = FakeWarehouse(aggregated=agg_rows(("JFK_to_LHR", 1, 350)))
    inference = FakeInference(block=True)
    job = JobRecord()

    async def scenario():
        task = asyncio.create_task(make_pipeline(warehouse, inference).run(job))
        await asyncio.wait_for(inference.started.wait(), timeout=2)
        job.request_cancel()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())

    snap = job.snapshot()
    assert snap.completed is True
    assert snap.error == CANCELLED_MESSAGE
    assert snap.current_step == 4


def test_cancel_before_start_stops_at_first_boundary():
    warehouse = FakeWarehouse(aggregated=agg_rows(("JFK_to_LHR", 1, 350)))
    job = JobRecord()
    job.request_cancel()

    run_job(make_pipeline(warehouse, FakeInference()), job)

    assert warehouse.statements == []
    assert job.snapshot().error == CANCELLED_MESSAGE


def test_cancel_during_warmup_wait():
    warehouse = FakeWarehouse(aggregated=agg_rows(("JFK_to_LHR", 1, 350)))
    inference = FakeInference()
    job = JobRecord()
    pipeline = make_pipeline(warehouse, inference, PipelineOptions(inference_warmup_seconds=30))

    async def scenario():
        task = asyncio.create_task(pipeline.run(job))
        while job.current_step < 4:
            await asyncio.sleep(0.01)
        job.request_cancel()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())
    assert inference.calls == []
    assert job.snapshot().error == CANCELLED_MESSAGE


def test_make_batches():
    assert make_batches([1, 2, 3], 0) == [[1, 2, 3]]
    assert make_batches([1, 2, 3], 2) == [[1, 2], [3]]
    assert make_batches([], 2) == []
