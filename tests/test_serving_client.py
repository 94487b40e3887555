import asyncio
import json

import httpx
import pytest

from seatwatch.config import Settings
from seatwatch.errors import CancellationError, InferenceError
from seatwatch.jobs.cancellation import CancelToken
from seatwatch.models.serving_client import (
    ServingClient,
    fallback_predictions,
    normalize_prediction,
)


def invoke_with(handler, batch, token=None, **overrides):
    settings = Settings(databricks_host="adb-test.azuredatabricks.net", databricks_token="secret", **overrides)

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await ServingClient(http, settings).invoke(batch, token)

    return asyncio.run(scenario())


def test_invoke_sends_dataframe_split():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"predictions": [-1, 1, 1]})

    assert invoke_with(handler, [420.0, 150.0, 180.0]) == [-1, 1, 1]
    assert seen["url"] == (
        "https://adb-test.azuredatabricks.net/serving-endpoints/flight-seat-anomaly-detector/invocations"
    )
    assert seen["body"] == {"dataframe_split": {"columns": ["avg_seats"], "data": [[420.0], [150.0], [180.0]]}}


@pytest.mark.parametrize("status", [404, 500, 503])
def test_non_200_is_inference_error(status):
    with pytest.raises(InferenceError, match=str(status)):
        invoke_with(lambda request: httpx.Response(status, text="unavailable"), [1.0])


def test_timeout_is_inference_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(InferenceError, match="ReadTimeout"):
        invoke_with(handler, [1.0])


def test_missing_predictions_is_inference_error():
    with pytest.raises(InferenceError, match="no predictions"):
        invoke_with(lambda request: httpx.Response(200, json={"outputs": []}), [1.0])


def test_cancel_aborts_inflight_call():
    token = CancelToken()

    async def handler(request):
        token.cancel()
        await asyncio.sleep(3600)

    with pytest.raises(CancellationError):
        invoke_with(handler, [1.0], token=token)


def test_fallback_predictions_threshold():
    assert fallback_predictions([350, 200, 300], threshold=300) == [-1, 1, 1]


@pytest.mark.parametrize(
    "raw, expected",
    [(-1, -1), (1, 1), ("-1", -1), ([-1], -1), (-1.0, -1), ({"prediction": -1}, -1), (0, 1), (None, 1), ("x", 1)],
)
def test_normalize_prediction(raw, expected):
    assert normalize_prediction(raw) == expected
