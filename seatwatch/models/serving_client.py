"""Client for the hosted anomaly-detection model (Databricks model serving).

The model labels each aggregated seat count: -1 = anomalous, 1 = normal.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from seatwatch.config import Settings
from seatwatch.errors import InferenceError
from seatwatch.jobs.cancellation import CancelToken

logger = logging.getLogger(__name__)

ANOMALOUS = -1
NORMAL = 1

FEATURE_COLUMNS = ["avg_seats"]


def fallback_predictions(values: Sequence[float], threshold: float) -> List[int]:
    """Local stand-in for the model: anomalous when the value exceeds threshold."""
    return [ANOMALOUS if v > threshold else NORMAL for v in values]


def normalize_prediction(raw: Any) -> int:
    """Coerce one model output to -1/1. Anything unrecognised counts as normal."""
    if isinstance(raw, (list, tuple)) and len(raw) == 1:
        raw = raw[0]
    if isinstance(raw, dict):
        raw = raw.get("prediction", raw.get("anomaly"))
    try:
        return ANOMALOUS if int(float(raw)) == ANOMALOUS else NORMAL
    except (TypeError, ValueError):
        return NORMAL


class ServingClient:
    """Invokes the serving endpoint with one batch of feature vectors."""

    def __init__(self, http: httpx.AsyncClient, settings: Settings):
        self._http = http
        self._settings = settings

    @property
    def endpoint_url(self) -> str:
        s = self._settings
        return f"{s.databricks_base_url}/serving-endpoints/{s.model_endpoint_name}/invocations"

    async def invoke(
        self,
        batch: Sequence[float],
        cancel_token: Optional[CancelToken] = None,
    ) -> List[int]:
        """Return one label per input value.

        Raises InferenceError for transport failures, timeouts and non-200
        responses; CancellationError if the token aborts the call.
        """
        token = cancel_token or CancelToken()
        if not self._settings.databricks_token:
            raise InferenceError("DATABRICKS_TOKEN must be set")

        payload = {
            "dataframe_split": {
                "columns": FEATURE_COLUMNS,
                "data": [[v] for v in batch],
            }
        }
        return await token.guard(self._post(payload))

    async def _post(self, payload: Dict[str, Any]) -> List[int]:
        try:
            response = await self._http.post(
                self.endpoint_url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._settings.databricks_token}",
                    "Content-Type": "application/json",
                },
                timeout=self._settings.inference_timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise InferenceError(f"Model endpoint request failed: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise InferenceError(f"Model endpoint returned status {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise InferenceError(f"Model endpoint returned invalid JSON: {e}") from e

        predictions = body.get("predictions") if isinstance(body, dict) else None
        if not isinstance(predictions, list):
            raise InferenceError("Model endpoint response has no predictions")
        return [normalize_prediction(p) for p in predictions]
