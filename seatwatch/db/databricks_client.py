"""Databricks SQL Statement Execution client.

Submits a statement to the warehouse, polls until it reaches a terminal
state, and normalizes the columnar result into a list of row dicts.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from seatwatch.config import Settings
from seatwatch.errors import QueryError
from seatwatch.jobs.cancellation import CancelToken

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    columns: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0


def normalize_result(payload: Dict[str, Any]) -> QueryResult:
    """Turn a SUCCEEDED statement response into a QueryResult.

    Column names are looked up in the manifest first, then on the result
    itself, and as a last resort inferred from the width of the first row.
    """
    result = payload.get("result")
    if not result:
        raise QueryError("Query succeeded but result is empty")

    manifest = payload.get("manifest") or {}
    schema = manifest.get("schema") or {}
    data_array = result.get("data_array") or []

    if schema.get("columns"):
        columns = [c["name"] for c in schema["columns"]]
    elif schema.get("fields"):
        columns = [f["name"] for f in schema["fields"]]
    elif isinstance(result.get("columns"), list) and result["columns"]:
        columns = [c.get("name") if isinstance(c, dict) else str(c) for c in result["columns"]]
    elif data_array and isinstance(data_array[0], list):
        columns = [f"column_{i + 1}" for i in range(len(data_array[0]))]
        logger.warning("No column metadata in response, using inferred names: %s", columns)
    else:
        raise QueryError("Query succeeded but no columns found and cannot infer from data")

    rows = [dict(zip(columns, row)) for row in data_array]
    return QueryResult(
        columns=columns,
        rows=rows,
        row_count=result.get("row_count") or len(rows),
    )


class DatabricksSQLClient:
    """Async client for /api/2.0/sql/statements. Raises QueryError on any failure."""

    def __init__(self, http: httpx.AsyncClient, settings: Settings):
        self._http = http
        self._settings = settings

    @property
    def base_url(self) -> str:
        return self._settings.databricks_base_url

    def _headers(self) -> Dict[str, str]:
        if not self._settings.databricks_token:
            raise QueryError("DATABRICKS_TOKEN must be set")
        return {
            "Authorization": f"Bearer {self._settings.databricks_token}",
            "Content-Type": "application/json",
        }

    async def execute(self, statement: str, cancel_token: Optional[CancelToken] = None) -> QueryResult:
        token = cancel_token or CancelToken()
        headers = self._headers()
        s = self._settings
        logger.debug("Executing statement on warehouse %s: %s", s.warehouse_id, statement)

        response = await token.guard(self._request(
            "POST",
            f"{self.base_url}/api/2.0/sql/statements",
            headers=headers,
            json={
                "warehouse_id": s.warehouse_id,
                "statement": statement,
                "wait_timeout": s.query_wait_timeout,
            },
            timeout=s.query_request_timeout_seconds,
        ))
        statement_id = response.get("statement_id")
        if not statement_id:
            raise QueryError("Failed to get statement ID", details=response)

        result_url = f"{self.base_url}/api/2.0/sql/statements/{statement_id}"
        for attempt in range(s.query_poll_attempts):
            payload = await token.guard(self._request(
                "GET", result_url, headers=headers, timeout=s.query_poll_timeout_seconds,
            ))
            state = (payload.get("status") or {}).get("state")
            logger.debug("Statement %s poll %d/%d: %s", statement_id, attempt + 1, s.query_poll_attempts, state)

            if state == "SUCCEEDED":
                result = normalize_result(payload)
                logger.info("Statement %s succeeded: %d rows", statement_id, len(result.rows))
                return result
            if state == "FAILED":
                error = (payload.get("status") or {}).get("error") or {}
                raise QueryError(
                    f"Query failed: {error.get('message') or 'Unknown error'}",
                    error_code=error.get("error_code"),
                    details=error,
                )
            if state == "CANCELED":
                raise QueryError("Query was canceled")

            await token.sleep(s.query_poll_interval_seconds)

        raise QueryError("Query timeout - exceeded max attempts")

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._http.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            details = _safe_json(e.response)
            message = details.get("message") if isinstance(details, dict) else None
            raise QueryError(
                f"Warehouse returned HTTP {e.response.status_code}: {message or e.response.reason_phrase}",
                error_code=details.get("error_code") if isinstance(details, dict) else None,
                details=details,
            ) from e
        except httpx.HTTPError as e:
            raise QueryError(f"Warehouse request failed: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise QueryError(f"Warehouse returned invalid JSON: {e}") from e


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
