"""IATA code -> city/country lookup over the warehouse."""

import logging
from typing import Dict, Iterable, Optional

from seatwatch.db.queries import iata_statement
from seatwatch.errors import EnrichmentError, QueryError
from seatwatch.jobs.cancellation import CancelToken

logger = logging.getLogger(__name__)


class IataLookup:
    def __init__(self, query_executor, table: str):
        self._executor = query_executor
        self._table = table

    async def lookup(
        self,
        codes: Iterable[str],
        cancel_token: Optional[CancelToken] = None,
    ) -> Dict[str, Dict[str, Optional[str]]]:
        """Map each known code to {"city", "country"}. Unknown codes are absent."""
        codes = sorted({c for c in codes if c})
        if not codes:
            return {}
        try:
            result = await self._executor.execute(iata_statement(self._table, codes), cancel_token)
        except QueryError as e:
            raise EnrichmentError(f"IATA lookup failed: {e}") from e

        table: Dict[str, Dict[str, Optional[str]]] = {}
        for row in result.rows:
            code = row.get("iata")
            if code:
                table[code] = {"city": row.get("city"), "country": row.get("country")}
        logger.debug("Resolved %d of %d IATA codes", len(table), len(codes))
        return table
