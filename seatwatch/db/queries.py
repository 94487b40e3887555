"""SQL statement builders for the warehouse tables the service reads."""

import logging
import re
from datetime import datetime
from typing import Dict, Iterable, Optional

from seatwatch.errors import FilterValidationError

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ROUTE_SEPARATOR = "_to_"

# Dashboard flight table: SQL column -> alias. Aliases must be unique in SQL,
# so trip-level columns get a temporary "Trip" alias folded back by the API.
FLIGHT_COLUMNS: Dict[str, str] = {
    "flight_leg_number": "Flight",
    "flight_leg_aircraft_type": "Aircraft",
    "flight_leg_distance_km": "Distance (km)",
    "flight_leg_elapsed_time_min": "Duration (min)",
    "flight_leg_departure_time": "Departure",
    "flight_leg_arrival_time": "Arrival",
    "flight_leg_origin_airport": "Origin Airport",
    "flight_leg_origin_city": "Origin City",
    "flight_leg_origin_country": "Origin Country",
    "flight_leg_destination_airport": "Dest Airport",
    "flight_leg_destination_terminal": "Dest Terminal",
    "flight_leg_destination_city": "Dest City",
    "flight_leg_destination_country": "Dest Country",
    "trip_origin_city_full": "Origin City Trip",
    "trip_origin_country_full": "Origin Country Trip",
    "trip_destination_city_full": "Dest City Trip",
    "trip_destination_country_full": "Dest Country Trip",
}

TRIP_ALIAS_TO_DISPLAY: Dict[str, str] = {
    "Origin City Trip": "Origin City",
    "Origin Country Trip": "Origin Country",
    "Dest City Trip": "Dest City",
    "Dest Country Trip": "Dest Country",
}

ANOMALY_UPDATE_COLUMNS: Dict[str, str] = {
    "trip_origin_city": "Origin City",
    "trip_destination_city": "Dest City",
    "flight_leg_departure_date": "Departure Date",
    "flight_leg_origin_city": "Leg Origin City",
    "flight_leg_destination_city": "Leg Dest City",
    "new_flight_leg_total_seats": "New Seats",
    "flight_leg_total_seats": "Original Seats",
    "multiplier": "Multiplier",
}


def parse_date_filter(value: Optional[str], strict: bool = True) -> Optional[str]:
    """Validate a YYYY-MM-DD filter.

    Empty input means "no filter". A malformed value raises
    FilterValidationError in strict mode; lenient mode logs and drops it.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str) and DATE_PATTERN.match(value):
        try:
            datetime.strptime(value, "%Y-%m-%d")
            return value
        except ValueError:
            pass
    if strict:
        raise FilterValidationError(f"Invalid date '{value}': expected YYYY-MM-DD")
    logger.warning("Invalid date format: %r, ignoring date filter", value)
    return None


def quote_literal(value: str) -> str:
    return "'" + str(value).replace("\\", "\\\\").replace("'", "''") + "'"


def date_where(date_filter: Optional[str]) -> str:
    if not date_filter:
        return ""
    return f"WHERE to_date(flight_leg_departure_date) = to_date({quote_literal(date_filter)})"


def _statement(*parts: str) -> str:
    return " ".join(p for p in parts if p)


def load_statement(table: str, date_filter: Optional[str] = None) -> str:
    return _statement(
        "SELECT trip_origin_city, trip_destination_city, flight_leg_departure_date,",
        f"new_flight_leg_total_seats AS avg_seats FROM {table}",
        date_where(date_filter),
    )


def route_feature_statement(table: str, date_filter: Optional[str] = None) -> str:
    return _statement(
        f"SELECT CONCAT(trip_origin_city, '{ROUTE_SEPARATOR}', trip_destination_city) AS route,",
        "DAYOFWEEK(flight_leg_departure_date) AS day_of_week,",
        f"new_flight_leg_total_seats AS avg_seats FROM {table}",
        date_where(date_filter),
    )


def aggregate_statement(table: str, date_filter: Optional[str] = None) -> str:
    return _statement(
        f"SELECT CONCAT(trip_origin_city, '{ROUTE_SEPARATOR}', trip_destination_city) AS route,",
        "DAYOFWEEK(flight_leg_departure_date) AS day_of_week,",
        f"ROUND(AVG(new_flight_leg_total_seats), 0) AS avg_seats FROM {table}",
        date_where(date_filter),
        "GROUP BY route, day_of_week",
    )


def iata_statement(table: str, codes: Iterable[str]) -> str:
    code_list = ", ".join(quote_literal(c) for c in codes)
    return f"SELECT DISTINCT iata, city, country FROM {table} WHERE iata IN ({code_list})"


def _select_list(columns: Dict[str, str]) -> str:
    return ", ".join(f"{col} AS `{alias}`" for col, alias in columns.items())


def flights_statement(table: str, limit: int, date_filter: Optional[str] = None) -> str:
    return _statement(
        f"SELECT {_select_list(FLIGHT_COLUMNS)} FROM {table}",
        date_where(date_filter),
        f"LIMIT {int(limit)}",
    )


def anomaly_updates_statement(table: str, limit: int, date_filter: Optional[str] = None) -> str:
    return _statement(
        f"SELECT {_select_list(ANOMALY_UPDATE_COLUMNS)} FROM {table}",
        date_where(date_filter),
        f"LIMIT {int(limit)}",
    )


def date_probe_statement(table: str) -> str:
    return f"SELECT flight_leg_departure_date FROM {table} LIMIT 1"
