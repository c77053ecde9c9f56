"""
Data ingestion module for FlightPulse.

Handles OpenSky authentication, fetching state vectors, and normalizing
them into Flight objects.
"""

from flightpulse.ingestion.auth import TokenCache
from flightpulse.ingestion.opensky_client import (
    OpenSkyClient,
    Outcome,
    UpstreamResult,
    parse_rate_limit_delay,
    parse_retry_after,
)
from flightpulse.ingestion.states import StatesSnapshot, parse_snapshot, to_flight, to_flights

__all__ = [
    'TokenCache',
    'OpenSkyClient',
    'Outcome',
    'UpstreamResult',
    'parse_rate_limit_delay',
    'parse_retry_after',
    'StatesSnapshot',
    'parse_snapshot',
    'to_flight',
    'to_flights',
]
