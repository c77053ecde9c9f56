"""
Route service - origin/destination lookup by callsign.

Uses the adsbdb callsign endpoint. Lookups are cached per callsign for
ten minutes, including negative results ("no route known"), so that a
selected aircraft never triggers more than one lookup per TTL. Transient
upstream failures are not cached.

The cache is capped: once it grows past the prune threshold, entries
older than three TTLs are evicted.
"""

import logging
import math
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import quote

import requests

from flightpulse.config import config
from flightpulse.geo import haversine_distance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Airport:
    """Airport endpoint of a route."""
    icao: str
    iata: str
    name: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class FlightRoute:
    """Route information for a callsign."""
    callsign: str
    departure: Optional[Airport] = None
    destination: Optional[Airport] = None
    operator_iata: Optional[str] = None
    flight_number: Optional[str] = None
    error: Optional[str] = None

    @property
    def distance_km(self) -> Optional[float]:
        """Great-circle distance between the airports, if both are known."""
        if not self.departure or not self.destination:
            return None
        return round(haversine_distance(
            self.departure.latitude, self.departure.longitude,
            self.destination.latitude, self.destination.longitude,
        ))

    def to_dict(self) -> dict:
        data = {
            'callsign': self.callsign,
            'departure': asdict(self.departure) if self.departure else None,
            'destination': asdict(self.destination) if self.destination else None,
            'operatorIata': self.operator_iata,
            'flightNumber': self.flight_number,
            'distanceKm': self.distance_km,
        }
        if self.error is not None:
            data['error'] = self.error
        return data


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip().upper() or None


def _coordinate(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def parse_airport(raw: Any) -> Optional[Airport]:
    """Parse one adsbdb airport record. ICAO code and valid lat/lon are required."""
    if not isinstance(raw, dict):
        return None

    icao = _clean(raw.get('icao_code'))
    latitude = _coordinate(raw.get('latitude'))
    longitude = _coordinate(raw.get('longitude'))
    if not icao or latitude is None or longitude is None:
        return None
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        return None

    name = raw.get('name')
    return Airport(
        icao=icao,
        iata=_clean(raw.get('iata_code')) or '',
        name=name.strip() if isinstance(name, str) else '',
        latitude=latitude,
        longitude=longitude,
    )


def parse_route(callsign: str, body: Any) -> Optional[FlightRoute]:
    """
    Parse an adsbdb ``/callsign/<callsign>`` response.

    Returns None when the body has no ``response.flightroute`` record.
    """
    if not isinstance(body, dict):
        return None
    response = body.get('response')
    if not isinstance(response, dict):
        return None
    flightroute = response.get('flightroute')
    if not isinstance(flightroute, dict):
        return None

    flight_number = _clean(flightroute.get('callsign_iata'))
    airline = flightroute.get('airline')
    operator_iata = _clean(airline.get('iata')) if isinstance(airline, dict) else None
    if operator_iata is None and flight_number:
        operator_iata = flight_number[:2]

    return FlightRoute(
        callsign=callsign,
        departure=parse_airport(flightroute.get('origin')),
        destination=parse_airport(flightroute.get('destination')),
        operator_iata=operator_iata,
        flight_number=flight_number,
    )


class RouteService:
    """
    Cached callsign route lookups.

    ``lookup()`` returns a (FlightRoute, http_status) pair ready for the
    API layer: 200 with a departure, 404 for an unknown route, 502/500 for
    upstream or network failures.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
        prune_threshold: Optional[int] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = (base_url or config.routes.base_url).rstrip('/')
        self.ttl_seconds = ttl_seconds or config.routes.ttl_seconds
        self.prune_threshold = prune_threshold or config.routes.prune_threshold
        self.timeout = timeout or config.routes.timeout_seconds
        self.session = session or requests.Session()
        self._clock = clock

        # Cache: callsign -> (FlightRoute, fetched_at)
        self._cache: Dict[str, Tuple[FlightRoute, float]] = {}
        self._lock = threading.RLock()

        # Track API usage
        self._requests = 0

    def lookup(self, callsign: str) -> Tuple[FlightRoute, int]:
        callsign = callsign.strip()
        now = self._clock()

        cached = self._get_cached(callsign, now)
        if cached is not None:
            logger.debug(f'Route cache hit for {callsign}')
            return cached, 200 if cached.departure else 404

        logger.info(f'Fetching route info from adsbdb for {callsign}')
        self._requests += 1

        try:
            response = self.session.get(
                f'{self.base_url}/{quote(callsign, safe="")}',
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f'Failed to fetch route info: {e}')
            return FlightRoute(callsign=callsign, error=str(e)), 500

        if response.status_code in (400, 404):
            route = FlightRoute(callsign=callsign, error='Route not found')
            self._set_cached(callsign, route, now)
            return route, 404

        if not response.ok:
            logger.warning(f'adsbdb API error: {response.status_code}')
            return FlightRoute(callsign=callsign, error=f'API error: {response.status_code}'), 502

        try:
            body = response.json()
        except ValueError:
            body = None

        route = parse_route(callsign, body)
        if route is None:
            route = FlightRoute(callsign=callsign, error='No route data')
            self._set_cached(callsign, route, now)
            return route, 404

        self._set_cached(callsign, route, now)
        if route.departure and route.destination:
            logger.info(f'Got route for {callsign}: {route.departure.icao} -> {route.destination.icao}')
        return route, 200 if route.departure else 404

    def _get_cached(self, callsign: str, now: float) -> Optional[FlightRoute]:
        with self._lock:
            cached = self._cache.get(callsign)
        if cached is not None and now - cached[1] < self.ttl_seconds:
            return cached[0]
        return None

    def _set_cached(self, callsign: str, route: FlightRoute, now: float) -> None:
        with self._lock:
            self._cache[callsign] = (route, now)

            if len(self._cache) > self.prune_threshold:
                expired = [
                    key for key, (_, fetched_at) in self._cache.items()
                    if now - fetched_at > self.ttl_seconds * 3
                ]
                for key in expired:
                    del self._cache[key]

    @property
    def stats(self) -> dict:
        """Get service statistics."""
        with self._lock:
            return {
                'cache_size': len(self._cache),
                'requests': self._requests,
            }
