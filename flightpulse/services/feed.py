"""
Feed service - orchestrates upstream fetches, caching and degradation.

For each bulk request the service walks a small state machine:

1. Fresh hit: the quantized region was fetched less than TTL ago. Serve
   it (filtered to the requested bounds) without touching the network.
2. Rate limited: the account-wide backoff window is still open. Skip the
   network and serve a fallback snapshot, or an explicit 429.
3. Fetch: ask OpenSky. A 429 opens (or extends) the backoff window; any
   other failure tries the fallback path. Success clears the window,
   stores the snapshot and prunes the region table.

Any response built from cached or fallback data carries an ``error``
string (and ``rateLimited`` when relevant) so clients can tell live data
from best effort. Nothing in here raises past the service boundary.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from flightpulse.cache import AircraftCache, Fallback, RegionCache, RegionCacheEntry, filter_to_bounds
from flightpulse.config import config
from flightpulse.ingestion import OpenSkyClient, Outcome, UpstreamResult
from flightpulse.models import BoundingBox, Flight

logger = logging.getLogger(__name__)


@dataclass
class FeedResult:
    """JSON body plus the HTTP status it should be served with."""
    body: dict
    status: int = 200


class RateLimitState:
    """
    Account-wide upstream backoff window.

    OpenSky limits per account, not per region, so one window is shared
    by every region and by the single-aircraft endpoint.
    """

    def __init__(self):
        self._until: float = 0
        self._lock = threading.Lock()

    @property
    def until(self) -> float:
        with self._lock:
            return self._until

    def is_limited(self, now: float) -> bool:
        return now < self.until

    def extend(self, now: float, delay: float) -> float:
        """Push the window out to at least now + delay. Returns the new end."""
        with self._lock:
            self._until = max(self._until, now + delay)
            return self._until

    def clear(self) -> None:
        with self._lock:
            self._until = 0

    def retry_after_seconds(self, now: float) -> int:
        """Whole seconds until the window closes, never less than 1."""
        return max(1, math.ceil(self.until - now))


def _flights_body(flights: List[Flight], timestamp_ms: float) -> dict:
    return {
        'flights': [f.to_dict() for f in flights],
        'timestamp': int(timestamp_ms),
        'count': len(flights),
    }


def _entry_timestamp_ms(entry: RegionCacheEntry) -> float:
    if entry.as_of:
        return entry.as_of * 1000
    return entry.fetched_at * 1000


class FeedService:
    """
    Owns the region cache, the single-aircraft cache and the backoff
    window. One instance is created per application in ``create_app()``.
    """

    def __init__(
        self,
        client: Optional[OpenSkyClient] = None,
        region_cache: Optional[RegionCache] = None,
        aircraft_cache: Optional[AircraftCache] = None,
        rate_limit: Optional[RateLimitState] = None,
        ttl_seconds: Optional[float] = None,
        default_backoff: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client or OpenSkyClient.from_config()
        self.regions = region_cache or RegionCache()
        self.aircraft = aircraft_cache or AircraftCache()
        self.rate_limit = rate_limit or RateLimitState()
        self.ttl_seconds = ttl_seconds or config.cache.ttl_seconds
        self.default_backoff = default_backoff or config.cache.rate_limit_backoff_seconds
        self._clock = clock

    # -------------------------------------------------------------------------
    # Bulk region queries
    # -------------------------------------------------------------------------

    def get_flights(self, bounds: BoundingBox) -> FeedResult:
        """Snapshot of every aircraft inside bounds."""
        now = self._clock()
        key = self.regions.quantize(bounds)

        fresh = self.regions.get_fresh(key, now, self.ttl_seconds)
        if fresh is not None:
            logger.debug(f'Region cache hit for {key}')
            flights = filter_to_bounds(fresh.snapshot, bounds)
            return FeedResult(_flights_body(flights, _entry_timestamp_ms(fresh)))

        exact = self.regions.get(key)

        if self.rate_limit.is_limited(now):
            return self._rate_limited_response(bounds, now, exact)

        result = self.client.get_states(bounds)

        if result.outcome == Outcome.RATE_LIMITED:
            self._open_backoff(now, result)
            return self._rate_limited_response(bounds, now, exact)

        if result.outcome == Outcome.UPSTREAM_ERROR:
            fallback = self.regions.resolve_fallback(bounds, now, exact)
            if fallback is not None:
                return self._degraded(fallback, f'Upstream {result.status_code}: serving cached data')
            message = result.error if result.malformed else f'API error: {result.status_code}'
            return self._empty(now, message, 502)

        if result.outcome == Outcome.NETWORK_ERROR:
            fallback = self.regions.resolve_fallback(bounds, now, exact)
            if fallback is not None:
                return self._degraded(fallback, 'Network issue: serving cached data')
            return self._empty(now, result.error or 'Network error', 500)

        return self._store(key, bounds, now, result)

    def _store(
        self,
        key: str,
        bounds: BoundingBox,
        now: float,
        result: UpstreamResult,
    ) -> FeedResult:
        self.rate_limit.clear()

        entry = RegionCacheEntry(
            snapshot=tuple(result.flights),
            bounds=bounds,
            fetched_at=now,
            as_of=result.as_of,
        )
        self.regions.put(key, entry)
        self.regions.prune(now)

        return FeedResult(_flights_body(result.flights, _entry_timestamp_ms(entry)))

    def _open_backoff(self, now: float, result: UpstreamResult) -> None:
        delay = result.retry_after or self.default_backoff
        until = self.rate_limit.extend(now, delay)
        logger.warning(f'Upstream rate limited, backing off for {until - now:.0f}s')

    def _rate_limited_response(
        self,
        bounds: BoundingBox,
        now: float,
        exact: Optional[RegionCacheEntry],
    ) -> FeedResult:
        retry_after = self.rate_limit.retry_after_seconds(now)
        fallback = self.regions.resolve_fallback(bounds, now, exact)
        if fallback is not None:
            result = self._degraded(fallback, 'Rate limited: serving cached data')
            result.body['rateLimited'] = True
            result.body['retryAfterSeconds'] = retry_after
            return result

        result = self._empty(now, 'Rate limited', 429)
        result.body['rateLimited'] = True
        result.body['retryAfterSeconds'] = retry_after
        return result

    def _degraded(self, fallback: Fallback, message: str) -> FeedResult:
        body = _flights_body(fallback.flights, _entry_timestamp_ms(fallback.entry))
        body['error'] = message
        return FeedResult(body)

    def _empty(self, now: float, message: str, status: int) -> FeedResult:
        body = _flights_body([], now * 1000)
        body['error'] = message
        return FeedResult(body, status)

    # -------------------------------------------------------------------------
    # Single-aircraft queries
    # -------------------------------------------------------------------------

    def get_flight(self, icao24: str) -> FeedResult:
        """
        Latest state of one aircraft.

        icao24 must already be validated and lower-cased by the caller.
        Stale data for the same address is served while upstream is
        rate limited or failing.
        """
        now = self._clock()

        fresh = self.aircraft.get_fresh(icao24, now)
        if fresh is not None:
            return FeedResult(self._aircraft_body(fresh.flight, fresh.fetched_at))

        if self.rate_limit.is_limited(now):
            return self._aircraft_rate_limited(icao24, now)

        result = self.client.get_state(icao24)

        if result.outcome == Outcome.RATE_LIMITED:
            self._open_backoff(now, result)
            return self._aircraft_rate_limited(icao24, now)

        if result.outcome == Outcome.UPSTREAM_ERROR:
            stale = self.aircraft.get(icao24)
            if stale is not None:
                body = self._aircraft_body(stale.flight, stale.fetched_at)
                body['error'] = f'Upstream {result.status_code}: serving cached data'
                return FeedResult(body)
            return FeedResult({'flight': None, 'error': f'API error: {result.status_code}'}, 502)

        if result.outcome == Outcome.NETWORK_ERROR:
            stale = self.aircraft.get(icao24)
            if stale is not None:
                body = self._aircraft_body(stale.flight, stale.fetched_at)
                body['error'] = 'Network issue: serving cached data'
                return FeedResult(body)
            return FeedResult({'flight': None, 'error': result.error or 'Network error'}, 500)

        self.rate_limit.clear()

        if result.record_count == 0:
            return FeedResult({'flight': None, 'error': 'Aircraft not found'})

        flight = next((f for f in result.flights if f.icao24 == icao24), None)
        if flight is None:
            return FeedResult({'flight': None, 'error': 'No position data'})

        self.aircraft.put(flight, now)
        return FeedResult(self._aircraft_body(flight, now))

    def _aircraft_rate_limited(self, icao24: str, now: float) -> FeedResult:
        retry_after = self.rate_limit.retry_after_seconds(now)
        stale = self.aircraft.get(icao24)
        if stale is not None:
            body = self._aircraft_body(stale.flight, stale.fetched_at)
            body['error'] = 'Rate limited: serving cached data'
        else:
            body = {'flight': None, 'error': 'Rate limited'}
        body['rateLimited'] = True
        body['retryAfterSeconds'] = retry_after
        return FeedResult(body, 200 if stale is not None else 429)

    @staticmethod
    def _aircraft_body(flight: Flight, fetched_at: float) -> dict:
        return {'flight': flight.to_dict(), 'timestamp': int(fetched_at * 1000)}

    @property
    def stats(self) -> dict:
        now = self._clock()
        return {
            'regions': self.regions.stats,
            'upstream': self.client.stats,
            'token': self.client.token_cache.stats,
            'rate_limited': self.rate_limit.is_limited(now),
            'rate_limited_until': self.rate_limit.until or None,
        }
