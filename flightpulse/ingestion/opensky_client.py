"""
OpenSky Network API client.

Handles communication with the OpenSky REST API, including:
- Bearer authentication from the token cache (optional, higher limits)
- Bounding box and single-address queries
- Classification of every outcome into an UpstreamResult
- Parsing of rate-limit retry hints

The client never raises for upstream trouble. Network failures, non-2xx
statuses and malformed bodies all come back as UpstreamResult values so
the feed service can decide how to degrade.
"""

import logging
import time
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Callable, List, Mapping, Optional

import requests

from flightpulse.config import config
from flightpulse.ingestion.auth import TokenCache
from flightpulse.ingestion.states import parse_snapshot, to_flights
from flightpulse.models import BoundingBox, Flight

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS_HEADER = 'x-rate-limit-retry-after-seconds'


class Outcome(str, Enum):
    """Classification of one upstream call."""
    OK = 'ok'
    RATE_LIMITED = 'rate_limited'
    UPSTREAM_ERROR = 'upstream_error'
    NETWORK_ERROR = 'network_error'


@dataclass
class UpstreamResult:
    """
    Result of one upstream call.

    flights/as_of are only meaningful for OK. retry_after is only set for
    RATE_LIMITED, and is None when the provider sent no usable hint.
    """
    outcome: Outcome
    flights: List[Flight] = field(default_factory=list)
    as_of: Optional[float] = None
    status_code: Optional[int] = None
    retry_after: Optional[float] = None
    error: Optional[str] = None
    record_count: int = 0
    malformed: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.OK


def parse_retry_after(value: Optional[str], now: Optional[float] = None) -> float:
    """
    Parse a standard Retry-After header into seconds.

    Accepts delta-seconds or an HTTP-date. Returns 0 when the header is
    absent or unusable.
    """
    if not value:
        return 0.0

    value = value.strip()
    try:
        seconds = int(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        return float(seconds) if seconds > 0 else 0.0

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return 0.0
    if retry_at is None:
        return 0.0

    now = time.time() if now is None else now
    return max(0.0, retry_at.timestamp() - now)


def parse_rate_limit_delay(headers: Mapping[str, str], now: Optional[float] = None) -> float:
    """
    Seconds to back off after a 429.

    Prefers OpenSky's own header, then standard Retry-After. 0 means the
    caller should apply its default backoff.
    """
    raw = headers.get(RETRY_AFTER_SECONDS_HEADER)
    if raw:
        try:
            seconds = int(raw.strip())
        except ValueError:
            seconds = 0
        if seconds > 0:
            return float(seconds)

    return parse_retry_after(headers.get('retry-after'), now=now)


class OpenSkyClient:
    """
    Client for OpenSky Network ``/states/all``.

    Handles:
    - GET requests with optional bearer token
    - Bounding box or icao24 filtering
    - Outcome classification (ok / rate limited / upstream / network)
    """

    def __init__(
        self,
        token_cache: Optional[TokenCache] = None,
        states_url: Optional[str] = None,
        bulk_timeout: Optional[float] = None,
        single_timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.token_cache = token_cache or TokenCache.from_config()
        self.states_url = states_url or config.opensky.states_url
        self.bulk_timeout = bulk_timeout or config.opensky.bulk_timeout_seconds
        self.single_timeout = single_timeout or config.opensky.single_timeout_seconds
        self.session = session or requests.Session()
        self._clock = clock

        # Statistics
        self._request_count = 0
        self._error_count = 0

    @classmethod
    def from_config(cls) -> 'OpenSkyClient':
        """Create client from application configuration."""
        return cls(token_cache=TokenCache.from_config())

    def get_states(self, bbox: BoundingBox) -> UpstreamResult:
        """Fetch current state vectors inside a bounding box."""
        return self._request(bbox.to_params(), self.bulk_timeout)

    def get_state(self, icao24: str) -> UpstreamResult:
        """Fetch the state vector of a single transponder address."""
        return self._request({'icao24': icao24}, self.single_timeout)

    def _request(self, params: dict, timeout: float) -> UpstreamResult:
        headers = {}
        token = self.token_cache.get_token()
        if token:
            headers['Authorization'] = f'Bearer {token}'

        logger.debug(f'Fetching states: {self.states_url} params={params}')
        self._request_count += 1

        try:
            response = self.session.get(
                self.states_url,
                params=params,
                headers=headers,
                timeout=timeout,
            )
        except requests.exceptions.Timeout:
            self._error_count += 1
            logger.error('OpenSky API timeout')
            return UpstreamResult(Outcome.NETWORK_ERROR, error='Upstream timeout')
        except requests.exceptions.RequestException as e:
            self._error_count += 1
            logger.error(f'OpenSky request failed: {e}')
            return UpstreamResult(Outcome.NETWORK_ERROR, error=str(e))

        if response.status_code == 429:
            delay = parse_rate_limit_delay(response.headers, now=self._clock())
            logger.warning(f'OpenSky rate limit exceeded (retry hint {delay:.0f}s)')
            return UpstreamResult(
                Outcome.RATE_LIMITED,
                status_code=429,
                retry_after=delay or None,
            )

        if not response.ok:
            self._error_count += 1
            logger.warning(f'OpenSky API error: {response.status_code}')
            return UpstreamResult(
                Outcome.UPSTREAM_ERROR,
                status_code=response.status_code,
                error=f'Upstream {response.status_code}',
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        snapshot = parse_snapshot(body)
        if snapshot is None:
            self._error_count += 1
            logger.warning('OpenSky returned a malformed payload')
            return UpstreamResult(
                Outcome.UPSTREAM_ERROR,
                status_code=response.status_code,
                error='Malformed upstream payload',
                malformed=True,
            )

        flights = to_flights(snapshot)
        logger.info(f'Received {len(snapshot.records)} state vectors, {len(flights)} valid')

        return UpstreamResult(
            Outcome.OK,
            flights=flights,
            as_of=snapshot.as_of,
            status_code=response.status_code,
            record_count=len(snapshot.records),
        )

    @property
    def stats(self) -> dict:
        return {
            'request_count': self._request_count,
            'error_count': self._error_count,
            'authenticated': self.token_cache.is_configured,
        }
