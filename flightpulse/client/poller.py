"""
Viewer-side polling loops.

A viewer keeps one self-rescheduling loop per logical target:

FlightDataPoller
    Bulk snapshots for the current viewport. Viewport changes nudge the
    loop to run early, subject to an in-flight guard, a minimum cooldown
    between attempts and the server's rate-limit hint.

SelectedFlightTracker
    Faster polling of one selected aircraft through the single-aircraft
    endpoint.

Scheduling is done with one-shot timers (``threading.Timer`` unless a
factory is injected). Only the loop itself reschedules; nothing else
ever starts a second fetch concurrently. A request made for a target that
has since changed is superseded: its result is discarded when it lands.
``stop()`` cancels the pending timer and closes the HTTP session, so no
timer fires after teardown.

Any failure is treated as transient. While a previous snapshot exists
the viewer keeps showing it with a ``reconnecting`` flag instead of an
error.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

import requests

from flightpulse.config import config
from flightpulse.models import BoundingBox, Flight

logger = logging.getLogger(__name__)

# Viewport edge changes smaller than this are float jitter, not a pan
BOUNDS_EPSILON = 0.005


@dataclass(frozen=True)
class FetchResult:
    ok: bool
    retry_delay: Optional[float] = None


@dataclass(frozen=True)
class FlightDataState:
    """What the viewer currently shows for its viewport."""
    current: Tuple[Flight, ...] = ()
    previous: Tuple[Flight, ...] = ()
    last_update: float = 0
    error: Optional[str] = None
    is_loading: bool = True
    reconnecting: bool = False


def parse_flights(raw: object) -> List[Flight]:
    """Rebuild Flight objects from an API payload, skipping unusable items."""
    flights = []
    if not isinstance(raw, list):
        return flights
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            flights.append(Flight.from_dict(item))
        except (KeyError, TypeError, ValueError):
            logger.debug(f'Skipping malformed flight item {item!r}')
    return flights


class PollLoop:
    """
    Self-rescheduling fetch loop.

    Subclasses implement ``_fetch(generation)`` and ``_next_delay()``.
    ``_generation`` is bumped whenever the target changes; a fetch should
    drop its result if the generation moved on while it was running, and
    ``_next_delay`` is told whether that happened.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        clock: Callable[[], float] = time.time,
        in_flight_delay: Optional[float] = None,
        request_timeout: Optional[float] = None,
    ):
        self.api_url = (api_url or config.client.api_url).rstrip('/')
        self.session = session or requests.Session()
        self.in_flight_delay = in_flight_delay or config.client.in_flight_delay
        self.request_timeout = request_timeout or config.client.request_timeout
        self._timer_factory = timer_factory
        self._clock = clock

        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._fetching = False
        self._started = False
        self._stopped = False
        self._generation = 0

    @property
    def is_fetching(self) -> bool:
        with self._lock:
            return self._fetching

    def start(self, delay: float = 0) -> None:
        with self._lock:
            if self._started or self._stopped:
                return
            self._started = True
            self._schedule(delay)

    def stop(self) -> None:
        """Cancel any pending timer and drop any in-flight result."""
        with self._lock:
            self._stopped = True
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self.session.close()
        logger.debug(f'{type(self).__name__} stopped')

    def _schedule(self, delay: float) -> None:
        """Replace the pending timer. Caller holds the lock."""
        if self._stopped:
            return
        if self._timer is not None:
            self._timer.cancel()
        timer = self._timer_factory(max(0.0, delay), self._poll)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _poll(self) -> None:
        with self._lock:
            if self._stopped:
                return
            if self._fetching:
                self._schedule(self.in_flight_delay)
                return
            self._fetching = True
            generation = self._generation

        result = FetchResult(ok=False)
        try:
            result = self._fetch(generation)
        except Exception as e:
            logger.error(f'{type(self).__name__} fetch failed: {e}')
        finally:
            with self._lock:
                self._fetching = False

        with self._lock:
            if self._stopped:
                return
            delay = self._next_delay(result, superseded=generation != self._generation)
            if delay is not None:
                self._schedule(delay)

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation and not self._stopped

    def _fetch(self, generation: int) -> FetchResult:
        raise NotImplementedError

    def _next_delay(self, result: FetchResult, superseded: bool) -> Optional[float]:
        raise NotImplementedError


class FlightDataPoller(PollLoop):
    """Bulk snapshot loop for one viewport."""

    def __init__(
        self,
        on_update: Optional[Callable[[FlightDataState], None]] = None,
        poll_interval: Optional[float] = None,
        retry_delay: Optional[float] = None,
        bounds_cooldown: Optional[float] = None,
        max_rate_limit_wait: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.poll_interval = poll_interval or config.client.poll_interval
        self.retry_delay = retry_delay or config.client.retry_delay
        self.bounds_cooldown = bounds_cooldown or config.client.bounds_cooldown
        self.max_rate_limit_wait = max_rate_limit_wait or config.client.max_rate_limit_wait
        self._on_update = on_update

        self._bounds: Optional[BoundingBox] = None
        self._pending_bounds_refresh = False
        self._last_attempt: float = 0
        self._rate_limited_until: float = 0
        self._state = FlightDataState()

    @property
    def state(self) -> FlightDataState:
        with self._lock:
            return self._state

    @property
    def bounds(self) -> Optional[BoundingBox]:
        with self._lock:
            return self._bounds

    def set_bounds(self, bounds: BoundingBox) -> None:
        """
        Point the loop at a new viewport.

        A meaningful change runs the loop immediately unless a fetch is
        in flight, the cooldown since the last attempt has not elapsed, or
        the server asked us to back off.
        """
        with self._lock:
            previous = self._bounds
            if previous is not None and previous.max_edge_delta(bounds) <= BOUNDS_EPSILON:
                return
            self._bounds = bounds

            self._generation += 1
            if not self._started or self._stopped:
                return
            self._pending_bounds_refresh = True

            now = self._clock()
            rate_limit_wait = self._rate_limited_until - now
            if rate_limit_wait > 0:
                self._schedule(min(rate_limit_wait, self.max_rate_limit_wait))
                return

            since_last_attempt = now - self._last_attempt
            if since_last_attempt < self.bounds_cooldown:
                if self._fetching:
                    return
                self._schedule(self.bounds_cooldown - since_last_attempt)
                return

            if not self._fetching:
                self._schedule(0)

    def _next_delay(self, result: FetchResult, superseded: bool) -> float:
        refresh = self._pending_bounds_refresh
        self._pending_bounds_refresh = False

        if refresh:
            rate_limit_wait = self._rate_limited_until - self._clock()
            if rate_limit_wait > 0:
                return min(rate_limit_wait, self.max_rate_limit_wait)
            return 0
        if result.ok:
            return self.poll_interval
        return result.retry_delay or self.retry_delay

    def _fetch(self, generation: int) -> FetchResult:
        with self._lock:
            bounds = self._bounds
            self._last_attempt = self._clock()
        if bounds is None:
            return FetchResult(ok=False)

        params = {
            'lamin': f'{bounds.lamin:.2f}',
            'lomin': f'{bounds.lomin:.2f}',
            'lamax': f'{bounds.lamax:.2f}',
            'lomax': f'{bounds.lomax:.2f}',
        }

        try:
            response = self.session.get(
                f'{self.api_url}/api/flights',
                params=params,
                timeout=self.request_timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            if not self._is_current(generation):
                return FetchResult(ok=False)
            logger.warning(f'Flight poll failed: {e}')
            self._publish_failure(rate_limited=False)
            return FetchResult(ok=False)

        if not self._is_current(generation):
            logger.debug('Discarding superseded flight snapshot')
            return FetchResult(ok=False)
        if not isinstance(data, dict):
            self._publish_failure(rate_limited=False)
            return FetchResult(ok=False)

        now = self._clock()
        rate_limited = response.status_code == 429 or data.get('rateLimited') is True
        retry_delay = self._retry_delay(data.get('retryAfterSeconds'))

        with self._lock:
            if rate_limited and retry_delay:
                self._rate_limited_until = now + retry_delay
            elif not rate_limited:
                self._rate_limited_until = 0

        flights = parse_flights(data.get('flights'))
        if data.get('error') and not flights:
            self._publish_failure(rate_limited=rate_limited)
            return FetchResult(ok=False, retry_delay=retry_delay)

        with self._lock:
            previous = self._state.current
            self._state = FlightDataState(
                current=tuple(flights),
                previous=previous if previous else tuple(flights),
                last_update=now,
                error=None,
                is_loading=False,
                reconnecting=bool(data.get('error')),
            )
            state = self._state
        self._notify(state)

        if rate_limited:
            return FetchResult(ok=False, retry_delay=retry_delay)
        return FetchResult(ok=True)

    def _retry_delay(self, retry_after_seconds: object) -> Optional[float]:
        if isinstance(retry_after_seconds, bool) or not isinstance(retry_after_seconds, (int, float)):
            return None
        if retry_after_seconds <= 0:
            return None
        return min(float(retry_after_seconds), self.max_rate_limit_wait)

    def _publish_failure(self, rate_limited: bool) -> None:
        """
        Record a failed attempt without losing data already on screen.

        With a previous snapshot the error stays None and only the
        reconnecting flag is raised.
        """
        with self._lock:
            has_data = len(self._state.current) > 0
            if has_data:
                error = None
            elif rate_limited:
                error = 'Rate limited, waiting...'
            else:
                error = 'Connecting...'
            self._state = replace(
                self._state,
                error=error,
                is_loading=not has_data,
                reconnecting=has_data,
            )
            state = self._state
        self._notify(state)

    def _notify(self, state: FlightDataState) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(state)
        except Exception as e:
            logger.error(f'Flight data callback error: {e}')


@dataclass(frozen=True)
class TrackedFlightState:
    """Last fast-polled data for the selected aircraft."""
    icao24: Optional[str] = None
    flight: Optional[Flight] = None
    last_update: float = 0


class SelectedFlightTracker(PollLoop):
    """Fast-poll loop for a single aircraft."""

    def __init__(
        self,
        on_update: Optional[Callable[[TrackedFlightState], None]] = None,
        fast_poll_interval: Optional[float] = None,
        retry_interval: Optional[float] = None,
        max_rate_limit_wait: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.fast_poll_interval = fast_poll_interval or config.client.fast_poll_interval
        self.retry_interval = retry_interval or config.client.fast_retry_interval
        self.max_rate_limit_wait = max_rate_limit_wait or config.client.max_rate_limit_wait
        self._on_update = on_update
        self._state = TrackedFlightState()
        self._started = True

    @property
    def state(self) -> TrackedFlightState:
        with self._lock:
            return self._state

    @property
    def icao24(self) -> Optional[str]:
        with self._lock:
            return self._state.icao24

    def select(self, icao24: Optional[str]) -> None:
        """
        Track icao24, or stop tracking with None.

        Changing the selection supersedes any in-flight request and polls
        the new aircraft straight away.
        """
        icao24 = icao24.strip().lower() if icao24 else None
        with self._lock:
            if icao24 == self._state.icao24:
                return
            self._generation += 1
            self._state = TrackedFlightState(icao24=icao24)
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if icao24 is not None:
                self._schedule(0)
            state = self._state
        self._notify(state)

    def _next_delay(self, result: FetchResult, superseded: bool) -> Optional[float]:
        # A new selection schedules its own poll
        if superseded or self._state.icao24 is None:
            return None
        if result.ok:
            return self.fast_poll_interval
        return result.retry_delay or self.retry_interval

    def _fetch(self, generation: int) -> FetchResult:
        with self._lock:
            icao24 = self._state.icao24
        if icao24 is None:
            return FetchResult(ok=False)

        try:
            response = self.session.get(
                f'{self.api_url}/api/flight',
                params={'icao24': icao24},
                timeout=self.request_timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.debug(f'Selected flight poll failed: {e}')
            return FetchResult(ok=False)

        if not self._is_current(generation) or not isinstance(data, dict):
            return FetchResult(ok=False)

        parsed = parse_flights([data.get('flight')])
        flight = parsed[0] if parsed else None
        if flight is not None:
            with self._lock:
                self._state = TrackedFlightState(
                    icao24=icao24,
                    flight=flight,
                    last_update=self._clock(),
                )
                state = self._state
            self._notify(state)
            return FetchResult(ok=True)

        retry_after = data.get('retryAfterSeconds')
        retry_delay = None
        if isinstance(retry_after, (int, float)) and not isinstance(retry_after, bool) and retry_after > 0:
            retry_delay = min(float(retry_after), self.max_rate_limit_wait)
        return FetchResult(ok=False, retry_delay=retry_delay)

    def _notify(self, state: TrackedFlightState) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(state)
        except Exception as e:
            logger.error(f'Tracked flight callback error: {e}')
