"""
Viewer session - ties the client pieces together.

One ViewerSession corresponds to one open map:

- FlightDataPoller keeps the viewport snapshot fresh.
- SelectedFlightTracker fast-polls the selected aircraft, but only while
  it is missing from the viewport snapshot (panned out of view).
- FlightHistory records trails from both sources.
- AnimationLoop renders interpolated frames from the merged snapshot.
- The selected aircraft's destination comes from /api/route and anchors
  the route arc in the selection overlay.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

import requests

from flightpulse.client.history import FlightHistory
from flightpulse.client.interpolation import (
    AnimationLoop,
    DeadReckoningEngine,
    Frame,
    RenderInput,
)
from flightpulse.client.poller import (
    FlightDataPoller,
    FlightDataState,
    SelectedFlightTracker,
    TrackedFlightState,
)
from flightpulse.config import config
from flightpulse.models import BoundingBox, Flight

logger = logging.getLogger(__name__)


def merge_tracked(flights: List[Flight], tracked: Optional[Flight]) -> List[Flight]:
    """Replace (or append) the tracked aircraft in a snapshot."""
    if tracked is None:
        return list(flights)
    merged = [tracked if f.icao24 == tracked.icao24 else f for f in flights]
    if not any(f.icao24 == tracked.icao24 for f in flights):
        merged.append(tracked)
    return merged


class ViewerSession:
    """Polling, tracking, history and animation for one viewer."""

    def __init__(
        self,
        publish: Callable[[Frame], None],
        api_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        clock: Callable[[], float] = time.time,
        engine: Optional[DeadReckoningEngine] = None,
    ):
        self.api_url = (api_url or config.client.api_url).rstrip('/')
        self._clock = clock
        self._http = session or requests.Session()

        loop_kwargs = dict(api_url=self.api_url, timer_factory=timer_factory, clock=clock)
        self.poller = FlightDataPoller(
            on_update=self._on_flight_data,
            session=session,
            **loop_kwargs,
        )
        self.tracker = SelectedFlightTracker(
            on_update=self._on_tracked_flight,
            session=session,
            **loop_kwargs,
        )
        self.history = FlightHistory(clock=clock)
        self.animation = AnimationLoop(publish=publish, engine=engine, clock=clock)

        self._lock = threading.RLock()
        self._snapshot: FlightDataState = FlightDataState()
        self._selected: Optional[Flight] = None
        self._tracked: Optional[Flight] = None
        self._destination: Optional[Tuple[float, float]] = None

        # callsign -> destination (lat, lon), None when the route is unknown
        self._routes: Dict[str, Optional[Tuple[float, float]]] = {}
        self._route_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='route-lookup')

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, bounds: Optional[BoundingBox] = None, animate: bool = True) -> None:
        if bounds is not None:
            self.poller.set_bounds(bounds)
        self.poller.start(config.client.initial_delay)
        if animate:
            self.animation.start()

    def stop(self) -> None:
        self.animation.stop()
        self.poller.stop()
        self.tracker.stop()
        self._route_executor.shutdown(wait=False)
        self._http.close()

    def set_bounds(self, bounds: BoundingBox) -> None:
        self.poller.set_bounds(bounds)

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> FlightDataState:
        with self._lock:
            return self._snapshot

    @property
    def selected_flight(self) -> Optional[Flight]:
        """
        Freshest known state of the selected aircraft: the fast-polled
        copy, else the viewport snapshot's, else the state at selection.
        """
        with self._lock:
            if self._selected is None:
                return None
            icao24 = self._selected.icao24
            if self._tracked is not None and self._tracked.icao24 == icao24:
                return self._tracked
            for flight in self._snapshot.current:
                if flight.icao24 == icao24:
                    return flight
            return self._selected

    @property
    def destination(self) -> Optional[Tuple[float, float]]:
        with self._lock:
            return self._destination

    def select(self, flight: Optional[Flight]) -> Optional[Future]:
        """
        Select an aircraft, or clear the selection with None.

        Returns the pending route lookup, if one was started.
        """
        with self._lock:
            self._selected = flight
            self._tracked = None
            self._destination = None

        self._update_tracking()
        self._refresh_render_input()

        if flight is None or not flight.callsign.strip():
            return None
        return self._route_executor.submit(self._load_route, flight.icao24, flight.callsign.strip())

    def _update_tracking(self) -> None:
        with self._lock:
            selected = self._selected
            in_view = selected is not None and any(
                f.icao24 == selected.icao24 for f in self._snapshot.current
            )
        self.tracker.select(selected.icao24 if selected is not None and not in_view else None)

    def _load_route(self, icao24: str, callsign: str) -> Optional[Tuple[float, float]]:
        with self._lock:
            known = callsign in self._routes
            destination = self._routes.get(callsign)

        if not known:
            destination = self._fetch_destination(callsign)

        with self._lock:
            if self._selected is None or self._selected.icao24 != icao24:
                return destination
            self._destination = destination
        self._refresh_render_input()
        return destination

    def _fetch_destination(self, callsign: str) -> Optional[Tuple[float, float]]:
        try:
            response = self._http.get(
                f'{self.api_url}/api/route',
                params={'callsign': callsign},
                timeout=config.client.request_timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f'Route lookup for {callsign} failed: {e}')
            return None

        # Only definitive answers are remembered; retry transient failures
        if response.status_code not in (200, 404):
            return None

        destination = None
        airport = data.get('destination') if isinstance(data, dict) else None
        if isinstance(airport, dict):
            try:
                destination = (float(airport['latitude']), float(airport['longitude']))
            except (KeyError, TypeError, ValueError):
                destination = None

        with self._lock:
            self._routes[callsign] = destination
        return destination

    # -------------------------------------------------------------------------
    # Poll callbacks
    # -------------------------------------------------------------------------

    def _on_flight_data(self, state: FlightDataState) -> None:
        with self._lock:
            self._snapshot = state
        if state.current:
            self.history.update(state.current)
        self._update_tracking()
        self._refresh_render_input()

    def _on_tracked_flight(self, state: TrackedFlightState) -> None:
        with self._lock:
            current = self._selected is not None and state.icao24 == self._selected.icao24
            # Tracking off: the viewport snapshot is the fresher source again
            self._tracked = state.flight if current else None
        if current and state.flight is not None:
            self.history.add_position(state.flight)
        self._refresh_render_input()

    def render_input(self) -> RenderInput:
        with self._lock:
            selected = self._selected
            flights = self._snapshot.current
            if selected is not None:
                flights = merge_tracked(list(flights), self._tracked)
            return RenderInput(
                flights=tuple(flights),
                last_update=self._snapshot.last_update,
                selected_icao=selected.icao24 if selected is not None else None,
                trail=tuple(self.history.get_trail(selected.icao24)) if selected is not None else (),
                destination=self._destination,
            )

    def _refresh_render_input(self) -> None:
        self.animation.update(self.render_input())
