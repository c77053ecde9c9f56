"""
Dead-reckoning interpolation between polls.

Aircraft positions arrive every few seconds. Between polls each moving
aircraft is projected forward along its heading at its ground speed, and
its altitude along its vertical rate, so that markers glide instead of
jumping. Projection is capped at MAX_EXTRAPOLATE_SECONDS past the last
position fix, which bounds the visible error when a poll is late.

The engine is pure: the same RenderInput and ``now`` always produce the
same Frame. AnimationLoop drives it at a fixed frame rate from a daemon
thread and hands each frame to a publish callback.

Coordinates in frames are (longitude, latitude), the order map
renderers expect.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from flightpulse.config import config
from flightpulse.geo import great_circle_arc, project_heading
from flightpulse.models import Flight

logger = logging.getLogger(__name__)

METERS_PER_DEGREE_LAT = 111320.0

# Altitude (meters) to marker color, interpolated linearly in RGB between stops
ALTITUDE_STOPS = (
    (0, '#6B7094'),
    (2000, '#06B6D4'),
    (5000, '#10B981'),
    (8000, '#F59E0B'),
    (11000, '#F97316'),
    (13000, '#EF4444'),
)

# Speed vectors: only for aircraft faster than this (m/s)
SPEED_VECTOR_MIN_VELOCITY = 10.0
SPEED_VECTOR_SCALE = 0.0002  # degrees per m/s

Coordinate = Tuple[float, float]


def _hex_to_rgb(color: str) -> Tuple[int, int, int]:
    n = int(color[1:], 16)
    return (n >> 16) & 255, (n >> 8) & 255, n & 255


_STOP_ALTITUDES = np.array([alt for alt, _ in ALTITUDE_STOPS], dtype=np.float64)
_STOP_RGB = np.array([_hex_to_rgb(color) for _, color in ALTITUDE_STOPS], dtype=np.float64)


def velocity_to_degrees_per_second(velocity, heading, latitude):
    """
    Convert ground speed (m/s) and true track (degrees) into a
    (dlat, dlon) displacement in degrees per second.

    Works on scalars and numpy arrays alike. At the poles, where the
    longitude scale collapses, cos(latitude) is replaced by 0.01.
    """
    heading_rad = np.radians(heading)
    cos_lat = np.cos(np.radians(latitude))
    cos_lat = np.where(cos_lat == 0, 0.01, cos_lat)
    dlat = velocity * np.cos(heading_rad) / METERS_PER_DEGREE_LAT
    dlon = velocity * np.sin(heading_rad) / (METERS_PER_DEGREE_LAT * cos_lat)
    return dlat, dlon


def altitude_colors(altitudes: np.ndarray) -> List[str]:
    """Lowercase hex colors for an array of altitudes (NaN or <= 0 is the lowest stop)."""
    altitudes = np.asarray(altitudes, dtype=np.float64)
    clean = np.where(np.isnan(altitudes) | (altitudes <= 0), 0.0, altitudes)
    channels = [
        np.floor(np.interp(clean, _STOP_ALTITUDES, _STOP_RGB[:, i]) + 0.5).astype(int)
        for i in range(3)
    ]
    return [f'#{int(r):02x}{int(g):02x}{int(b):02x}' for r, g, b in zip(*channels)]


def altitude_color(altitude: Optional[float]) -> str:
    """Marker color for a single altitude in meters."""
    return altitude_colors(np.array([np.nan if altitude is None else altitude]))[0]


@dataclass(frozen=True)
class RenderInput:
    """
    Everything one frame depends on.

    Replaced wholesale whenever new data arrives; never mutated.
    ``destination`` is (latitude, longitude) of the selected aircraft's
    destination airport, if known.
    """
    flights: Tuple[Flight, ...] = ()
    last_update: float = 0
    selected_icao: Optional[str] = None
    trail: Tuple[Coordinate, ...] = ()
    destination: Optional[Tuple[float, float]] = None


@dataclass(frozen=True)
class AircraftFeature:
    """One aircraft marker at its interpolated position."""
    icao24: str
    callsign: str
    longitude: float
    latitude: float
    heading: float
    altitude: float
    velocity: float
    altitude_color: str
    selected: bool
    on_ground: bool
    emergency: bool
    stale: bool

    @property
    def coordinates(self) -> Coordinate:
        return (self.longitude, self.latitude)


@dataclass(frozen=True)
class SelectionOverlay:
    """
    Decorations for the selected aircraft, anchored at its interpolated
    position.

    ``route`` is a great-circle arc to the destination when one is known;
    otherwise ``heading_line`` projects the current heading ahead.
    """
    highlight: Coordinate
    trail: List[Coordinate] = field(default_factory=list)
    route: List[Coordinate] = field(default_factory=list)
    heading_line: List[Coordinate] = field(default_factory=list)


@dataclass(frozen=True)
class SpeedVector:
    start: Coordinate
    end: Coordinate
    color: str


@dataclass(frozen=True)
class Frame:
    timestamp: float
    features: Tuple[AircraftFeature, ...]
    selection: Optional[SelectionOverlay] = None
    speed_vectors: Tuple[SpeedVector, ...] = ()

    def get(self, icao24: str) -> Optional[AircraftFeature]:
        for feature in self.features:
            if feature.icao24 == icao24:
                return feature
        return None


class DeadReckoningEngine:
    """Computes interpolated frames from the latest snapshot."""

    def __init__(
        self,
        max_extrapolate_seconds: Optional[float] = None,
        stale_after_seconds: Optional[float] = None,
    ):
        self.max_extrapolate_seconds = max_extrapolate_seconds or config.client.max_extrapolate_seconds
        self.stale_after_seconds = stale_after_seconds or config.client.stale_after_seconds

    def extrapolate(
        self,
        flights: Sequence[Flight],
        last_update: float,
        now: float,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Project every flight to ``now``.

        Returns (latitudes, longitudes, altitudes); altitude is NaN where
        unknown. Elapsed time is measured from each flight's own position
        timestamp when it has one, else from the snapshot's receipt time,
        and is clamped to [0, max_extrapolate_seconds]. Only airborne
        aircraft with a known heading and positive speed move.
        """
        lat = np.array([f.latitude for f in flights], dtype=np.float64)
        lon = np.array([f.longitude for f in flights], dtype=np.float64)
        heading = np.array([np.nan if f.heading is None else f.heading for f in flights], dtype=np.float64)
        velocity = np.array([f.velocity or 0.0 for f in flights], dtype=np.float64)
        vertical_rate = np.array([f.vertical_rate or 0.0 for f in flights], dtype=np.float64)
        altitude = np.array([np.nan if f.altitude is None else f.altitude for f in flights], dtype=np.float64)
        on_ground = np.array([f.on_ground for f in flights], dtype=bool)
        position_time = np.array([f.last_position_update or np.nan for f in flights], dtype=np.float64)

        elapsed = np.where(np.isnan(position_time), now - last_update, now - position_time)
        elapsed = np.clip(elapsed, 0.0, self.max_extrapolate_seconds)

        moving = (velocity > 0) & ~np.isnan(heading) & ~on_ground
        speed = np.where(moving, velocity, 0.0)
        dlat, dlon = velocity_to_degrees_per_second(speed, np.nan_to_num(heading), lat)

        new_lat = lat + dlat * elapsed
        new_lon = lon + dlon * elapsed

        climbing = moving & (vertical_rate != 0) & ~np.isnan(altitude)
        new_alt = np.where(
            climbing,
            np.maximum(altitude + vertical_rate * elapsed, 0.0),
            altitude,
        )
        return new_lat, new_lon, new_alt

    def compute_frame(self, render_input: RenderInput, now: float) -> Frame:
        """Build the frame for ``now`` (epoch seconds)."""
        flights = render_input.flights
        if not flights:
            return Frame(timestamp=now, features=())

        lat, lon, alt = self.extrapolate(flights, render_input.last_update, now)
        colors = altitude_colors(alt)

        features = []
        for i, flight in enumerate(flights):
            altitude = 0.0 if np.isnan(alt[i]) else float(alt[i])
            features.append(AircraftFeature(
                icao24=flight.icao24,
                callsign=flight.callsign,
                longitude=float(lon[i]),
                latitude=float(lat[i]),
                heading=flight.heading or 0.0,
                altitude=altitude,
                velocity=flight.velocity or 0.0,
                altitude_color=colors[i],
                selected=flight.icao24 == render_input.selected_icao,
                on_ground=flight.on_ground,
                emergency=flight.is_emergency,
                stale=flight.is_stale(now, self.stale_after_seconds),
            ))

        return Frame(
            timestamp=now,
            features=tuple(features),
            selection=self._selection_overlay(features, render_input),
            speed_vectors=tuple(self._speed_vectors(features)),
        )

    def _selection_overlay(
        self,
        features: List[AircraftFeature],
        render_input: RenderInput,
    ) -> Optional[SelectionOverlay]:
        if not render_input.selected_icao:
            return None
        selected = next((f for f in features if f.icao24 == render_input.selected_icao), None)
        if selected is None:
            return None

        position = selected.coordinates
        trail = []
        if len(render_input.trail) >= 2:
            trail = list(render_input.trail) + [position]

        route: List[Coordinate] = []
        heading_line: List[Coordinate] = []
        destination = render_input.destination
        if destination is not None:
            route = great_circle_arc(
                selected.latitude, selected.longitude,
                destination[0], destination[1],
            )
        elif selected.heading:
            heading_line = project_heading(selected.latitude, selected.longitude, selected.heading)

        return SelectionOverlay(
            highlight=position,
            trail=trail,
            route=route,
            heading_line=heading_line,
        )

    def _speed_vectors(self, features: List[AircraftFeature]) -> List[SpeedVector]:
        vectors = []
        for feature in features:
            if feature.on_ground or feature.velocity <= SPEED_VECTOR_MIN_VELOCITY:
                continue
            heading = np.radians(feature.heading)
            scale = feature.velocity * SPEED_VECTOR_SCALE
            vectors.append(SpeedVector(
                start=feature.coordinates,
                end=(
                    feature.longitude + float(np.sin(heading)) * scale,
                    feature.latitude + float(np.cos(heading)) * scale,
                ),
                color=feature.altitude_color,
            ))
        return vectors


class AnimationLoop:
    """
    Renders frames at a fixed rate on a daemon thread.

    ``update()`` swaps in a new RenderInput; the loop only ever reads the
    reference it finds at the start of a frame, so a frame never mixes two
    snapshots.
    """

    def __init__(
        self,
        publish: Callable[[Frame], None],
        engine: Optional[DeadReckoningEngine] = None,
        frames_per_second: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.publish = publish
        self.engine = engine or DeadReckoningEngine()
        self.frame_interval = 1.0 / (frames_per_second or config.client.frames_per_second)
        self._clock = clock
        self._input = RenderInput()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.frames_rendered = 0

    def update(self, render_input: RenderInput) -> None:
        self._input = render_input

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='animation-loop', daemon=True)
        self._thread.start()
        logger.debug(f'Animation loop started at {1 / self.frame_interval:.0f} fps')

    def stop(self, timeout: float = 1.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def render_now(self) -> Optional[Frame]:
        """Render and publish one frame; nothing is published without aircraft."""
        render_input = self._input
        if not render_input.flights:
            return None
        frame = self.engine.compute_frame(render_input, self._clock())
        self.publish(frame)
        self.frames_rendered += 1
        return frame

    def _run(self) -> None:
        while not self._stop_event.wait(self.frame_interval):
            try:
                self.render_now()
            except Exception as e:
                logger.error(f'Frame render failed: {e}')
