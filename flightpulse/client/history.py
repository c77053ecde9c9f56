"""
Recent position history per aircraft, used to draw trails.

Positions older than five minutes are dropped. A new position is only
recorded when it moved at least MIN_DISTANCE degrees in latitude or
longitude from the previous one.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from flightpulse.models import Flight


MAX_AGE_SECONDS = 5 * 60
MIN_DISTANCE = 0.001  # degrees, roughly 100 m


@dataclass(frozen=True)
class PositionRecord:
    longitude: float
    latitude: float
    altitude: Optional[float]
    timestamp: float


class FlightHistory:
    """In-memory trails keyed by ICAO24."""

    def __init__(
        self,
        max_age_seconds: float = MAX_AGE_SECONDS,
        min_distance: float = MIN_DISTANCE,
        clock: Callable[[], float] = time.time,
    ):
        self.max_age_seconds = max_age_seconds
        self.min_distance = min_distance
        self._clock = clock
        self._records: Dict[str, List[PositionRecord]] = {}
        self._lock = threading.Lock()

    def update(self, flights: Iterable[Flight]) -> None:
        """
        Record a full snapshot.

        Aircraft missing from the snapshot keep their trail until their
        newest record ages out.
        """
        now = self._clock()
        cutoff = now - self.max_age_seconds
        active = set()

        with self._lock:
            for flight in flights:
                active.add(flight.icao24)
                self._append(flight, now)

            for icao24 in list(self._records):
                if icao24 in active:
                    continue
                records = self._records[icao24]
                if not records or records[-1].timestamp < cutoff:
                    del self._records[icao24]

    def add_position(self, flight: Flight) -> None:
        """Record one aircraft outside a snapshot (fast-polled selection)."""
        with self._lock:
            self._append(flight, self._clock())

    def get_trail(self, icao24: str) -> List[Tuple[float, float]]:
        """(lon, lat) trail for icao24, empty unless at least two points are known."""
        with self._lock:
            records = self._records.get(icao24)
            if not records or len(records) < 2:
                return []
            return [(r.longitude, r.latitude) for r in records]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _append(self, flight: Flight, now: float) -> None:
        records = self._records.setdefault(flight.icao24, [])

        if records:
            last = records[-1]
            if (abs(flight.latitude - last.latitude) < self.min_distance and
                    abs(flight.longitude - last.longitude) < self.min_distance):
                return

        records.append(PositionRecord(
            longitude=flight.longitude,
            latitude=flight.latitude,
            altitude=flight.altitude,
            timestamp=now,
        ))

        cutoff = now - self.max_age_seconds
        while records and records[0].timestamp < cutoff:
            records.pop(0)
