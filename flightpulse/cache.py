"""
In-memory caches for upstream snapshots.

RegionCache
    Stores the latest snapshot per quantized viewport. Viewers panning
    over roughly the same area share entries, which bounds the table size
    and the number of upstream calls. When a live fetch is impossible it
    can also assemble a best-effort fallback from neighbouring or stale
    entries.

AircraftCache
    Short-TTL cache for the single-aircraft endpoint, kept apart from the
    region table.

Both are thread-safe: Flask serves requests from a thread pool, so every
read and write of the tables happens under a lock. Time is passed in
explicitly (``now``) so callers control the clock.

Memory budget: ~50 regions x a few hundred flights each, pruned once
entries pass the stale ceiling.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from flightpulse.config import config
from flightpulse.models import BoundingBox, Flight

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionCacheEntry:
    """One upstream snapshot and the (normalized) region it was fetched for."""
    snapshot: Tuple[Flight, ...]
    bounds: BoundingBox
    fetched_at: float
    as_of: Optional[float] = None

    def age(self, now: float) -> float:
        return now - self.fetched_at


def filter_to_bounds(snapshot: Iterable[Flight], bounds: BoundingBox) -> List[Flight]:
    """
    Keep only flights strictly inside bounds.

    Always applied to cache hits, since the stored region can be larger
    than the one requested.
    """
    return [f for f in snapshot if bounds.contains_point(f.latitude, f.longitude)]


@dataclass(frozen=True)
class Fallback:
    """Fallback snapshot filtered to the requested bounds."""
    flights: List[Flight]
    entry: RegionCacheEntry
    kind: str  # exact, covering, overlapping, any


class RegionCache:
    """
    Thread-safe table of region snapshots keyed by quantized bounds.
    """

    def __init__(
        self,
        grid_step: Optional[float] = None,
        stale_ceiling: Optional[float] = None,
        prune_threshold: Optional[int] = None,
    ):
        self.grid_step = grid_step or config.cache.grid_step
        self.stale_ceiling = stale_ceiling or config.cache.stale_ceiling_seconds
        self.prune_threshold = prune_threshold or config.cache.prune_threshold

        self._entries: Dict[str, RegionCacheEntry] = {}
        self._lock = threading.RLock()

        # Statistics
        self._hits = 0
        self._misses = 0
        self._fallbacks = 0

    def quantize(self, bounds: BoundingBox) -> str:
        """Cache key for bounds."""
        return bounds.cache_key(self.grid_step)

    def get(self, key: str) -> Optional[RegionCacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def get_fresh(self, key: str, now: float, ttl: float) -> Optional[RegionCacheEntry]:
        """Entry for key if it is younger than ttl."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.age(now) < ttl:
                self._hits += 1
                return entry
            self._misses += 1
            return None

    def put(self, key: str, entry: RegionCacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def prune(self, now: float) -> int:
        """
        Drop entries older than the stale ceiling.

        Only runs once the table has grown past the prune threshold.
        Returns the number of entries removed.
        """
        with self._lock:
            if len(self._entries) <= self.prune_threshold:
                return 0

            expired = [
                key for key, entry in self._entries.items()
                if entry.age(now) > self.stale_ceiling
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug(f'Pruned {len(expired)} stale region entries')
        return len(expired)

    def resolve_fallback(
        self,
        bounds: BoundingBox,
        now: float,
        exact: Optional[RegionCacheEntry] = None,
    ) -> Optional[Fallback]:
        """
        Best-effort snapshot for bounds when a live fetch is impossible.

        Preference order:
        1. the exact key's entry, if within the stale ceiling
        2. the most recent live entry whose region covers bounds
        3. the most recent live entry whose region overlaps bounds
        4. the most recent live entry of any kind

        Coverage wins over recency: a covering entry guarantees that no
        aircraft inside bounds is missing from the filtered result.
        Returns None only if no entry is within the stale ceiling.
        """
        if exact is not None and exact.age(now) < self.stale_ceiling:
            return self._fallback(exact, bounds, 'exact', now)

        covering: Optional[RegionCacheEntry] = None
        overlapping: Optional[RegionCacheEntry] = None
        freshest: Optional[RegionCacheEntry] = None

        with self._lock:
            entries = list(self._entries.values())

        for entry in entries:
            if entry.age(now) > self.stale_ceiling:
                continue

            if freshest is None or entry.fetched_at > freshest.fetched_at:
                freshest = entry

            if entry.bounds.covers(bounds):
                if covering is None or entry.fetched_at > covering.fetched_at:
                    covering = entry
                continue

            if entry.bounds.intersects(bounds):
                if overlapping is None or entry.fetched_at > overlapping.fetched_at:
                    overlapping = entry

        if covering is not None:
            return self._fallback(covering, bounds, 'covering', now)
        if overlapping is not None:
            return self._fallback(overlapping, bounds, 'overlapping', now)
        if freshest is not None:
            return self._fallback(freshest, bounds, 'any', now)
        return None

    def _fallback(
        self,
        entry: RegionCacheEntry,
        bounds: BoundingBox,
        kind: str,
        now: float,
    ) -> Fallback:
        with self._lock:
            self._fallbacks += 1
        logger.debug(f'Serving {kind} fallback aged {entry.age(now):.1f}s')
        return Fallback(
            flights=filter_to_bounds(entry.snapshot, bounds),
            entry=entry,
            kind=kind,
        )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            lookups = self._hits + self._misses
            return {
                'entries': len(self._entries),
                'hits': self._hits,
                'misses': self._misses,
                'fallbacks': self._fallbacks,
                'hit_rate': self._hits / lookups if lookups > 0 else 0,
            }


@dataclass(frozen=True)
class AircraftCacheEntry:
    flight: Flight
    fetched_at: float


class AircraftCache:
    """
    Single-aircraft cache.

    Holds only the most recently fetched aircraft: the endpoint is used
    to fast-poll one selected aircraft at a time.
    """

    def __init__(self, ttl_seconds: Optional[float] = None):
        self.ttl_seconds = ttl_seconds or config.cache.single_ttl_seconds
        self._entry: Optional[AircraftCacheEntry] = None
        self._lock = threading.Lock()

    def get(self, icao24: str) -> Optional[AircraftCacheEntry]:
        """Last entry for icao24 regardless of age."""
        with self._lock:
            entry = self._entry
        if entry is not None and entry.flight.icao24 == icao24:
            return entry
        return None

    def get_fresh(self, icao24: str, now: float) -> Optional[AircraftCacheEntry]:
        entry = self.get(icao24)
        if entry is not None and now - entry.fetched_at < self.ttl_seconds:
            return entry
        return None

    def put(self, flight: Flight, now: float) -> None:
        with self._lock:
            self._entry = AircraftCacheEntry(flight=flight, fetched_at=now)

    def clear(self) -> None:
        with self._lock:
            self._entry = None
