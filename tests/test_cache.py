"""
Tests for the region and single-aircraft caches.
"""

import pytest

from flightpulse.cache import AircraftCache, RegionCache, RegionCacheEntry, filter_to_bounds
from flightpulse.models import BoundingBox

from conftest import NOW, make_flight


def entry(bounds: BoundingBox, fetched_at: float, *flights) -> RegionCacheEntry:
    return RegionCacheEntry(snapshot=tuple(flights), bounds=bounds, fetched_at=fetched_at)


@pytest.fixture
def cache() -> RegionCache:
    return RegionCache(grid_step=0.5, stale_ceiling=60, prune_threshold=50)


class TestFilterToBounds:
    def test_keeps_only_inside(self):
        inside = make_flight(icao24='aaaaaa', latitude=45, longitude=0)
        outside = make_flight(icao24='bbbbbb', latitude=55, longitude=0)
        bounds = BoundingBox(40, -10, 50, 10)
        assert filter_to_bounds([inside, outside], bounds) == [inside]


class TestRegionCache:
    def test_get_fresh_respects_ttl(self, cache):
        bounds = BoundingBox(40, -10, 50, 10)
        key = cache.quantize(bounds)
        cache.put(key, entry(bounds, NOW))

        assert cache.get_fresh(key, NOW + 4.9, ttl=5) is not None
        assert cache.get_fresh(key, NOW + 5, ttl=5) is None
        assert cache.stats['hits'] == 1
        assert cache.stats['misses'] == 1

    def test_prune_only_above_threshold(self):
        cache = RegionCache(grid_step=0.5, stale_ceiling=60, prune_threshold=2)
        for i in range(2):
            cache.put(f'old-{i}', entry(BoundingBox(i, 0, i + 1, 1), NOW - 120))
        assert cache.prune(NOW) == 0
        assert len(cache) == 2

        cache.put('fresh', entry(BoundingBox(10, 0, 11, 1), NOW))
        assert cache.prune(NOW) == 2
        assert len(cache) == 1
        assert cache.get('fresh') is not None

    def test_exact_entry_preferred(self, cache):
        bounds = BoundingBox(40, -10, 50, 10)
        exact = entry(bounds, NOW - 30, make_flight(latitude=45, longitude=0))
        cache.put('other', entry(BoundingBox(30, -20, 60, 20), NOW - 1))

        fallback = cache.resolve_fallback(bounds, NOW, exact)

        assert fallback.kind == 'exact'
        assert fallback.entry is exact

    def test_exact_entry_past_ceiling_is_ignored(self, cache):
        bounds = BoundingBox(40, -10, 50, 10)
        exact = entry(bounds, NOW - 61)
        assert cache.resolve_fallback(bounds, NOW, exact) is None

    def test_covering_beats_fresher_overlapping(self, cache):
        requested = BoundingBox(40, -10, 50, 10)
        covering = entry(
            BoundingBox(30, -20, 60, 20), NOW - 50,
            make_flight(icao24='aaaaaa', latitude=45, longitude=0),
            make_flight(icao24='bbbbbb', latitude=58, longitude=0),
        )
        overlapping = entry(
            BoundingBox(45, 0, 55, 20), NOW - 5,
            make_flight(icao24='cccccc', latitude=47, longitude=5),
        )
        cache.put('a', covering)
        cache.put('b', overlapping)

        fallback = cache.resolve_fallback(requested, NOW)

        assert fallback.kind == 'covering'
        assert fallback.entry is covering
        assert [f.icao24 for f in fallback.flights] == ['aaaaaa']

    def test_overlapping_beats_disjoint(self, cache):
        requested = BoundingBox(40, -10, 50, 10)
        cache.put('overlap', entry(BoundingBox(45, 0, 55, 20), NOW - 40))
        cache.put('disjoint', entry(BoundingBox(-10, 100, 0, 120), NOW - 1))

        assert cache.resolve_fallback(requested, NOW).kind == 'overlapping'

    def test_most_recent_overlapping_wins(self, cache):
        requested = BoundingBox(40, -10, 50, 10)
        older = entry(BoundingBox(45, 0, 55, 20), NOW - 40)
        newer = entry(BoundingBox(35, -20, 45, 0), NOW - 10)
        cache.put('older', older)
        cache.put('newer', newer)

        assert cache.resolve_fallback(requested, NOW).entry is newer

    def test_disjoint_entry_is_last_resort(self, cache):
        requested = BoundingBox(40, -10, 50, 10)
        cache.put('disjoint', entry(
            BoundingBox(-10, 100, 0, 120), NOW - 1,
            make_flight(latitude=-5, longitude=110),
        ))

        fallback = cache.resolve_fallback(requested, NOW)

        assert fallback.kind == 'any'
        assert fallback.flights == []

    def test_entries_past_ceiling_are_never_used(self, cache):
        requested = BoundingBox(40, -10, 50, 10)
        cache.put('old', entry(BoundingBox(30, -20, 60, 20), NOW - 61))
        assert cache.resolve_fallback(requested, NOW) is None


class TestAircraftCache:
    def test_fresh_within_ttl(self):
        cache = AircraftCache(ttl_seconds=1.5)
        flight = make_flight()
        cache.put(flight, NOW)

        assert cache.get_fresh('3c6444', NOW + 1).flight == flight
        assert cache.get_fresh('3c6444', NOW + 1.5) is None
        assert cache.get('3c6444').flight == flight

    def test_other_address_misses(self):
        cache = AircraftCache(ttl_seconds=1.5)
        cache.put(make_flight(), NOW)
        assert cache.get('abcdef') is None

    def test_holds_only_latest(self):
        cache = AircraftCache(ttl_seconds=1.5)
        cache.put(make_flight(icao24='aaaaaa'), NOW)
        cache.put(make_flight(icao24='bbbbbb'), NOW)
        assert cache.get('aaaaaa') is None
