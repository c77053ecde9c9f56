"""
Tests for FlightPulse models.

Covers:
- Bounding box normalization, cache keys and geometry predicates
- Flight helpers (altitude, staleness, dict round trip)
- Squawk classification
"""

import pytest

from flightpulse.models import BoundingBox, Flight, get_squawk_alert, is_emergency_squawk, quantize

from conftest import NOW, make_flight


# ============================================================================
# BoundingBox
# ============================================================================


class TestBoundingBox:
    def test_normalize_reorders_swapped_edges(self):
        box = BoundingBox.normalize(50, 10, 40, -10)
        assert box == BoundingBox(40, -10, 50, 10)

    def test_normalize_clamps_out_of_range(self):
        box = BoundingBox.normalize(-100, -200, 100, 200)
        assert box == BoundingBox(-90, -180, 90, 180)

    def test_normalize_reorders_before_clamping(self):
        box = BoundingBox.normalize(95, 10, -95, 0)
        assert box.lamin == -90
        assert box.lamax == 90
        assert box.lomin == 0
        assert box.lomax == 10

    def test_quantize_rounds_ties_up(self):
        assert quantize(0.25) == 0.5
        assert quantize(0.75) == 1.0
        assert quantize(-0.25) == 0.0
        assert quantize(0.24) == 0.0

    def test_cache_key_format(self):
        box = BoundingBox(40.1, -10.2, 50.3, 10.4)
        assert box.cache_key() == '40.00_-10.00_50.50_10.50'

    def test_small_pan_shares_cache_key(self):
        a = BoundingBox(40.01, -10.02, 50.03, 10.04)
        b = BoundingBox(40.11, -9.95, 50.2, 10.1)
        assert a.cache_key() == b.cache_key()

    def test_large_pan_changes_cache_key(self):
        a = BoundingBox(40, -10, 50, 10)
        b = BoundingBox(41, -10, 51, 10)
        assert a.cache_key() != b.cache_key()

    def test_contains_point_is_inclusive(self):
        box = BoundingBox(40, -10, 50, 10)
        assert box.contains_point(40, -10)
        assert box.contains_point(45, 0)
        assert not box.contains_point(50.01, 0)
        assert not box.contains_point(45, 10.01)

    def test_covers(self):
        outer = BoundingBox(30, -20, 60, 20)
        inner = BoundingBox(40, -10, 50, 10)
        assert outer.covers(inner)
        assert not inner.covers(outer)
        assert inner.covers(inner)

    def test_intersects(self):
        a = BoundingBox(40, -10, 50, 10)
        assert a.intersects(BoundingBox(45, 5, 55, 15))
        assert a.intersects(BoundingBox(50, 10, 60, 20))  # touching corner
        assert not a.intersects(BoundingBox(51, -10, 60, 10))

    def test_max_edge_delta(self):
        a = BoundingBox(40, -10, 50, 10)
        b = BoundingBox(40.001, -10.3, 50, 10.1)
        assert b.max_edge_delta(a) == pytest.approx(0.3)

    def test_to_params(self):
        assert BoundingBox(1, 2, 3, 4).to_params() == {
            'lamin': 1, 'lomin': 2, 'lamax': 3, 'lomax': 4,
        }


# ============================================================================
# Flight
# ============================================================================


class TestFlight:
    def test_altitude_prefers_barometric(self):
        assert make_flight(baro_altitude=9000.0, geo_altitude=9100.0).altitude == 9000.0

    def test_altitude_falls_back_to_geometric(self):
        assert make_flight(baro_altitude=None, geo_altitude=9100.0).altitude == 9100.0

    def test_altitude_unknown(self):
        assert make_flight(baro_altitude=None, geo_altitude=None).altitude is None

    def test_is_stale_after_sixty_seconds(self):
        flight = make_flight(last_contact=int(NOW - 61))
        assert flight.is_stale(NOW)
        assert not make_flight(last_contact=int(NOW - 60)).is_stale(NOW)

    def test_emergency_flag(self):
        assert make_flight(squawk='7700').is_emergency
        assert not make_flight(squawk='1000').is_emergency
        assert not make_flight(squawk=None).is_emergency

    def test_position_source_label(self):
        assert make_flight(position_source=2).position_source_label == 'MLAT'
        assert make_flight(position_source=9).position_source_label == 'ADS-B'

    def test_to_dict_includes_altitude(self):
        data = make_flight().to_dict()
        assert data['icao24'] == '3c6444'
        assert data['altitude'] == 10000.0

    def test_to_dict_uses_camel_case(self):
        data = make_flight(last_position_update=NOW - 3, position_source=2).to_dict()
        assert data['lastContact'] == int(NOW - 2)
        assert data['lastPositionUpdate'] == NOW - 3
        assert data['verticalRate'] == 0.0
        assert data['onGround'] is False
        assert data['baroAltitude'] == 10000.0
        assert data['positionSource'] == 2
        assert 'last_contact' not in data

    def test_from_dict_round_trip(self):
        flight = make_flight(last_position_update=NOW - 3, category=4, position_source=2)
        assert Flight.from_dict(flight.to_dict()) == flight

    def test_from_dict_requires_position(self):
        data = make_flight().to_dict()
        del data['latitude']
        with pytest.raises(KeyError):
            Flight.from_dict(data)


# ============================================================================
# Squawk codes
# ============================================================================


class TestSquawk:
    @pytest.mark.parametrize('code', ['7500', '7600', '7700'])
    def test_emergency_codes(self, code):
        assert is_emergency_squawk(code)
        assert get_squawk_alert(code) is not None

    def test_regular_code(self):
        assert not is_emergency_squawk('2000')
        assert get_squawk_alert('2000') is None

    def test_missing_code(self):
        assert not is_emergency_squawk(None)
