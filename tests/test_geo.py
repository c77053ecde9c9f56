"""
Tests for the spherical geometry helpers.
"""

import pytest

from flightpulse.geo import great_circle_arc, haversine_distance, project_heading


class TestHaversine:
    def test_zero_distance(self):
        assert haversine_distance(50, 8, 50, 8) == 0

    def test_one_degree_of_latitude(self):
        assert haversine_distance(0, 0, 1, 0) == pytest.approx(111.19, abs=0.01)

    def test_symmetric(self):
        assert haversine_distance(50, 8, 40, -73) == pytest.approx(haversine_distance(40, -73, 50, 8))


class TestGreatCircleArc:
    def test_endpoints_and_point_count(self):
        arc = great_circle_arc(50.0, 8.0, 40.0, -73.0)
        assert len(arc) == 65
        assert arc[0] == pytest.approx((8.0, 50.0))
        assert arc[-1] == pytest.approx((-73.0, 40.0))

    def test_arc_bows_toward_pole(self):
        arc = great_circle_arc(50.0, 8.0, 40.0, -73.0)
        assert max(lat for _, lat in arc) > 50.0

    def test_coincident_points(self):
        assert great_circle_arc(50.0, 8.0, 50.0, 8.0) == [(8.0, 50.0), (8.0, 50.0)]


class TestProjectHeading:
    def test_due_north(self):
        path = project_heading(0.0, 0.0, 0.0, distance_km=111.19, points=4)
        assert len(path) == 5
        assert path[0] == (0.0, 0.0)
        assert path[-1][0] == pytest.approx(0.0, abs=1e-9)
        assert path[-1][1] == pytest.approx(1.0, abs=1e-3)

    def test_default_length(self):
        path = project_heading(50.0, 8.0, 90.0)
        assert len(path) == 21
        end_lon, end_lat = path[-1]
        assert haversine_distance(50.0, 8.0, end_lat, end_lon) == pytest.approx(500, rel=1e-3)
