"""
Tests for dead-reckoning interpolation and frame rendering.
"""

import numpy as np
import pytest

from flightpulse.client import AnimationLoop, DeadReckoningEngine, RenderInput, altitude_color
from flightpulse.client.interpolation import altitude_colors, velocity_to_degrees_per_second

from conftest import NOW, make_flight


@pytest.fixture
def engine() -> DeadReckoningEngine:
    return DeadReckoningEngine(max_extrapolate_seconds=6, stale_after_seconds=60)


class TestVelocityConversion:
    def test_due_east_at_equator(self):
        dlat, dlon = velocity_to_degrees_per_second(100.0, 90.0, 0.0)
        assert float(dlat) == pytest.approx(0.0, abs=1e-12)
        assert float(dlon) == pytest.approx(100 / 111320)

    def test_due_north(self):
        dlat, dlon = velocity_to_degrees_per_second(100.0, 0.0, 45.0)
        assert float(dlat) == pytest.approx(100 / 111320)
        assert float(dlon) == pytest.approx(0.0, abs=1e-12)

    def test_longitude_scale_grows_with_latitude(self):
        _, at_equator = velocity_to_degrees_per_second(100.0, 90.0, 0.0)
        _, at_sixty = velocity_to_degrees_per_second(100.0, 90.0, 60.0)
        assert float(at_sixty) == pytest.approx(2 * float(at_equator))


class TestAltitudeColor:
    def test_stops(self):
        assert altitude_color(0) == '#6b7094'
        assert altitude_color(2000) == '#06b6d4'
        assert altitude_color(13000) == '#ef4444'

    def test_unknown_and_out_of_range(self):
        assert altitude_color(None) == '#6b7094'
        assert altitude_color(-50) == '#6b7094'
        assert altitude_color(20000) == '#ef4444'

    def test_interpolates_between_stops(self):
        # Halfway between #06B6D4 and #10B981
        assert altitude_color(3500) == '#0bb8ab'

    def test_vectorized(self):
        assert altitude_colors(np.array([0.0, np.nan, 13000.0])) == ['#6b7094', '#6b7094', '#ef4444']


class TestDeadReckoning:
    def test_moves_east_along_heading(self, engine):
        flight = make_flight(latitude=0.0, longitude=0.0, heading=90.0, velocity=100.0)
        frame = engine.compute_frame(RenderInput(flights=(flight,), last_update=NOW), NOW + 10)

        feature = frame.features[0]
        # Elapsed time is capped at six seconds
        assert feature.longitude == pytest.approx(100 * 6 / 111320)
        assert feature.latitude == pytest.approx(0.0, abs=1e-12)

    def test_uses_position_timestamp_when_present(self, engine):
        flight = make_flight(
            latitude=0.0, longitude=0.0, heading=90.0, velocity=100.0,
            last_position_update=NOW - 2,
        )
        frame = engine.compute_frame(RenderInput(flights=(flight,), last_update=NOW + 100), NOW)
        assert frame.features[0].longitude == pytest.approx(100 * 2 / 111320)

    def test_future_timestamp_does_not_move_backwards(self, engine):
        flight = make_flight(
            latitude=0.0, longitude=0.0, heading=90.0, velocity=100.0,
            last_position_update=NOW + 5,
        )
        frame = engine.compute_frame(RenderInput(flights=(flight,), last_update=NOW), NOW)
        assert frame.features[0].longitude == 0.0

    @pytest.mark.parametrize('overrides', [
        {'on_ground': True},
        {'velocity': None},
        {'velocity': 0.0},
        {'heading': None},
    ])
    def test_stationary_cases(self, engine, overrides):
        flight = make_flight(latitude=50.0, longitude=10.0, **overrides)
        frame = engine.compute_frame(RenderInput(flights=(flight,), last_update=NOW), NOW + 3)
        assert frame.features[0].coordinates == (10.0, 50.0)

    def test_altitude_follows_vertical_rate(self, engine):
        flight = make_flight(baro_altitude=1000.0, vertical_rate=-10.0)
        frame = engine.compute_frame(RenderInput(flights=(flight,), last_update=NOW), NOW + 3)
        assert frame.features[0].altitude == pytest.approx(970.0)

    def test_altitude_is_floored_at_zero(self, engine):
        flight = make_flight(baro_altitude=20.0, vertical_rate=-10.0)
        frame = engine.compute_frame(RenderInput(flights=(flight,), last_update=NOW), NOW + 5)
        assert frame.features[0].altitude == 0.0

    def test_unknown_altitude_renders_as_zero(self, engine):
        flight = make_flight(baro_altitude=None, geo_altitude=None, vertical_rate=5.0)
        frame = engine.compute_frame(RenderInput(flights=(flight,), last_update=NOW), NOW + 3)
        assert frame.features[0].altitude == 0.0
        assert frame.features[0].altitude_color == '#6b7094'

    def test_flags(self, engine):
        flights = (
            make_flight(icao24='aaaaaa', squawk='7700', last_contact=int(NOW - 90)),
            make_flight(icao24='bbbbbb', on_ground=True),
        )
        frame = engine.compute_frame(
            RenderInput(flights=flights, last_update=NOW, selected_icao='bbbbbb'), NOW,
        )
        first, second = frame.features
        assert first.emergency and first.stale and not first.selected
        assert second.on_ground and second.selected and not second.stale

    def test_compute_frame_is_idempotent(self, engine):
        render_input = RenderInput(flights=(make_flight(), make_flight(icao24='aaaaaa')), last_update=NOW)
        assert engine.compute_frame(render_input, NOW + 2) == engine.compute_frame(render_input, NOW + 2)

    def test_empty_input(self, engine):
        frame = engine.compute_frame(RenderInput(), NOW)
        assert frame.features == ()
        assert frame.selection is None


class TestSelectionOverlay:
    def test_route_to_destination(self, engine):
        render_input = RenderInput(
            flights=(make_flight(),),
            last_update=NOW,
            selected_icao='3c6444',
            trail=((9.0, 50.0), (9.5, 50.0)),
            destination=(40.6398, -73.7789),
        )
        selection = engine.compute_frame(render_input, NOW).selection

        assert selection.highlight == (10.0, 50.0)
        assert selection.trail == [(9.0, 50.0), (9.5, 50.0), (10.0, 50.0)]
        assert len(selection.route) == 65
        assert selection.route[0] == pytest.approx((10.0, 50.0))
        assert selection.heading_line == []

    def test_heading_projection_without_destination(self, engine):
        render_input = RenderInput(flights=(make_flight(),), last_update=NOW, selected_icao='3c6444')
        selection = engine.compute_frame(render_input, NOW).selection

        assert selection.route == []
        assert len(selection.heading_line) == 21
        assert selection.trail == []

    def test_selection_not_in_view(self, engine):
        render_input = RenderInput(flights=(make_flight(),), last_update=NOW, selected_icao='ffffff')
        assert engine.compute_frame(render_input, NOW).selection is None


class TestSpeedVectors:
    def test_only_fast_airborne_aircraft(self, engine):
        flights = (
            make_flight(icao24='aaaaaa', velocity=200.0, heading=0.0),
            make_flight(icao24='bbbbbb', velocity=5.0),
            make_flight(icao24='cccccc', velocity=200.0, on_ground=True),
        )
        frame = engine.compute_frame(RenderInput(flights=flights, last_update=NOW), NOW)

        assert len(frame.speed_vectors) == 1
        vector = frame.speed_vectors[0]
        assert vector.start == (10.0, 50.0)
        assert vector.end[0] == pytest.approx(10.0)
        assert vector.end[1] == pytest.approx(50.0 + 200 * 0.0002)


class TestAnimationLoop:
    def test_render_now_publishes_frame(self, clock):
        published = []
        loop = AnimationLoop(publish=published.append, clock=clock, frames_per_second=30)
        loop.update(RenderInput(flights=(make_flight(),), last_update=clock.now))

        frame = loop.render_now()

        assert published == [frame]
        assert loop.frames_rendered == 1

    def test_nothing_published_without_aircraft(self, clock):
        published = []
        loop = AnimationLoop(publish=published.append, clock=clock)
        assert loop.render_now() is None
        assert published == []

    def test_start_and_stop(self, clock):
        loop = AnimationLoop(publish=lambda frame: None, clock=clock, frames_per_second=100)
        loop.start()
        assert loop.is_running
        loop.stop()
        assert not loop.is_running
