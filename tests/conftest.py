"""
Shared fixtures and builders for the FlightPulse test suite.
"""

import json
from typing import Any, Dict, Optional

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from flightpulse.models import Flight

NOW = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = NOW):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        assert self.started and not self.cancelled
        self.function()


class TimerFactory:
    """Records every timer a poll loop creates."""

    def __init__(self):
        self.timers = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if t.started and not t.cancelled]

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


def make_response(
    status: int = 200,
    body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    raw: Optional[bytes] = None,
) -> requests.Response:
    """Build a real requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status
    if raw is not None:
        response._content = raw
    else:
        response._content = json.dumps(body).encode('utf-8')
    response.headers = CaseInsensitiveDict(headers or {})
    response.encoding = 'utf-8'
    return response


def make_record(
    icao24: str = '3c6444',
    callsign: str = 'DLH4AB  ',
    latitude: Optional[float] = 50.0,
    longitude: Optional[float] = 10.0,
    last_contact: Any = NOW - 2,
    time_position: Any = NOW - 3,
    velocity: Any = 230.0,
    heading: Any = 90.0,
    vertical_rate: Any = 0.0,
    baro_altitude: Any = 10000.0,
    geo_altitude: Any = 10200.0,
    on_ground: Any = False,
    squawk: Any = '1000',
    position_source: Any = 0,
    category: Any = 3,
) -> list:
    """Raw OpenSky state vector with sensible defaults."""
    return [
        icao24, callsign, 'Germany', time_position, last_contact,
        longitude, latitude, baro_altitude, on_ground, velocity, heading,
        vertical_rate, None, geo_altitude, squawk, False, position_source,
        category,
    ]


def make_flight(**overrides) -> Flight:
    values = dict(
        icao24='3c6444',
        callsign='DLH4AB',
        country='Germany',
        latitude=50.0,
        longitude=10.0,
        heading=90.0,
        velocity=230.0,
        vertical_rate=0.0,
        on_ground=False,
        baro_altitude=10000.0,
        geo_altitude=10200.0,
        squawk='1000',
        last_contact=int(NOW - 2),
        last_position_update=None,
    )
    values.update(overrides)
    return Flight(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> TimerFactory:
    return TimerFactory()
