"""
Viewer-side client.

Polls the FlightPulse API, keeps per-aircraft trails and renders
dead-reckoned frames between polls.
"""

from flightpulse.client.history import FlightHistory, PositionRecord
from flightpulse.client.interpolation import (
    AircraftFeature,
    AnimationLoop,
    DeadReckoningEngine,
    Frame,
    RenderInput,
    SelectionOverlay,
    SpeedVector,
    altitude_color,
    velocity_to_degrees_per_second,
)
from flightpulse.client.poller import (
    FlightDataPoller,
    FlightDataState,
    SelectedFlightTracker,
    TrackedFlightState,
)
from flightpulse.client.session import ViewerSession

__all__ = [
    'FlightHistory',
    'PositionRecord',
    'AircraftFeature',
    'AnimationLoop',
    'DeadReckoningEngine',
    'Frame',
    'RenderInput',
    'SelectionOverlay',
    'SpeedVector',
    'altitude_color',
    'velocity_to_degrees_per_second',
    'FlightDataPoller',
    'FlightDataState',
    'SelectedFlightTracker',
    'TrackedFlightState',
    'ViewerSession',
]
