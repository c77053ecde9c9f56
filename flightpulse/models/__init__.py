"""
Domain models for FlightPulse.

All models are immutable value objects rebuilt on every poll:
1. BoundingBox - normalized viewport with a quantized cache key
2. Flight - one validated aircraft state
3. Squawk alerts - reserved transponder codes
"""

from flightpulse.models.bounds import BoundingBox, clamp, quantize
from flightpulse.models.squawk import SquawkAlert, get_squawk_alert, is_emergency_squawk
from flightpulse.models.flight import Flight, POSITION_SOURCES

__all__ = [
    'BoundingBox',
    'clamp',
    'quantize',
    'Flight',
    'POSITION_SOURCES',
    'SquawkAlert',
    'get_squawk_alert',
    'is_emergency_squawk',
]
