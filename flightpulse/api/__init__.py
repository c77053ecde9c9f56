"""
API module for FlightPulse.

Provides REST endpoints for:
- Aircraft inside a viewport
- A single selected aircraft
- Route lookups
- System status
"""

from flightpulse.api.flights import flights_bp

__all__ = ['flights_bp']
