"""
Services sitting between the API layer and third-party feeds.

Handles upstream calls with caching, rate limiting, and graceful
degradation when providers are unavailable.
"""

from flightpulse.services.feed import FeedResult, FeedService, RateLimitState
from flightpulse.services.routes import Airport, FlightRoute, RouteService

__all__ = [
    'FeedResult',
    'FeedService',
    'RateLimitState',
    'Airport',
    'FlightRoute',
    'RouteService',
]
