"""
FlightPulse Package.

Live aircraft telemetry for a map viewer: a Flask proxy in front of the
OpenSky Network plus the viewer-side polling and animation loop.

Modules:
    api/         REST endpoints for flights, single aircraft, routes and status
    models/      Bounding boxes, flights and squawk codes
    ingestion/   OpenSky OAuth2 token cache, state-vector client and normalizer
    services/    Feed orchestration (cache, fallback, backoff) and route lookups
    client/      Viewer poll loops, trail history and dead-reckoning animation
    cache.py     Quantized region cache with fallback selection
    geo.py       Great-circle helpers
    config.py    Centralized configuration from environment variables
"""

__version__ = '1.0.0'
