"""
Configuration management for FlightPulse.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic numbers scattered
throughout the codebase.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class OpenSkyConfig:
    """OpenSky API configuration."""
    client_id: Optional[str] = os.getenv('OPENSKY_CLIENT_ID') or None
    client_secret: Optional[str] = os.getenv('OPENSKY_CLIENT_SECRET') or None
    states_url: str = 'https://opensky-network.org/api/states/all'
    token_url: str = (
        'https://auth.opensky-network.org/auth/realms/opensky-network'
        '/protocol/openid-connect/token'
    )
    bulk_timeout_seconds: float = 8.0
    single_timeout_seconds: float = 5.0
    token_timeout_seconds: float = 5.0

    @property
    def is_authenticated(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class TokenConfig:
    """OAuth2 token lifetime settings."""
    refresh_buffer_seconds: float = 60.0
    default_ttl_seconds: int = 1800


@dataclass(frozen=True)
class CacheConfig:
    """Region and single-aircraft cache settings."""
    ttl_seconds: float = float(os.getenv('CACHE_TTL_SECONDS', '5'))
    grid_step: float = 0.5  # degrees
    stale_ceiling_seconds: float = 60.0
    prune_threshold: int = 50
    single_ttl_seconds: float = 1.5
    rate_limit_backoff_seconds: float = 15.0


@dataclass(frozen=True)
class RouteConfig:
    """Callsign route lookup settings (adsbdb)."""
    base_url: str = 'https://api.adsbdb.com/v0/callsign'
    ttl_seconds: float = 600.0
    prune_threshold: int = 200
    timeout_seconds: float = 8.0


@dataclass(frozen=True)
class ClientConfig:
    """Viewer-side polling and animation settings."""
    api_url: str = os.getenv('FLIGHTPULSE_API_URL', 'http://localhost:5000')
    poll_interval: float = float(os.getenv('POLL_INTERVAL_SECONDS', '5'))
    retry_delay: float = 3.0
    bounds_cooldown: float = 2.5
    in_flight_delay: float = 0.25
    max_rate_limit_wait: float = 60.0
    initial_delay: float = 0.5
    request_timeout: float = 10.0

    # Selected aircraft tracking
    fast_poll_interval: float = 4.0
    fast_retry_interval: float = 15.0

    # Animation
    frames_per_second: int = 30
    max_extrapolate_seconds: float = 6.0
    stale_after_seconds: float = 60.0


@dataclass(frozen=True)
class DefaultBounds:
    """Viewport used when the bulk query omits its bounds."""
    lamin: float = 45.0
    lomin: float = 5.0
    lamax: float = 55.0
    lomax: float = 25.0


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    opensky: OpenSkyConfig
    token: TokenConfig
    cache: CacheConfig
    routes: RouteConfig
    client: ClientConfig
    default_bounds: DefaultBounds

    # Flask settings
    debug: bool


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        opensky=OpenSkyConfig(),
        token=TokenConfig(),
        cache=CacheConfig(),
        routes=RouteConfig(),
        client=ClientConfig(),
        default_bounds=DefaultBounds(),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
