"""
OpenSky OAuth2 token cache.

Uses the OAuth2 client-credentials flow against OpenSky's Keycloak realm.
The feed is usable without credentials (with stricter rate limits), so
every failure here degrades to "no token" instead of raising: callers
simply proceed unauthenticated.

At most one token exchange is in flight at a time. Threads that ask for a
token while an exchange is running attach to the same Future and get its
result instead of starting their own request.
"""

import logging
import threading
import time
from concurrent.futures import Future
from typing import Callable, Optional

import requests

from flightpulse.config import config

logger = logging.getLogger(__name__)


class TokenCache:
    """
    Process-wide bearer token holder with single-flight refresh.

    A cached token is reused while ``now < expires_at - refresh_buffer``.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        token_url: Optional[str] = None,
        timeout: Optional[float] = None,
        refresh_buffer: Optional[float] = None,
        default_ttl: Optional[int] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url or config.opensky.token_url
        self.timeout = timeout or config.opensky.token_timeout_seconds
        self.refresh_buffer = (
            refresh_buffer if refresh_buffer is not None
            else config.token.refresh_buffer_seconds
        )
        self.default_ttl = default_ttl or config.token.default_ttl_seconds
        self.session = session or requests.Session()
        self._clock = clock

        self._token: Optional[str] = None
        self._expires_at: float = 0
        self._in_flight: Optional[Future] = None
        self._lock = threading.Lock()

        # Statistics
        self._exchanges = 0
        self._failures = 0

        if self.is_configured:
            logger.info('OpenSky token cache initialized with client credentials')
        else:
            logger.warning('No OpenSky client credentials configured, using anonymous access')

    @classmethod
    def from_config(cls) -> 'TokenCache':
        """Create token cache from application configuration."""
        return cls(
            client_id=config.opensky.client_id,
            client_secret=config.opensky.client_secret,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _has_valid_token(self, now: float) -> bool:
        return self._token is not None and now < self._expires_at - self.refresh_buffer

    def get_token(self) -> Optional[str]:
        """
        Return a usable bearer token, or None.

        None means either no credentials are configured or the exchange
        failed; in both cases the caller should go on without auth.
        """
        if not self.is_configured:
            return None

        with self._lock:
            if self._has_valid_token(self._clock()):
                return self._token

            future = self._in_flight
            owner = future is None
            if owner:
                future = Future()
                self._in_flight = future

        if not owner:
            return future.result()

        token = None
        try:
            token = self._exchange()
        finally:
            with self._lock:
                self._in_flight = None
            future.set_result(token)

        return token

    def _exchange(self) -> Optional[str]:
        """Run one client-credentials exchange and store the result."""
        self._exchanges += 1
        logger.info('Requesting new OpenSky access token')

        try:
            response = self.session.post(
                self.token_url,
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                data={
                    'grant_type': 'client_credentials',
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self._failures += 1
            logger.error(f'Token request failed: {e}')
            return None

        if not response.ok:
            self._failures += 1
            logger.warning(f'Token request rejected with status {response.status_code}')
            return None

        try:
            data = response.json()
        except ValueError:
            self._failures += 1
            logger.warning('Token response was not valid JSON')
            return None

        token = data.get('access_token') if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            self._failures += 1
            logger.warning('Token response did not contain an access_token')
            return None

        expires_in = data.get('expires_in')
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
            expires_in = self.default_ttl
        expires_in = max(1, int(expires_in))

        with self._lock:
            self._token = token
            self._expires_at = self._clock() + expires_in

        logger.info(f'Access token obtained (expires in {expires_in}s)')
        return token

    def invalidate(self) -> None:
        """Drop the cached token so the next call exchanges again."""
        with self._lock:
            self._token = None
            self._expires_at = 0

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                'configured': self.is_configured,
                'has_token': self._token is not None,
                'expires_at': self._expires_at or None,
                'exchanges': self._exchanges,
                'failures': self._failures,
            }
