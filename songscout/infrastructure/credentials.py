import logging
import threading
import time
from concurrent.futures import Future
from typing import Callable, Optional

import requests

from songscout.crosscutting.metrics import MetricsCollector
from songscout.domain.entities import Credential, TOKEN_SAFETY_MARGIN_SEC
from songscout.domain.errors import AuthenticationError

logger = logging.getLogger(__name__)

SPOTIFY_TOKEN_URL = 'https://accounts.spotify.com/api/token'
DEFAULT_EXPIRES_IN = 3600


class CredentialCache:
    """Caches the client-credentials bearer token and refreshes it on demand.

    Exactly one Credential is live per instance. Refresh is lazy and single-flight:
    the first caller that finds the cache empty or expired performs the exchange,
    every concurrent caller waits on the same in-flight future and receives the
    same token or the same AuthenticationError.
    """

    def __init__(self,
                 client_id: str,
                 client_secret: str,
                 session: Optional[requests.Session] = None,
                 timeout: float = 10.0,
                 token_url: str = SPOTIFY_TOKEN_URL,
                 clock: Callable[[], float] = time.monotonic,
                 safety_margin: float = TOKEN_SAFETY_MARGIN_SEC,
                 metrics: Optional[MetricsCollector] = None):
        """Initialize credential cache.

        Args:
            client_id: Catalog client ID
            client_secret: Catalog client secret
            session: HTTP session used for the exchange
            timeout: Exchange timeout in seconds
            token_url: Token endpoint of the catalog
            clock: Monotonic time source in seconds
            safety_margin: Seconds before expiry at which a token stops being usable
            metrics: Optional collector for exchange counters
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token_url = token_url
        self.safety_margin = safety_margin
        self.metrics = metrics
        self._clock = clock

        self._lock = threading.Lock()
        self._credential: Optional[Credential] = None
        self._inflight: Optional[Future] = None

    @property
    def state(self) -> str:
        """One of ``empty``, ``valid`` or ``expired``."""
        with self._lock:
            credential = self._credential
        if credential is None:
            return 'empty'
        if credential.is_usable(self._clock(), self.safety_margin):
            return 'valid'
        return 'expired'

    def invalidate(self) -> None:
        """Drop the cached credential so the next call performs an exchange."""
        with self._lock:
            self._credential = None

    def get_token(self) -> str:
        """Return a usable bearer token, exchanging credentials only when needed.

        Raises:
            AuthenticationError: If the client-credentials exchange fails
        """
        with self._lock:
            credential = self._credential
            if credential is not None and credential.is_usable(self._clock(), self.safety_margin):
                return credential.token

            future = self._inflight
            leader = future is None
            if leader:
                future = Future()
                self._inflight = future

        if not leader:
            # Raises the leader's AuthenticationError if the exchange failed
            return future.result()

        try:
            credential = self._exchange()
        except BaseException as e:
            # The in-flight slot must be released even on interrupts, or waiters block forever
            with self._lock:
                self._credential = None
                self._inflight = None
            future.set_exception(e if isinstance(e, Exception) else AuthenticationError())
            raise

        with self._lock:
            self._credential = credential
            self._inflight = None
        future.set_result(credential.token)
        return credential.token

    def _exchange(self) -> Credential:
        """Perform the client-credentials exchange against the token endpoint."""
        logger.info("Fetching new Spotify token...")
        try:
            response = self.session.post(
                self.token_url,
                data={'grant_type': 'client_credentials'},
                auth=(self.client_id, self.client_secret),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self._record(False)
            logger.error(f"Token exchange failed: {type(e).__name__}: {e}")
            raise AuthenticationError() from e

        if response.status_code != 200:
            self._record(False)
            logger.error(f"Token exchange failed: {response.status_code} - {response.text}")
            raise AuthenticationError()

        try:
            payload = response.json()
        except ValueError as e:
            self._record(False)
            logger.error("Token exchange returned a non-JSON body")
            raise AuthenticationError() from e

        access_token = payload.get('access_token') if isinstance(payload, dict) else None
        if not access_token:
            self._record(False)
            logger.error("Token exchange response did not contain an access_token")
            raise AuthenticationError()

        try:
            expires_in = float(payload.get('expires_in') or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        self._record(True)
        logger.info("New Spotify token obtained.")
        return Credential(token=access_token, expires_at=self._clock() + expires_in)

    def _record(self, success: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_credential_exchange(success)
