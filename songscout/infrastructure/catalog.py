import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from songscout.crosscutting.metrics import MetricsCollector
from songscout.domain.errors import NetworkError, UpstreamError
from songscout.domain.ports import TokenProvider

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE = 'https://api.spotify.com/v1'


def extract_error_message(response: requests.Response) -> str:
    """Best-effort extraction of the catalog's error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get('error')
        if isinstance(error, dict) and error.get('message'):
            return str(error['message'])
        if body.get('error_description'):
            return str(body['error_description'])
        if isinstance(error, str) and error:
            return error

    return response.reason or f"Upstream request failed with status {response.status_code}"


def track_items(data: Any, *keys: str) -> List[Dict[str, Any]]:
    """Follow ``keys`` into ``data`` and return the track objects found there.

    Missing or mistyped levels yield an empty list; null and non-object items are dropped.
    """
    node = data
    for key in keys:
        node = node.get(key) if isinstance(node, dict) else None
    if not isinstance(node, list):
        return []
    return [item for item in node if isinstance(item, dict) and item]


class CatalogClient:
    """Authenticated client for the Spotify Web API catalog resources.

    Every call obtains its bearer token from the token provider. Failures are
    mapped into UpstreamError (non-2xx, carrying the upstream status) or
    NetworkError (the request could not be completed). No call is retried.
    """

    def __init__(self,
                 tokens: TokenProvider,
                 session: Optional[requests.Session] = None,
                 timeout: float = 10.0,
                 base_url: str = SPOTIFY_API_BASE,
                 metrics: Optional[MetricsCollector] = None):
        self.tokens = tokens
        self.session = session or requests.Session()
        self.timeout = timeout
        self.base_url = base_url.rstrip('/')
        self.metrics = metrics

    def call(self,
             method: str,
             path: str,
             headers: Optional[Dict[str, str]] = None,
             params: Optional[Dict[str, Any]] = None,
             json: Optional[Any] = None,
             resource: Optional[str] = None) -> Dict[str, Any]:
        """Issue one authenticated catalog request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path relative to the API base, e.g. ``/tracks/abc``
            headers: Extra request headers
            params: Query string parameters
            json: JSON request body
            resource: Path template used for metrics (defaults to ``path``)

        Raises:
            AuthenticationError: If no token could be obtained
            UpstreamError: If the catalog answered with a non-success status
            NetworkError: If the request could not be completed
        """
        token = self.tokens.get_token()
        request_headers = dict(headers or {})
        request_headers['Authorization'] = f'Bearer {token}'
        url = f"{self.base_url}{path}"

        if self.metrics is not None:
            with self.metrics.upstream_timer(resource or path):
                return self._send(method, url, request_headers, params, json)
        return self._send(method, url, request_headers, params, json)

    def _send(self, method, url, headers, params, json) -> Dict[str, Any]:
        logger.debug(f"{method} {url} params={params}")
        try:
            response = self.session.request(
                method, url, headers=headers, params=params, json=json, timeout=self.timeout
            )
        except requests.Timeout as e:
            logger.error(f"Catalog request timed out after {self.timeout}s: {method} {url}")
            raise NetworkError() from e
        except requests.RequestException as e:
            logger.error(f"Catalog request failed: {method} {url}: {type(e).__name__}: {e}")
            raise NetworkError() from e

        if not 200 <= response.status_code < 300:
            message = extract_error_message(response)
            logger.debug(f"Catalog answered {response.status_code} for {method} {url}: {message}")
            raise UpstreamError(response.status_code, message)

        if response.status_code == 204 or not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(502, "Catalog returned a malformed response") from e
        # Every catalog resource used here is a JSON object
        if not isinstance(payload, dict):
            raise UpstreamError(502, "Catalog returned a malformed response")
        return payload

    # Typed resource helpers

    def search_tracks(self, query: str, limit: int, market: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'q': query, 'type': 'track', 'limit': limit}
        if market:
            params['market'] = market
        data = self.call('GET', '/search', params=params, resource='/search')
        return track_items(data, 'tracks', 'items')

    def get_track(self, track_id: str) -> Dict[str, Any]:
        return self.call('GET', f'/tracks/{quote(track_id, safe="")}', resource='/tracks/{id}')

    def get_artist(self, artist_id: str) -> Dict[str, Any]:
        return self.call('GET', f'/artists/{quote(artist_id, safe="")}', resource='/artists/{id}')

    def get_artist_top_tracks(self, artist_id: str, market: str) -> List[Dict[str, Any]]:
        data = self.call(
            'GET', f'/artists/{quote(artist_id, safe="")}/top-tracks',
            params={'market': market}, resource='/artists/{id}/top-tracks',
        )
        return track_items(data, 'tracks')

    def get_audio_features(self, track_id: str) -> Dict[str, Any]:
        return self.call('GET', f'/audio-features/{quote(track_id, safe="")}', resource='/audio-features/{id}')

    def get_recommendations(self, **params: Any) -> List[Dict[str, Any]]:
        data = self.call('GET', '/recommendations', params=params, resource='/recommendations')
        return track_items(data, 'tracks')
