from unittest.mock import Mock

import pytest
import requests

from songscout.crosscutting.metrics import MetricsCollector
from songscout.domain.errors import AuthenticationError, NetworkError, UpstreamError
from songscout.infrastructure.catalog import CatalogClient, extract_error_message


def _response(status_code=200, body=None, reason='OK'):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    response.content = b'{}' if body is not None else b''
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


class TestCatalogClient:
    """Tests for the authenticated catalog client."""

    def setup_method(self):
        """Set up test fixtures."""
        self.tokens = Mock()
        self.tokens.get_token.return_value = 'bearer-token'
        self.session = Mock()
        self.metrics = MetricsCollector()
        self.client = CatalogClient(self.tokens, session=self.session, timeout=3.0, metrics=self.metrics)

    def test_call_attaches_bearer_token_and_timeout(self):
        """Test each call carries the cached token and a bounded timeout."""
        self.session.request.return_value = _response(body={'ok': True})

        result = self.client.call('GET', '/tracks/abc', headers={'Accept': 'application/json'})

        assert result == {'ok': True}
        self.session.request.assert_called_once_with(
            'GET', 'https://api.spotify.com/v1/tracks/abc',
            headers={'Accept': 'application/json', 'Authorization': 'Bearer bearer-token'},
            params=None, json=None, timeout=3.0,
        )

    def test_non_success_status_raises_upstream_error_with_message(self):
        """Test the upstream status and message are carried on UpstreamError."""
        self.session.request.return_value = _response(
            status_code=429, body={'error': {'status': 429, 'message': 'API rate limit exceeded'}},
            reason='Too Many Requests',
        )

        with pytest.raises(UpstreamError) as exc_info:
            self.client.get_track('abc')

        assert exc_info.value.status_code == 429
        assert exc_info.value.message == 'API rate limit exceeded'
        assert self.metrics.to_dict()['upstream_failures'] == {'/tracks/{id}': 1}

    def test_timeout_raises_network_error(self):
        """Test transport timeouts surface as NetworkError (500)."""
        self.session.request.side_effect = requests.Timeout("read timed out")

        with pytest.raises(NetworkError) as exc_info:
            self.client.search_tracks('beatles', 5)

        assert exc_info.value.status_code == 500

    def test_connection_error_raises_network_error(self):
        """Test connection failures surface as NetworkError."""
        self.session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(NetworkError):
            self.client.get_artist('a1')

    def test_authentication_error_propagates_without_request(self):
        """Test a failed credential exchange stops the call before any request."""
        self.tokens.get_token.side_effect = AuthenticationError()

        with pytest.raises(AuthenticationError):
            self.client.get_track('abc')
        self.session.request.assert_not_called()

    def test_search_tracks_builds_query_and_unwraps_items(self):
        """Test search parameters and the tracks.items unwrapping."""
        self.session.request.return_value = _response(body={'tracks': {'items': [{'id': '1'}, None, {'id': '2'}]}})

        items = self.client.search_tracks('Beatles', 3, market='US')

        assert items == [{'id': '1'}, {'id': '2'}]
        _, kwargs = self.session.request.call_args
        assert kwargs['params'] == {'q': 'Beatles', 'type': 'track', 'limit': 3, 'market': 'US'}

    def test_search_tracks_drops_mistyped_levels(self):
        """Test unexpected shapes under tracks.items yield only the object items."""
        self.session.request.return_value = _response(body={'tracks': {'items': ['x', {'id': '1'}, 7]}})
        assert self.client.search_tracks('Beatles', 3) == [{'id': '1'}]

        self.session.request.return_value = _response(body={'tracks': ['x']})
        assert self.client.search_tracks('Beatles', 3) == []

    def test_non_object_body_raises_upstream_error(self):
        """Test a JSON array or scalar body is reported as a malformed response."""
        self.session.request.return_value = _response(body=[])

        with pytest.raises(UpstreamError) as exc_info:
            self.client.search_tracks('Beatles', 3)
        assert exc_info.value.status_code == 502
        assert exc_info.value.message == 'Catalog returned a malformed response'

    def test_artist_top_tracks_is_market_scoped(self):
        """Test top tracks are requested for the given market."""
        self.session.request.return_value = _response(body={'tracks': [{'id': 'x'}]})

        assert self.client.get_artist_top_tracks('art', 'GB') == [{'id': 'x'}]
        args, kwargs = self.session.request.call_args
        assert args[1] == 'https://api.spotify.com/v1/artists/art/top-tracks'
        assert kwargs['params'] == {'market': 'GB'}

    def test_path_identifiers_are_escaped(self):
        """Test identifiers cannot change the requested resource path."""
        self.session.request.return_value = _response(body={'id': 'x'})

        self.client.get_track('../me')

        args, _ = self.session.request.call_args
        assert args[1] == 'https://api.spotify.com/v1/tracks/..%2Fme'

    def test_empty_body_returns_empty_dict(self):
        """Test 204 responses decode to an empty mapping."""
        self.session.request.return_value = _response(status_code=204)

        assert self.client.call('GET', '/me') == {}

    def test_metrics_record_calls_by_resource(self):
        """Test calls are counted per path template."""
        self.session.request.return_value = _response(body={'id': 'x'})

        self.client.get_track('a')
        self.client.get_track('b')

        assert self.metrics.to_dict()['upstream_calls'] == {'/tracks/{id}': 2}


class TestExtractErrorMessage:
    """Tests for best-effort upstream message extraction."""

    def test_prefers_nested_error_message(self):
        assert extract_error_message(_response(404, {'error': {'status': 404, 'message': 'Non existing id'}})) == 'Non existing id'

    def test_uses_error_description(self):
        assert extract_error_message(_response(400, {'error': 'invalid_client', 'error_description': 'Invalid client'})) == 'Invalid client'

    def test_uses_plain_error_string(self):
        assert extract_error_message(_response(400, {'error': 'invalid_request'})) == 'invalid_request'

    def test_falls_back_to_reason(self):
        assert extract_error_message(_response(503, None, reason='Service Unavailable')) == 'Service Unavailable'

    def test_generic_fallback(self):
        assert extract_error_message(_response(503, None, reason='')) == 'Upstream request failed with status 503'
