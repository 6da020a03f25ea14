import threading
from unittest.mock import Mock

import pytest
import requests

from songscout.crosscutting.metrics import MetricsCollector
from songscout.domain.errors import AuthenticationError
from songscout.infrastructure.credentials import CredentialCache, SPOTIFY_TOKEN_URL


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _token_response(token="token-1", expires_in=3600, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = {'access_token': token, 'token_type': 'Bearer', 'expires_in': expires_in}
    response.text = '{"access_token": "..."}'
    return response


class TestCredentialCache:
    """Tests for the client-credentials token cache."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.session = Mock()
        self.metrics = MetricsCollector()
        self.cache = CredentialCache(
            'client-id', 'client-secret',
            session=self.session, clock=self.clock, metrics=self.metrics, timeout=5.0,
        )

    def test_first_call_performs_exchange(self):
        """Test the cold cache exchanges client credentials with basic auth."""
        self.session.post.return_value = _token_response('fresh')

        assert self.cache.state == 'empty'
        assert self.cache.get_token() == 'fresh'
        assert self.cache.state == 'valid'

        self.session.post.assert_called_once_with(
            SPOTIFY_TOKEN_URL,
            data={'grant_type': 'client_credentials'},
            auth=('client-id', 'client-secret'),
            timeout=5.0,
        )
        assert self.metrics.to_dict()['credential_exchanges'] == 1

    def test_cached_token_is_reused_within_safety_margin(self):
        """Test no new exchange happens while the token is usable."""
        self.session.post.return_value = _token_response('cached', expires_in=3600)

        self.cache.get_token()
        self.clock.now += 3600 - 61
        assert self.cache.get_token() == 'cached'

        assert self.session.post.call_count == 1

    def test_token_inside_safety_margin_triggers_one_refresh(self):
        """Test a token with less than 60s left is refreshed exactly once."""
        self.session.post.side_effect = [
            _token_response('first', expires_in=3600),
            _token_response('second', expires_in=3600),
        ]

        assert self.cache.get_token() == 'first'
        self.clock.now += 3600 - 59
        assert self.cache.state == 'expired'

        assert self.cache.get_token() == 'second'
        assert self.cache.get_token() == 'second'
        assert self.session.post.call_count == 2

    def test_failed_exchange_clears_cache_and_raises(self):
        """Test an upstream rejection clears the credential and the next call retries."""
        self.session.post.side_effect = [
            _token_response('first', expires_in=100),
            _token_response(status_code=400),
            _token_response('recovered'),
        ]

        self.cache.get_token()
        self.clock.now += 50

        with pytest.raises(AuthenticationError) as exc_info:
            self.cache.get_token()
        assert exc_info.value.status_code == 502
        assert self.cache.state == 'empty'

        assert self.cache.get_token() == 'recovered'
        assert self.metrics.to_dict()['credential_failures'] == 1

    def test_interrupted_exchange_releases_refresh_slot(self):
        """Test an interrupt during the exchange does not leave later callers blocked."""
        self.session.post.side_effect = [KeyboardInterrupt(), _token_response('after')]

        with pytest.raises(KeyboardInterrupt):
            self.cache.get_token()
        assert self.cache.state == 'empty'

        results = []
        worker = threading.Thread(target=lambda: results.append(self.cache.get_token()))
        worker.start()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert results == ['after']

    def test_transport_failure_raises_authentication_error(self):
        """Test connection failures during the exchange are authentication errors."""
        self.session.post.side_effect = requests.ConnectionError("dns failure")

        with pytest.raises(AuthenticationError):
            self.cache.get_token()
        assert self.cache.state == 'empty'

    def test_response_without_access_token_is_rejected(self):
        """Test a 200 without an access_token is treated as a failed exchange."""
        response = _token_response()
        response.json.return_value = {'token_type': 'Bearer'}
        self.session.post.return_value = response

        with pytest.raises(AuthenticationError):
            self.cache.get_token()

    def test_missing_expires_in_defaults_to_one_hour(self):
        """Test the declared lifetime falls back to 3600 seconds."""
        response = _token_response('tok')
        response.json.return_value = {'access_token': 'tok'}
        self.session.post.return_value = response

        self.cache.get_token()
        self.clock.now += 3000
        assert self.cache.state == 'valid'
        self.clock.now += 600
        assert self.cache.state == 'expired'

    def test_invalidate_forces_new_exchange(self):
        """Test invalidate drops the cached credential."""
        self.session.post.side_effect = [_token_response('a'), _token_response('b')]

        self.cache.get_token()
        self.cache.invalidate()

        assert self.cache.get_token() == 'b'
        assert self.session.post.call_count == 2


class TestCredentialCacheSingleFlight:
    """Concurrent callers share one in-flight exchange."""

    def setup_method(self):
        """Set up a session whose exchange blocks until released."""
        self.release = threading.Event()
        self.entered = threading.Event()
        self.session = Mock()
        self.cache = CredentialCache('id', 'secret', session=self.session)

    def _run_concurrently(self, count=8):
        results, errors = [], []

        def worker():
            try:
                results.append(self.cache.get_token())
            except AuthenticationError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        assert self.entered.wait(timeout=5)
        self.release.set()
        for t in threads:
            t.join(timeout=5)
        return results, errors

    def test_concurrent_cold_calls_trigger_one_exchange(self):
        """Test at most one exchange happens for concurrent cold-cache callers."""
        def slow_post(*args, **kwargs):
            self.entered.set()
            self.release.wait(timeout=5)
            return _token_response('shared')

        self.session.post.side_effect = slow_post

        results, errors = self._run_concurrently()

        assert errors == []
        assert results == ['shared'] * 8
        assert self.session.post.call_count == 1

    def test_concurrent_callers_share_the_failure(self):
        """Test waiting callers receive the leader's AuthenticationError."""
        def failing_post(*args, **kwargs):
            self.entered.set()
            self.release.wait(timeout=5)
            return _token_response(status_code=401)

        self.session.post.side_effect = failing_post

        results, errors = self._run_concurrently(count=4)

        assert results == []
        assert len(errors) >= 1
        assert all(isinstance(e, AuthenticationError) for e in errors)
        assert self.cache.state == 'empty'

    def test_waiters_are_released_when_exchange_is_interrupted(self):
        """Test callers waiting on an interrupted exchange get an AuthenticationError."""
        calls = []

        def interrupted_post(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                self.entered.set()
                self.release.wait(timeout=5)
                raise KeyboardInterrupt()
            return _token_response('later')

        self.session.post.side_effect = interrupted_post
        outcomes = []

        def worker():
            try:
                outcomes.append(self.cache.get_token())
            except BaseException as e:
                outcomes.append(type(e))

        leader = threading.Thread(target=worker)
        leader.start()
        assert self.entered.wait(timeout=5)
        followers = [threading.Thread(target=worker) for _ in range(3)]
        for t in followers:
            t.start()
        self.release.set()
        for t in [leader] + followers:
            t.join(timeout=5)

        assert not any(t.is_alive() for t in [leader] + followers)
        assert outcomes.count(KeyboardInterrupt) == 1
        assert all(o in (KeyboardInterrupt, AuthenticationError, 'later') for o in outcomes)
        assert len(outcomes) == 4
