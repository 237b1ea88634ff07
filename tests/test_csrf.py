"""
Tests for CSRF protection.

Covers: token issue at login and via /api/csrf/token, rejection of
missing, wrong and expired tokens, token sources (header, JSON body),
and revocation on logout.
"""

import pytest

from photoselect.security.csrf import CSRFTokenStore


@pytest.fixture
def csrf_user(csrf_app):
    from photoselect.auth.models import create_user

    with csrf_app.app_context():
        return create_user('alice@example.com', 'Alice', 'CorrectHorse42!')


def _login(client):
    response = client.post('/api/auth/login', json={
        'email': 'alice@example.com',
        'password': 'CorrectHorse42!',
    })
    assert response.status_code == 200
    return response.get_json()['csrf_token']


class TestCSRFTokenStore:
    """Unit tests for the token store itself."""

    def test_token_is_reused_while_valid(self):
        store = CSRFTokenStore(ttl=60)
        assert store.get_token('a@example.com') == store.get_token('a@example.com')

    def test_validate_matching_token(self):
        store = CSRFTokenStore(ttl=60)
        token = store.create_token('a@example.com')
        assert store.validate_token('a@example.com', token) is True

    def test_token_bound_to_session_key(self):
        store = CSRFTokenStore(ttl=60)
        token = store.create_token('a@example.com')
        assert store.validate_token('b@example.com', token) is False

    def test_expired_token_rejected(self):
        now = [1000.0]
        store = CSRFTokenStore(ttl=60, clock=lambda: now[0])
        token = store.create_token('a@example.com')

        now[0] += 61
        assert store.validate_token('a@example.com', token) is False

    def test_missing_token_rejected(self):
        store = CSRFTokenStore(ttl=60)
        store.create_token('a@example.com')
        assert store.validate_token('a@example.com', None) is False
        assert store.validate_token(None, 'anything') is False

    def test_cleanup_expired(self):
        now = [1000.0]
        store = CSRFTokenStore(ttl=60, clock=lambda: now[0])
        store.create_token('a@example.com')
        store.create_token('b@example.com')

        now[0] += 61
        assert store.cleanup_expired() == 2
        assert len(store) == 0

    def test_revoke(self):
        store = CSRFTokenStore(ttl=60)
        token = store.create_token('a@example.com')
        store.revoke('a@example.com')
        assert store.validate_token('a@example.com', token) is False


class TestCSRFEnforcement:
    """Tests for @csrf_protect on mutating endpoints."""

    def test_post_without_token_rejected(self, csrf_client, csrf_user):
        _login(csrf_client)
        response = csrf_client.post('/api/auth/logout')
        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'CSRF_TOKEN_INVALID'

    def test_post_with_wrong_token_rejected(self, csrf_client, csrf_user):
        _login(csrf_client)
        response = csrf_client.post('/api/auth/logout', headers={'X-CSRF-Token': 'forged'})
        assert response.status_code == 403

    def test_post_with_header_token_accepted(self, csrf_client, csrf_user):
        token = _login(csrf_client)
        response = csrf_client.post('/api/auth/logout', headers={'X-CSRF-Token': token})
        assert response.status_code == 200

    def test_token_in_json_body_accepted(self, csrf_client, csrf_user):
        token = _login(csrf_client)
        response = csrf_client.post('/api/auth/reauthenticate', json={
            'password': 'CorrectHorse42!',
            'csrf_token': token,
        })
        assert response.status_code == 200

    def test_get_requests_not_checked(self, csrf_client, csrf_user):
        _login(csrf_client)
        assert csrf_client.get('/api/auth/me').status_code == 200

    def test_token_endpoint_returns_login_token(self, csrf_client, csrf_user):
        token = _login(csrf_client)
        response = csrf_client.get('/api/csrf/token')
        assert response.status_code == 200
        assert response.get_json()['csrf_token'] == token

    def test_token_endpoint_requires_login(self, csrf_client):
        assert csrf_client.get('/api/csrf/token').status_code == 401

    def test_expired_token_rejected_by_endpoint(self, csrf_app, csrf_client, csrf_user):
        token = _login(csrf_client)
        store = csrf_app.extensions['photoselect.csrf']
        real_clock = store.clock
        store.clock = lambda: real_clock() + csrf_app.config['CSRF_TOKEN_TTL'] + 1

        response = csrf_client.post('/api/auth/logout', headers={'X-CSRF-Token': token})
        assert response.status_code == 403

    def test_logout_revokes_token(self, csrf_app, csrf_client, csrf_user):
        token = _login(csrf_client)
        csrf_client.post('/api/auth/logout', headers={'X-CSRF-Token': token})

        store = csrf_app.extensions['photoselect.csrf']
        assert store.validate_token('alice@example.com', token) is False
