"""
Tests for security response headers.

Every response, errors included, must carry the header set.
"""

import pytest


@pytest.fixture
def response(client):
    return client.get('/api/auth/me')


class TestContentSecurityPolicy:

    def test_frame_ancestors_none(self, response):
        assert "frame-ancestors 'none'" in response.headers['Content-Security-Policy']

    def test_stripe_allowed(self, response):
        csp = response.headers['Content-Security-Policy']
        assert "script-src 'self' https://js.stripe.com" in csp
        assert 'https://hooks.stripe.com' in csp
        assert 'https://api.stripe.com' in csp

    def test_no_unsafe_inline_scripts(self, response):
        script_src = [d for d in response.headers['Content-Security-Policy'].split('; ') if d.startswith('script-src')]
        assert "'unsafe-inline'" not in script_src[0]

    def test_object_src_none(self, response):
        assert "object-src 'none'" in response.headers['Content-Security-Policy']


class TestStandardHeaders:

    def test_clickjacking(self, response):
        assert response.headers['X-Frame-Options'] == 'DENY'

    def test_nosniff(self, response):
        assert response.headers['X-Content-Type-Options'] == 'nosniff'

    def test_referrer_policy(self, response):
        assert response.headers['Referrer-Policy'] == 'strict-origin-when-cross-origin'

    def test_permissions_policy_keeps_payment(self, response):
        assert 'payment=(self)' in response.headers['Permissions-Policy']
        assert 'camera=()' in response.headers['Permissions-Policy']

    def test_api_responses_not_cached(self, response):
        assert 'no-store' in response.headers['Cache-Control']
        assert response.headers['Pragma'] == 'no-cache'

    def test_no_server_header(self, response):
        assert 'Server' not in response.headers

    def test_hsts_outside_debug(self, app, response):
        assert app.debug is False
        assert response.headers['Strict-Transport-Security'] == 'max-age=31536000; includeSubDomains'


class TestHeadersOnErrors:

    def test_404_has_headers(self, client):
        response = client.get('/api/does-not-exist')
        assert response.status_code == 404
        assert response.headers['X-Frame-Options'] == 'DENY'
        assert 'Content-Security-Policy' in response.headers
