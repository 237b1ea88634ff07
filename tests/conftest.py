"""
Pytest fixtures for the PhotoSelect test suite.

Provides multiple app configurations for testing different security
controls in isolation:
- app/client: Base test config (CSRF off, rate limiting off)
- csrf_app/csrf_client: CSRF enabled
- rate_limit_app/rate_limit_client: Rate limiting enabled

Each app lives in its own tmp_path instance folder, so the database,
session files and uploads never leak between tests. Seeding helpers
write straight to the database inside an app context.
"""

import io

import pytest

from photoselect import create_app
from photoselect.auth.models import BUSINESS_OWNER, STAFF, SUPER_ADMIN, USER, create_user
from photoselect.config import CSRFTestConfig, RateLimitTestConfig, TestConfig

PASSWORD = 'CorrectHorse42!'


@pytest.fixture
def app(tmp_path):
    """Create a Flask app with the base test configuration."""
    return create_app(TestConfig, instance_path=str(tmp_path))


@pytest.fixture
def client(app):
    """Test client for the base app configuration."""
    return app.test_client()


@pytest.fixture
def csrf_app(tmp_path):
    """Create a Flask app with CSRF protection enabled."""
    return create_app(CSRFTestConfig, instance_path=str(tmp_path))


@pytest.fixture
def csrf_client(csrf_app):
    """Test client with CSRF protection enabled."""
    return csrf_app.test_client()


@pytest.fixture
def rate_limit_app(tmp_path):
    """Create a Flask app with rate limiting enabled."""
    return create_app(RateLimitTestConfig, instance_path=str(tmp_path))


@pytest.fixture
def rate_limit_client(rate_limit_app):
    """Test client with rate limiting enabled."""
    return rate_limit_app.test_client()


# --- Seeding helpers ---

@pytest.fixture
def make_user(app):
    """Factory: make_user(email, role=USER, workspace_id=None, name=None) -> user dict."""
    def _make_user(email, role=USER, workspace_id=None, name=None, password=PASSWORD):
        with app.app_context():
            return create_user(email, name or email.split('@')[0], password, role=role, workspace_id=workspace_id)
    return _make_user


@pytest.fixture
def make_workspace(app):
    """Factory: make_workspace(name, owner_id=None) -> workspace dict."""
    from photoselect.workspaces.models import create_workspace, slugify

    def _make_workspace(name, owner_id=None, slug=None):
        with app.app_context():
            return create_workspace(name, slug or slugify(name), None, owner_id)
    return _make_workspace


@pytest.fixture
def make_photo(app):
    """Factory: make_photo(workspace_id, uploaded_by_id, data=...) -> photo dict, file stored locally."""
    from photoselect.extensions import get_storage
    from photoselect.photos.models import create_photo

    def _make_photo(workspace_id, uploaded_by_id, data=b'\xff\xd8\xff fake jpeg', name='photo.jpg'):
        with app.app_context():
            stored = get_storage().save(io.BytesIO(data), name, 'image/jpeg')
            return create_photo(stored, name, 'image/jpeg', workspace_id, uploaded_by_id)
    return _make_photo


@pytest.fixture
def login():
    """login(client, email, password=PASSWORD) posts JSON credentials and returns the response."""
    def _login(client, email, password=PASSWORD):
        return client.post('/api/auth/login', json={'email': email, 'password': password})
    return _login


@pytest.fixture
def tenant(app, make_user, make_workspace):
    """
    A small tenant: a super admin, a workspace with its owner, a staff
    member and a client user, plus a second workspace with an outsider.
    """
    from photoselect.auth.models import get_user_by_id, public_user, update_user_role

    admin = make_user('admin@example.com', role=SUPER_ADMIN, name='Admin')
    owner = make_user('owner@example.com', role=BUSINESS_OWNER, name='Owner')
    workspace = make_workspace('Smith Wedding', owner_id=owner['id'])
    other = make_workspace('Other Studio')

    with app.app_context():
        update_user_role(owner['id'], BUSINESS_OWNER, workspace['id'])
        owner = public_user(get_user_by_id(owner['id']))

    return {
        'admin': admin,
        'owner': owner,
        'workspace': workspace,
        'other_workspace': other,
        'staff': make_user('staff@example.com', role=STAFF, workspace_id=workspace['id'], name='Staff'),
        'user': make_user('client@example.com', role=USER, workspace_id=workspace['id'], name='Client'),
        'outsider': make_user('outsider@example.com', role=USER, workspace_id=other['id'], name='Outsider'),
    }


@pytest.fixture
def subscribe(app):
    """Factory: subscribe(user_id, plan_type='PROFESSIONAL') -> active subscription dict."""
    from photoselect.billing.models import upsert_subscription

    def _subscribe(user_id, plan_type='PROFESSIONAL', status='ACTIVE'):
        with app.app_context():
            return upsert_subscription(user_id, plan_type=plan_type, status=status)
    return _subscribe
