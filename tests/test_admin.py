"""
Tests for user administration and diagnostics endpoints.
"""

import smtplib

from photoselect.extensions import get_email_service


class TestWorkspaceUsers:
    """GET /api/users."""

    def test_member_sees_own_workspace(self, client, tenant, login):
        login(client, 'client@example.com')
        emails = {u['email'] for u in client.get('/api/users').get_json()['users']}
        assert emails == {'owner@example.com', 'staff@example.com', 'client@example.com'}

    def test_member_cannot_pick_workspace(self, client, tenant, login):
        login(client, 'client@example.com')
        response = client.get(f'/api/users?workspace_id={tenant["other_workspace"]["id"]}')
        emails = {u['email'] for u in response.get_json()['users']}
        assert 'outsider@example.com' not in emails

    def test_super_admin_picks_workspace(self, client, tenant, login):
        login(client, 'admin@example.com')
        response = client.get(f'/api/users?workspace_id={tenant["other_workspace"]["id"]}')
        assert [u['email'] for u in response.get_json()['users']] == ['outsider@example.com']

    def test_no_workspace(self, client, make_user, login):
        make_user('loner@example.com')
        make_user('second@example.com')
        login(client, 'second@example.com')
        assert client.get('/api/users').get_json() == {'users': []}


class TestAdminUsers:
    """GET/POST /api/admin/users."""

    def test_list_requires_super_admin(self, client, tenant, login):
        login(client, 'owner@example.com')
        assert client.get('/api/admin/users').status_code == 403

    def test_list_filters(self, client, tenant, login):
        login(client, 'admin@example.com')
        users = client.get('/api/admin/users?role=STAFF').get_json()['users']
        assert [u['email'] for u in users] == ['staff@example.com']
        assert all('password_hash' not in u for u in users)

    def test_list_invalid_role(self, client, tenant, login):
        login(client, 'admin@example.com')
        assert client.get('/api/admin/users?role=ROOT').status_code == 400

    def test_create_user(self, client, tenant, login):
        login(client, 'admin@example.com')
        response = client.post('/api/admin/users', json={
            'email': 'new@example.com',
            'name': 'New Staff',
            'password': 'AnotherGood1!',
            'role': 'STAFF',
            'workspace_id': tenant['workspace']['id'],
        })
        assert response.status_code == 201
        user = response.get_json()['user']
        assert user['role'] == 'STAFF'
        assert user['workspace_id'] == tenant['workspace']['id']

        client.post('/api/auth/logout')
        assert login(client, 'new@example.com', 'AnotherGood1!').status_code == 200

    def test_create_duplicate(self, client, tenant, login):
        login(client, 'admin@example.com')
        response = client.post('/api/admin/users', json={
            'email': 'STAFF@example.com',
            'name': 'Dup',
            'password': 'AnotherGood1!',
            'role': 'USER',
        })
        assert response.status_code == 409

    def test_create_unknown_workspace(self, client, tenant, login):
        login(client, 'admin@example.com')
        response = client.post('/api/admin/users', json={
            'email': 'new@example.com',
            'name': 'New',
            'password': 'AnotherGood1!',
            'role': 'USER',
            'workspace_id': 'nope',
        })
        assert response.status_code == 404


class TestChangeRole:
    """PATCH /api/admin/users/<id>/role."""

    def test_role_change_ends_target_session(self, app, tenant, login):
        staff = app.test_client()
        login(staff, 'staff@example.com')
        assert staff.get('/api/auth/me').status_code == 200

        admin = app.test_client()
        login(admin, 'admin@example.com')
        response = admin.patch(f'/api/admin/users/{tenant["staff"]["id"]}/role', json={'role': 'BUSINESS_OWNER'})
        assert response.status_code == 200
        assert response.get_json()['user']['role'] == 'BUSINESS_OWNER'

        response = staff.get('/api/auth/me')
        assert response.status_code == 401

        login(staff, 'staff@example.com')
        assert staff.get('/api/auth/me').get_json()['user']['role'] == 'BUSINESS_OWNER'

    def test_cannot_change_own_role(self, client, tenant, login):
        login(client, 'admin@example.com')
        response = client.patch(f'/api/admin/users/{tenant["admin"]["id"]}/role', json={'role': 'USER'})
        assert response.status_code == 400

    def test_unknown_user(self, client, tenant, login):
        login(client, 'admin@example.com')
        assert client.patch('/api/admin/users/nobody/role', json={'role': 'USER'}).status_code == 404

    def test_owner_forbidden(self, client, tenant, login):
        login(client, 'owner@example.com')
        response = client.patch(f'/api/admin/users/{tenant["staff"]["id"]}/role', json={'role': 'USER'})
        assert response.status_code == 403


class TestDiagnostics:
    """Security stats, storage status and the email test."""

    def test_security_stats(self, client, tenant, login):
        login(client, 'admin@example.com')
        body = client.get('/api/admin/security/stats').get_json()
        assert body['sessions']['active_sessions'] >= 1
        assert body['storage']['type'] == 'local'
        assert 'timestamp' in body

    def test_storage_status_for_owner(self, client, tenant, login):
        login(client, 'owner@example.com')
        response = client.get('/api/storage/status')
        assert response.status_code == 200
        assert response.get_json()['storage']['type'] == 'local'

    def test_storage_status_forbidden_for_staff(self, client, tenant, login):
        login(client, 'staff@example.com')
        assert client.get('/api/storage/status').status_code == 403

    def test_email_in_development_mode(self, client, tenant, login):
        login(client, 'admin@example.com')
        response = client.post('/api/email/test', json={'email': 'someone@example.com'})
        assert response.status_code == 200
        assert response.get_json()['development_mode'] is True

    def test_email_failure_reported(self, app, client, tenant, login, monkeypatch):
        def refuse(*args, **kwargs):
            raise smtplib.SMTPConnectError(421, 'unavailable')

        monkeypatch.setattr(smtplib, 'SMTP', refuse)
        with app.app_context():
            get_email_service().config.smtp_host = 'smtp.invalid'

        login(client, 'admin@example.com')
        response = client.post('/api/email/test', json={'email': 'someone@example.com'})
        assert response.status_code == 500
        assert response.get_json()['error']['type'] == 'EMAIL_ERROR'
