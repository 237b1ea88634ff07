"""
Tests for the photo endpoints.

Covers: listing and pagination scope, upload validation, selection
toggling, single and bulk delete permissions, serving, and ZIP download.
"""

import io
import zipfile


def _upload(client, workspace_id, data=b'\xff\xd8\xff jpeg bytes', name='beach.jpg', mimetype='image/jpeg'):
    return client.post(
        '/api/photos/upload',
        data={'file': (io.BytesIO(data), name, mimetype), 'workspace_id': workspace_id},
        content_type='multipart/form-data',
    )


class TestListing:
    """GET /api/photos and /api/photos/workspace/<id>."""

    def test_members_see_own_workspace_only(self, client, tenant, make_photo, login):
        mine = make_photo(tenant['workspace']['id'], tenant['owner']['id'])
        make_photo(tenant['other_workspace']['id'], tenant['admin']['id'])

        login(client, 'client@example.com')
        body = client.get('/api/photos').get_json()
        assert [p['id'] for p in body['photos']] == [mine['id']]
        assert body['pagination']['total'] == 1

    def test_super_admin_sees_everything(self, client, tenant, make_photo, login):
        make_photo(tenant['workspace']['id'], tenant['owner']['id'])
        make_photo(tenant['other_workspace']['id'], tenant['admin']['id'])

        login(client, 'admin@example.com')
        assert client.get('/api/photos').get_json()['pagination']['total'] == 2

    def test_pagination(self, client, tenant, make_photo, login):
        for _ in range(3):
            make_photo(tenant['workspace']['id'], tenant['owner']['id'])

        login(client, 'owner@example.com')
        body = client.get('/api/photos?page=2&limit=2').get_json()
        assert len(body['photos']) == 1
        assert body['pagination'] == {'page': 2, 'limit': 2, 'total': 3, 'pages': 2, 'has_more': False}

    def test_limit_bounds(self, client, tenant, login):
        login(client, 'owner@example.com')
        assert client.get('/api/photos?limit=101').status_code == 400
        assert client.get('/api/photos?page=zero').status_code == 400

    def test_foreign_workspace_forbidden(self, client, tenant, login):
        login(client, 'client@example.com')
        response = client.get(f'/api/photos/workspace/{tenant["other_workspace"]["id"]}')
        assert response.status_code == 403

    def test_workspace_listing_includes_uploader(self, client, tenant, make_photo, login):
        make_photo(tenant['workspace']['id'], tenant['owner']['id'])
        login(client, 'client@example.com')
        body = client.get(f'/api/photos/workspace/{tenant["workspace"]["id"]}').get_json()
        assert body['photos'][0]['uploaded_by_name'] == 'Owner'
        assert body['photos'][0]['selections'] == []


class TestUpload:
    """POST /api/photos/upload."""

    def test_owner_uploads(self, client, tenant, login):
        login(client, 'owner@example.com')
        response = _upload(client, tenant['workspace']['id'])
        assert response.status_code == 201
        photo = response.get_json()['photo']
        assert photo['original_name'] == 'beach.jpg'
        assert photo['storage_type'] == 'local'
        assert photo['url'] == f'/api/photos/serve/{photo["filename"]}'

    def test_client_cannot_upload(self, client, tenant, login):
        login(client, 'client@example.com')
        assert _upload(client, tenant['workspace']['id']).status_code == 403

    def test_owner_cannot_upload_to_foreign_workspace(self, client, tenant, login):
        login(client, 'owner@example.com')
        assert _upload(client, tenant['other_workspace']['id']).status_code == 403

    def test_non_image_rejected(self, client, tenant, login):
        login(client, 'owner@example.com')
        response = _upload(client, tenant['workspace']['id'], name='notes.txt', mimetype='text/plain')
        assert response.status_code == 400
        assert response.get_json()['error']['type'] == 'FILE_UPLOAD_ERROR'

    def test_oversized_image_rejected(self, app, client, tenant, login):
        login(client, 'owner@example.com')
        data = b'x' * (app.config['MAX_PHOTO_SIZE'] + 1)
        response = _upload(client, tenant['workspace']['id'], data=data)
        assert response.status_code == 413

    def test_missing_file_rejected(self, client, tenant, login):
        login(client, 'owner@example.com')
        response = client.post(
            '/api/photos/upload',
            data={'workspace_id': tenant['workspace']['id']},
            content_type='multipart/form-data',
        )
        assert response.status_code == 400

    def test_json_body_rejected(self, client, tenant, login):
        login(client, 'owner@example.com')
        response = client.post('/api/photos/upload', json={'workspace_id': tenant['workspace']['id']})
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_CONTENT_TYPE'

    def test_plan_photo_limit(self, app, client, tenant, make_photo, login):
        from photoselect.billing.models import PLAN_LIMITS, STARTER

        for _ in range(PLAN_LIMITS[STARTER]['max_photos_per_workspace']):
            make_photo(tenant['workspace']['id'], tenant['owner']['id'])

        login(client, 'owner@example.com')
        response = _upload(client, tenant['workspace']['id'])
        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'PLAN_LIMIT_REACHED'


class TestSelection:
    """POST /api/photos/<id>/select toggles."""

    def test_toggle_select_then_deselect(self, client, tenant, make_photo, login):
        photo = make_photo(tenant['workspace']['id'], tenant['owner']['id'])
        login(client, 'client@example.com')

        first = client.post(f'/api/photos/{photo["id"]}/select').get_json()
        assert first['selected'] is True
        assert first['message'] == 'Photo selected'
        assert first['photo']['selected'] is True

        second = client.post(f'/api/photos/{photo["id"]}/select').get_json()
        assert second['selected'] is False
        assert second['photo']['selections'] == []

    def test_odd_number_of_toggles_ends_selected(self, client, tenant, make_photo, login):
        photo = make_photo(tenant['workspace']['id'], tenant['owner']['id'])
        login(client, 'client@example.com')

        for _ in range(3):
            response = client.post(f'/api/photos/{photo["id"]}/select')
        assert response.get_json()['selected'] is True
        assert len(response.get_json()['photo']['selections']) == 1

    def test_selections_are_per_user(self, app, tenant, make_photo, login):
        photo = make_photo(tenant['workspace']['id'], tenant['owner']['id'])

        staff = app.test_client()
        login(staff, 'staff@example.com')
        staff.post(f'/api/photos/{photo["id"]}/select')

        client = app.test_client()
        login(client, 'client@example.com')
        body = client.post(f'/api/photos/{photo["id"]}/select').get_json()
        assert body['selected'] is True
        assert {s['user_name'] for s in body['photo']['selections']} == {'Staff', 'Client'}

    def test_foreign_photo_forbidden(self, client, tenant, make_photo, login):
        photo = make_photo(tenant['other_workspace']['id'], tenant['admin']['id'])
        login(client, 'client@example.com')
        assert client.post(f'/api/photos/{photo["id"]}/select').status_code == 403

    def test_unknown_photo(self, client, tenant, login):
        login(client, 'client@example.com')
        assert client.post('/api/photos/9999/select').status_code == 404


class TestDelete:
    """DELETE /api/photos/<id>/delete and /api/photos/bulk-delete."""

    def test_owner_deletes_photo_and_file(self, app, client, tenant, make_photo, login):
        photo = make_photo(tenant['workspace']['id'], tenant['owner']['id'])
        login(client, 'owner@example.com')

        response = client.delete(f'/api/photos/{photo["id"]}/delete')
        assert response.status_code == 200

        storage = app.extensions['photoselect.storage']
        assert not storage.local.exists(photo['filename'])
        assert client.get(f'/api/photos/serve/{photo["filename"]}').status_code == 404

    def test_delete_removes_selections(self, app, client, tenant, make_photo, login):
        photo = make_photo(tenant['workspace']['id'], tenant['owner']['id'])
        login(client, 'owner@example.com')
        client.post(f'/api/photos/{photo["id"]}/select')
        client.delete(f'/api/photos/{photo["id"]}/delete')

        with app.app_context():
            from photoselect.db import get_db
            count = get_db().execute('SELECT COUNT(*) FROM photo_selections').fetchone()[0]
        assert count == 0

    def test_client_cannot_delete(self, client, tenant, make_photo, login):
        photo = make_photo(tenant['workspace']['id'], tenant['owner']['id'])
        login(client, 'client@example.com')
        assert client.delete(f'/api/photos/{photo["id"]}/delete').status_code == 403

    def test_owner_cannot_delete_foreign_photo(self, client, tenant, make_photo, login):
        photo = make_photo(tenant['other_workspace']['id'], tenant['admin']['id'])
        login(client, 'owner@example.com')
        assert client.delete(f'/api/photos/{photo["id"]}/delete').status_code == 403

    def test_missing_file_does_not_block_delete(self, app, client, tenant, make_photo, login):
        photo = make_photo(tenant['workspace']['id'], tenant['owner']['id'])
        with app.app_context():
            app.extensions['photoselect.storage'].local.delete(photo['filename'])

        login(client, 'owner@example.com')
        assert client.delete(f'/api/photos/{photo["id"]}/delete').status_code == 200

    def test_bulk_delete_only_permitted_subset(self, client, tenant, make_photo, login):
        own = [make_photo(tenant['workspace']['id'], tenant['owner']['id']) for _ in range(2)]
        foreign = make_photo(tenant['other_workspace']['id'], tenant['admin']['id'])

        login(client, 'owner@example.com')
        ids = [p['id'] for p in own] + [foreign['id']]
        body = client.delete('/api/photos/bulk-delete', json={'photo_ids': ids}).get_json()

        assert body['deleted_count'] == 2
        assert body['requested_count'] == 3
        assert sorted(body['deleted_ids']) == sorted(p['id'] for p in own)

        login(client, 'admin@example.com')
        assert client.get(f'/api/photos/workspace/{tenant["other_workspace"]["id"]}').get_json()['photos']

    def test_bulk_delete_nothing_permitted(self, client, tenant, make_photo, login):
        foreign = make_photo(tenant['other_workspace']['id'], tenant['admin']['id'])
        login(client, 'owner@example.com')
        response = client.delete('/api/photos/bulk-delete', json={'photo_ids': [foreign['id']]})
        assert response.status_code == 404

    def test_bulk_delete_validation(self, app, client, tenant, login):
        login(client, 'owner@example.com')
        too_many = list(range(1, app.config['MAX_BULK_DELETE'] + 2))
        for body in ({'photo_ids': []}, {'photo_ids': ['1']}, {'photo_ids': [0]}, {'photo_ids': too_many}, {}):
            assert client.delete('/api/photos/bulk-delete', json=body).status_code == 400


class TestServe:
    """GET /api/photos/serve/<filename>."""

    def test_serves_file_with_private_cache(self, client, tenant, make_photo, login):
        photo = make_photo(tenant['workspace']['id'], tenant['owner']['id'], data=b'JPEGDATA')
        login(client, 'client@example.com')

        response = client.get(f'/api/photos/serve/{photo["filename"]}')
        assert response.status_code == 200
        assert response.data == b'JPEGDATA'
        assert response.headers['Cache-Control'] == 'private, max-age=3600'
        assert response.headers['X-Content-Type-Options'] == 'nosniff'

    def test_foreign_workspace_forbidden(self, client, tenant, make_photo, login):
        photo = make_photo(tenant['other_workspace']['id'], tenant['admin']['id'])
        login(client, 'client@example.com')
        assert client.get(f'/api/photos/serve/{photo["filename"]}').status_code == 403

    def test_bad_extension_rejected(self, client, tenant, login):
        login(client, 'client@example.com')
        assert client.get('/api/photos/serve/evil.php').status_code == 400

    def test_encoded_traversal_rejected(self, client, tenant, login):
        login(client, 'client@example.com')
        response = client.get('/api/photos/serve/..%2f..%2fetc%2fpasswd.jpg')
        assert response.status_code in (400, 404)


class TestDownload:
    """POST /api/photos/download returns the caller's selections as a ZIP."""

    def test_zip_of_selected_photos(self, client, tenant, make_photo, login):
        a = make_photo(tenant['workspace']['id'], tenant['owner']['id'], data=b'AAA', name='a.jpg')
        make_photo(tenant['workspace']['id'], tenant['owner']['id'], data=b'BBB', name='b.jpg')

        login(client, 'client@example.com')
        client.post(f'/api/photos/{a["id"]}/select')

        response = client.post('/api/photos/download', json={})
        assert response.status_code == 200
        assert response.mimetype == 'application/zip'

        archive = zipfile.ZipFile(io.BytesIO(response.data))
        assert archive.namelist() == [f'{a["id"]}_a.jpg']
        assert archive.read(f'{a["id"]}_a.jpg') == b'AAA'

    def test_nothing_selected(self, client, tenant, make_photo, login):
        make_photo(tenant['workspace']['id'], tenant['owner']['id'])
        login(client, 'client@example.com')
        assert client.post('/api/photos/download', json={}).status_code == 404
