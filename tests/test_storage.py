"""
Tests for photo storage: filename validation, the local bucket, the S3
backend (stubbed with botocore's Stubber) and local fallback.
"""

import io

import pytest
from botocore.stub import Stubber

from photoselect.storage import (
    LOCAL,
    S3,
    LocalStorage,
    S3Storage,
    StorageError,
    StorageManager,
    generate_filename,
    validate_filename,
)

IMAGES = ('jpg', 'jpeg', 'png', 'gif', 'webp')


class TestValidateFilename:

    def test_plain_name(self):
        assert validate_filename('3f2a.jpg', IMAGES)

    @pytest.mark.parametrize('name', [
        '../etc/passwd.jpg',
        'a/b.jpg',
        'a\\b.jpg',
        'evil\0.jpg',
        'evil%00.jpg',
        'shell.php',
        'noextension',
        '',
        'a' * 252 + '.jpg',
    ])
    def test_rejected(self, name):
        assert not validate_filename(name, IMAGES)

    def test_extension_case_insensitive(self):
        assert validate_filename('IMG_0001.JPG', IMAGES)

    def test_generated_names_keep_extension(self):
        name = generate_filename('Holiday Photo.PNG')
        assert name.endswith('.png')
        assert 'Holiday' not in name


class TestLocalStorage:

    def test_save_read_delete(self, tmp_path):
        storage = LocalStorage(str(tmp_path / 'bucket'))
        stored = storage.save(b'data', 'a.jpg', 'image/jpeg')

        assert stored.url == '/api/photos/serve/a.jpg'
        assert stored.size == 4
        assert storage.read('a.jpg') == b'data'

        storage.delete('a.jpg')
        assert not storage.exists('a.jpg')

    def test_delete_missing_is_quiet(self, tmp_path):
        LocalStorage(str(tmp_path)).delete('gone.jpg')

    @pytest.mark.parametrize('name', ['../outside.jpg', 'sub/../../outside.jpg', '/etc/passwd'])
    def test_paths_outside_bucket(self, tmp_path, name):
        storage = LocalStorage(str(tmp_path / 'bucket'))
        with pytest.raises(StorageError):
            storage.path_for(name)


@pytest.fixture
def s3():
    storage = S3Storage(
        bucket='photos-bucket',
        access_key_id='test-key',
        secret_access_key='test-secret',
    )
    with Stubber(storage._client) as stubber:
        yield storage, stubber


class TestS3Storage:

    def test_upload(self, s3):
        storage, stubber = s3
        stubber.add_response('put_object', {}, {
            'Bucket': 'photos-bucket',
            'Key': 'photos/a.jpg',
            'Body': b'data',
            'ContentType': 'image/jpeg',
        })
        stored = storage.save(b'data', 'a.jpg', 'image/jpeg')
        assert stored.storage_type == S3
        stubber.assert_no_pending_responses()

    def test_upload_failure(self, s3):
        storage, stubber = s3
        stubber.add_client_error('put_object', service_error_code='AccessDenied', http_status_code=403)
        with pytest.raises(StorageError):
            storage.save(b'data', 'a.jpg', 'image/jpeg')

    def test_presigned_url(self, s3):
        storage, _ = s3
        url = storage.presigned_url('a.jpg')
        assert 'photos-bucket' in url
        assert 'photos/a.jpg' in url
        assert 'X-Amz-Signature' in url


class TestStorageManager:

    def test_local_only(self, tmp_path):
        manager = StorageManager(LocalStorage(str(tmp_path)))
        stored = manager.save(io.BytesIO(b'data'), 'x.jpg', 'image/jpeg')
        assert stored.storage_type == LOCAL
        assert manager.read(stored.filename, LOCAL) == b'data'
        assert manager.describe()['fallback'] is None

    def test_falls_back_to_local(self, tmp_path, s3):
        storage, stubber = s3
        stubber.add_client_error('put_object', service_error_code='InternalError', http_status_code=500)
        manager = StorageManager(LocalStorage(str(tmp_path)), storage)

        stored = manager.save(io.BytesIO(b'data'), 'x.jpg', 'image/jpeg')
        assert stored.storage_type == LOCAL
        assert manager.local.exists(stored.filename)
        assert manager.describe() == {
            'type': S3,
            'configured': True,
            'details': 'Using S3 bucket: photos-bucket',
            'fallback': LOCAL,
        }

    def test_s3_file_without_s3_configured(self, tmp_path):
        manager = StorageManager(LocalStorage(str(tmp_path)))
        with pytest.raises(StorageError):
            manager.read('x.jpg', S3)
        assert manager.delete('x.jpg', S3) is False

    def test_from_app_without_bucket_uses_local(self, app):
        app.config['STORAGE_BACKEND'] = S3
        app.config['S3_BUCKET'] = None
        manager = StorageManager.from_app(app)
        assert manager.s3 is None
        assert manager.primary is manager.local
