"""
Photo file storage.

Two backends share one interface:

- LocalStorage: files in a bucket directory on disk, served through
  ``/api/photos/serve/<filename>``.
- S3Storage: S3-compatible object storage through boto3, served by
  redirecting to a presigned URL.

``StorageManager`` picks the configured backend for new uploads and
falls back to local storage when a cloud upload fails. Each photo row
records its ``storage_type`` so later reads and deletes go to the
backend that actually holds the file.

Stored filenames are generated (uuid4 + extension); user-supplied
names are never used as paths.
"""

import logging
import os
import uuid
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 255

LOCAL = 'local'
S3 = 's3'


class StorageError(Exception):
    """A storage backend could not complete an operation."""


@dataclass
class StoredFile:
    filename: str
    url: str
    size: int
    storage_type: str


def file_extension(filename: str) -> str:
    return filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''


def validate_filename(filename: str, allowed_extensions: Iterable[str]) -> bool:
    """
    Reject names that could escape the bucket or are not images.

    Checks: no traversal ('..', '/', '\\'), no NUL or encoded NUL,
    an allowed extension, and at most 255 characters.
    """
    if not filename or len(filename) > MAX_FILENAME_LENGTH:
        return False
    if '..' in filename or '/' in filename or '\\' in filename:
        return False
    if '\0' in filename or '%00' in filename:
        return False
    return file_extension(filename) in allowed_extensions


def generate_filename(original_name: str) -> str:
    ext = file_extension(original_name)
    return f'{uuid.uuid4()}.{ext}' if ext else str(uuid.uuid4())


class LocalStorage:
    """Files in a directory on local disk."""

    storage_type = LOCAL

    def __init__(self, bucket_dir: str, url_prefix: str = '/api/photos/serve'):
        self.bucket_dir = os.path.abspath(bucket_dir)
        self.url_prefix = url_prefix
        os.makedirs(self.bucket_dir, exist_ok=True)

    def path_for(self, filename: str) -> str:
        """Absolute path of ``filename``; raises if it resolves outside the bucket."""
        path = os.path.realpath(os.path.join(self.bucket_dir, filename))
        if os.path.dirname(path) != os.path.realpath(self.bucket_dir):
            raise StorageError(f'Path escapes storage bucket: {filename!r}')
        return path

    def save(self, data: bytes, filename: str, content_type: str) -> StoredFile:
        path = self.path_for(filename)
        with open(path, 'wb') as f:
            f.write(data)
        return StoredFile(filename, f'{self.url_prefix}/{filename}', len(data), LOCAL)

    def exists(self, filename: str) -> bool:
        return os.path.isfile(self.path_for(filename))

    def read(self, filename: str) -> bytes:
        with open(self.path_for(filename), 'rb') as f:
            return f.read()

    def delete(self, filename: str) -> None:
        path = self.path_for(filename)
        if os.path.exists(path):
            os.remove(path)

    def describe(self) -> dict:
        return {'type': LOCAL, 'configured': True, 'details': f'Using local directory: {self.bucket_dir}'}


class S3Storage:
    """S3-compatible object storage (AWS S3, R2, MinIO)."""

    storage_type = S3

    def __init__(
        self,
        bucket: str,
        region: str = 'us-east-1',
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        presigned_url_expiry: int = 3600,
        key_prefix: str = 'photos/',
    ):
        self.bucket = bucket
        self.presigned_url_expiry = presigned_url_expiry
        self.key_prefix = key_prefix
        self._client = boto3.client(
            's3',
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(signature_version='s3v4'),
        )

    @classmethod
    def from_config(cls, config) -> 'S3Storage':
        return cls(
            bucket=config['S3_BUCKET'],
            region=config['S3_REGION'],
            endpoint_url=config['S3_ENDPOINT_URL'],
            access_key_id=config['S3_ACCESS_KEY_ID'],
            secret_access_key=config['S3_SECRET_ACCESS_KEY'],
            presigned_url_expiry=config['S3_PRESIGNED_URL_EXPIRY'],
        )

    def key_for(self, filename: str) -> str:
        return f'{self.key_prefix}{filename}'

    def save(self, data: bytes, filename: str, content_type: str) -> StoredFile:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=self.key_for(filename),
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f'S3 upload failed: {e}') from e
        return StoredFile(filename, f'/api/photos/serve/{filename}', len(data), S3)

    def read(self, filename: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=self.key_for(filename))
            return response['Body'].read()
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f'S3 download failed: {e}') from e

    def delete(self, filename: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=self.key_for(filename))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f'S3 delete failed: {e}') from e

    def presigned_url(self, filename: str) -> str:
        try:
            return self._client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': self.key_for(filename)},
                ExpiresIn=self.presigned_url_expiry,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f'Presigned URL generation failed: {e}') from e

    def describe(self) -> dict:
        return {'type': S3, 'configured': True, 'details': f'Using S3 bucket: {self.bucket}'}


class StorageManager:
    """Routes uploads to the configured backend with local fallback."""

    def __init__(self, local: LocalStorage, s3: Optional[S3Storage] = None):
        self.local = local
        self.s3 = s3

    @classmethod
    def from_app(cls, app) -> 'StorageManager':
        bucket_dir = app.config.get('UPLOAD_FOLDER') or os.path.join(app.instance_path, 'uploads')
        local = LocalStorage(bucket_dir)
        s3 = None
        if app.config['STORAGE_BACKEND'] == S3:
            if app.config.get('S3_BUCKET'):
                s3 = S3Storage.from_config(app.config)
            else:
                logger.warning('STORAGE_BACKEND is s3 but S3_BUCKET is not set; using local storage')
        return cls(local, s3)

    @property
    def primary(self):
        return self.s3 or self.local

    def backend(self, storage_type: str):
        if storage_type == S3:
            if self.s3 is None:
                raise StorageError('Photo is stored in S3 but S3 is not configured')
            return self.s3
        return self.local

    def save(self, stream: BinaryIO, original_name: str, content_type: str) -> StoredFile:
        data = stream.read()
        filename = generate_filename(original_name)

        if self.s3 is not None:
            try:
                return self.s3.save(data, filename, content_type)
            except StorageError as e:
                logger.warning('S3 upload failed, falling back to local storage: %s', e)

        return self.local.save(data, filename, content_type)

    def read(self, filename: str, storage_type: str) -> bytes:
        return self.backend(storage_type).read(filename)

    def delete(self, filename: str, storage_type: str) -> bool:
        """
        Best-effort delete. Failures are logged and reported as False,
        never raised, so database cleanup can proceed.
        """
        try:
            self.backend(storage_type).delete(filename)
            return True
        except (StorageError, OSError) as e:
            logger.warning('Failed to delete stored file %s (%s): %s', filename, storage_type, e)
            return False

    def describe(self) -> dict:
        info = self.primary.describe()
        info['fallback'] = LOCAL if self.s3 is not None else None
        return info
