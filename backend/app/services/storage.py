"""
Object storage for uploaded PDFs.

Two backends share one interface (``put``, ``get``, ``delete``, ``exists``):
a local directory for development and tests, and an S3 bucket through boto3.
Paths are relative keys such as ``form-templates/1718000000_form.pdf``.
"""
import logging
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Config
from app.services.errors import StorageError

logger = logging.getLogger(__name__)


def _clean_key(path: str) -> str:
    key = (path or '').replace('\\', '/').lstrip('/')
    parts = [p for p in key.split('/') if p not in ('', '.')]
    if not parts or '..' in parts:
        raise StorageError(f"Invalid storage path: {path!r}")
    return '/'.join(parts)


class ObjectStorage:
    """Interface for PDF byte storage."""

    backend = 'base'

    def put(self, path: str, data: bytes, content_type: str = 'application/pdf') -> str:
        """Store bytes and return the stored path."""
        raise NotImplementedError

    def get(self, path: str) -> bytes:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError


class LocalObjectStorage(ObjectStorage):
    """Stores objects as files below a root directory."""

    backend = 'local'

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or Config.STORAGE_LOCAL_DIR)

    def _file(self, path: str) -> Path:
        return self.root / _clean_key(path)

    def put(self, path: str, data: bytes, content_type: str = 'application/pdf') -> str:
        target = self._file(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.info(f"Stored {len(data)} bytes at {target}")
        return _clean_key(path)

    def get(self, path: str) -> bytes:
        target = self._file(path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def delete(self, path: str) -> None:
        target = self._file(path)
        try:
            target.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e

    def exists(self, path: str) -> bool:
        return self._file(path).is_file()


class S3ObjectStorage(ObjectStorage):
    """Stores objects in an S3 bucket under an optional key prefix."""

    backend = 's3'

    def __init__(self, bucket: Optional[str] = None, prefix: Optional[str] = None, client=None):
        self.bucket = bucket or Config.S3_BUCKET
        if not self.bucket:
            raise StorageError("S3 storage requires S3_BUCKET to be set")
        self.prefix = (prefix if prefix is not None else Config.S3_PREFIX).strip('/')

        if client is not None:
            self.client = client
        else:
            config = Config.get_boto3_config()
            if 'profile_name' in config:
                session = boto3.Session(profile_name=config['profile_name'])
                self.client = session.client('s3', region_name=config['region_name'])
            else:
                self.client = boto3.client('s3', **config)
        logger.info(f"Initialized S3 storage (bucket={self.bucket}, prefix={self.prefix or '<none>'})")

    def _key(self, path: str) -> str:
        key = _clean_key(path)
        return f"{self.prefix}/{key}" if self.prefix else key

    def put(self, path: str, data: bytes, content_type: str = 'application/pdf') -> str:
        try:
            self.client.put_object(Bucket=self.bucket, Key=self._key(path), Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed for {path}: {e}")
            raise StorageError(f"Failed to upload {path}: {e}") from e
        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{self._key(path)}")
        return _clean_key(path)

    def get(self, path: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self._key(path))
            return response['Body'].read()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 download failed for {path}: {e}")
            raise StorageError(f"Failed to download {path}: {e}") from e

    def delete(self, path: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self._key(path))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._key(path))
            return True
        except ClientError as e:
            code = str(e.response.get('Error', {}).get('Code', ''))
            if code in ('404', 'NoSuchKey', 'NotFound'):
                return False
            raise StorageError(f"Failed to check {path}: {e}") from e


def create_storage(backend: Optional[str] = None) -> ObjectStorage:
    """Instantiate the configured storage backend."""
    backend = (backend or Config.STORAGE_BACKEND).lower()
    if backend == 's3':
        return S3ObjectStorage()
    if backend == 'local':
        return LocalObjectStorage()
    raise ValueError(f"Unknown storage backend: {backend}")
