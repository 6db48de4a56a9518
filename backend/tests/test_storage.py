"""Tests for the local and S3 object storage backends."""

from io import BytesIO
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from app.services.errors import StorageError
from app.services.storage import LocalObjectStorage, S3ObjectStorage, create_storage


def _client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3_client() -> Mock:
    """
    Returns:
        Mock boto3 S3 client
    """
    return Mock()


@pytest.fixture
def s3_storage(s3_client) -> S3ObjectStorage:
    return S3ObjectStorage(bucket="forms", prefix="/uploads/", client=s3_client)


class TestLocalObjectStorage:

    def test_round_trip(self, tmp_path):
        storage = LocalObjectStorage(str(tmp_path))
        path = storage.put("form-templates/a.pdf", b"%PDF-1.7")

        assert path == "form-templates/a.pdf"
        assert (tmp_path / "form-templates" / "a.pdf").read_bytes() == b"%PDF-1.7"
        assert storage.exists(path) is True
        assert storage.get(path) == b"%PDF-1.7"

        storage.delete(path)
        assert storage.exists(path) is False
        # deleting twice is harmless
        storage.delete(path)

    def test_paths_are_normalized(self, tmp_path):
        storage = LocalObjectStorage(str(tmp_path))
        assert storage.put("/form-templates//./b.pdf", b"x") == "form-templates/b.pdf"

    def test_missing_object(self, tmp_path):
        with pytest.raises(StorageError):
            LocalObjectStorage(str(tmp_path)).get("nope.pdf")

    @pytest.mark.parametrize("path", ["", "/", "../escape.pdf", "a/../../b.pdf", None])
    def test_rejects_unsafe_paths(self, tmp_path, path):
        with pytest.raises(StorageError):
            LocalObjectStorage(str(tmp_path)).put(path, b"x")


class TestS3ObjectStorage:

    def test_put_uses_prefixed_key(self, s3_storage, s3_client):
        path = s3_storage.put("form-templates/a.pdf", b"%PDF")

        assert path == "form-templates/a.pdf"
        s3_client.put_object.assert_called_once_with(
            Bucket="forms",
            Key="uploads/form-templates/a.pdf",
            Body=b"%PDF",
            ContentType="application/pdf",
        )

    def test_get_reads_body(self, s3_storage, s3_client):
        s3_client.get_object.return_value = {"Body": BytesIO(b"%PDF")}
        assert s3_storage.get("a.pdf") == b"%PDF"
        s3_client.get_object.assert_called_once_with(Bucket="forms", Key="uploads/a.pdf")

    def test_client_errors_become_storage_errors(self, s3_storage, s3_client):
        s3_client.put_object.side_effect = _client_error("AccessDenied", "PutObject")
        with pytest.raises(StorageError):
            s3_storage.put("a.pdf", b"x")

    def test_exists(self, s3_storage, s3_client):
        assert s3_storage.exists("a.pdf") is True

        s3_client.head_object.side_effect = _client_error("404")
        assert s3_storage.exists("a.pdf") is False

        s3_client.head_object.side_effect = _client_error("403")
        with pytest.raises(StorageError):
            s3_storage.exists("a.pdf")

    def test_requires_bucket(self, monkeypatch):
        monkeypatch.setattr("app.services.storage.Config.S3_BUCKET", None)
        with pytest.raises(StorageError):
            S3ObjectStorage(client=Mock())


class TestCreateStorage:

    def test_local_backend(self):
        assert isinstance(create_storage("LOCAL"), LocalObjectStorage)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_storage("ftp")
