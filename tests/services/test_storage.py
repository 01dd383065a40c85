from __future__ import annotations

import boto3
import pytest

from annotator.config import settings
from annotator.errors import StorageError
from annotator.services.storage import BlobNotFound, LocalStorageService, S3StorageService, get_storage_service
from helpers import SAMPLE_PDF, stored_files


def _read_all(handle) -> bytes:
    iterator, _metadata, closer = handle
    try:
        return b"".join(iterator())
    finally:
        closer()


def test_local_write_is_atomic_on_failure(tmp_path):
    storage = LocalStorageService(str(tmp_path))

    def chunks():
        yield b"%PDF-"
        raise RuntimeError("client went away")

    with pytest.raises(RuntimeError):
        storage.write("doc.pdf", chunks())
    assert stored_files(tmp_path) == []


def test_local_round_trip_and_delete(tmp_path):
    storage = LocalStorageService(str(tmp_path))
    assert storage.write("doc.pdf", [SAMPLE_PDF[:10], SAMPLE_PDF[10:]]) == len(SAMPLE_PDF)
    assert storage.exists("doc.pdf")

    handle = storage.open_stream("doc.pdf")
    assert handle[1]["content_length"] == len(SAMPLE_PDF)
    assert _read_all(handle) == SAMPLE_PDF

    storage.delete("doc.pdf")
    storage.delete("doc.pdf")
    assert not storage.exists("doc.pdf")
    with pytest.raises(BlobNotFound):
        storage.open_stream("doc.pdf")


@pytest.mark.parametrize("key", ["", "../escape.pdf", "nested/doc.pdf", ".hidden"])
def test_local_rejects_unsafe_keys(tmp_path, key):
    with pytest.raises(StorageError):
        LocalStorageService(str(tmp_path)).write(key, [SAMPLE_PDF])


@pytest.fixture()
def mock_s3_bucket(monkeypatch):
    from moto import mock_aws

    with mock_aws():
        s3 = boto3.client("s3", region_name=settings.aws.region)
        bucket = "test-annotator-bucket"
        s3.create_bucket(Bucket=bucket)
        monkeypatch.setattr(settings.aws, "s3_bucket", bucket)
        monkeypatch.setattr(settings.aws, "s3_endpoint_url", None)
        yield s3


def test_s3_round_trip(mock_s3_bucket):
    storage = S3StorageService()
    assert storage.write("doc.pdf", [SAMPLE_PDF]) == len(SAMPLE_PDF)

    head = mock_s3_bucket.head_object(Bucket=settings.aws.s3_bucket, Key="doc.pdf")
    assert head["ContentType"] == "application/pdf"
    assert storage.exists("doc.pdf")
    assert _read_all(storage.open_stream("doc.pdf")) == SAMPLE_PDF

    storage.delete("doc.pdf")
    assert not storage.exists("doc.pdf")
    with pytest.raises(BlobNotFound):
        storage.open_stream("doc.pdf")


def test_s3_failed_stream_never_creates_object(mock_s3_bucket):
    storage = S3StorageService()

    def chunks():
        yield SAMPLE_PDF
        raise RuntimeError("client went away")

    with pytest.raises(RuntimeError):
        storage.write("partial.pdf", chunks())
    assert not storage.exists("partial.pdf")


def test_get_storage_service_follows_settings(monkeypatch, mock_s3_bucket):
    monkeypatch.setattr(settings.storage, "backend", "s3")
    assert isinstance(get_storage_service(), S3StorageService)
    monkeypatch.setattr(settings.storage, "backend", "local")
    assert isinstance(get_storage_service(), LocalStorageService)


def test_upload_through_api_lands_in_s3(client, owner, mock_s3_bucket, monkeypatch):
    monkeypatch.setattr(settings.storage, "backend", "s3")
    response = client.post(
        "/documents",
        headers=owner.headers,
        files={"file": ("report.pdf", SAMPLE_PDF, "application/pdf")},
    )
    assert response.status_code == 201
    key = response.json()["document"]["filename"]
    head = mock_s3_bucket.head_object(Bucket=settings.aws.s3_bucket, Key=key)
    assert head["ContentLength"] == len(SAMPLE_PDF)

    download = client.get(f"/documents/{response.json()['document']['id']}/file", headers=owner.headers)
    assert download.content == SAMPLE_PDF
