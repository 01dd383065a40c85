from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from ..config import PDF_MIME_TYPE, settings
from ..errors import StorageError
from .aws import boto3_client

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 64

StreamHandle = tuple[Callable[[], Iterator[bytes]], dict[str, Any], Callable[[], None]]


class StorageService(Protocol):
    def write(self, key: str, chunks: Iterable[bytes], content_type: str = PDF_MIME_TYPE) -> int:
        ...

    def open_stream(self, key: str) -> StreamHandle:
        ...

    def delete(self, key: str) -> None:
        ...

    def exists(self, key: str) -> bool:
        ...


class BlobNotFound(StorageError):
    status_code = 404
    default_message = "PDF file not found on server"


class LocalStorageService:
    """Blob store on a local directory.

    Writes land in a hidden temp file next to the target and are moved into
    place with ``os.replace``, so a reader never observes a half-written blob
    under its final key.
    """

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = Path(root or settings.storage.upload_dir)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.root / key

    def write(self, key: str, chunks: Iterable[bytes], content_type: str = PDF_MIME_TYPE) -> int:
        target = self._path(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".part", dir=self.root)
        except OSError as exc:
            raise StorageError(f"Failed to prepare upload directory: {exc}") from exc

        total = 0
        try:
            with os.fdopen(fd, "wb") as handle:
                for chunk in chunks:
                    handle.write(chunk)
                    total += len(chunk)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except BaseException as exc:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            if isinstance(exc, OSError):
                raise StorageError(f"Failed to write file: {exc}") from exc
            raise
        return total

    def open_stream(self, key: str) -> StreamHandle:
        path = self._path(key)
        try:
            handle = path.open("rb")
            size = os.fstat(handle.fileno()).st_size
        except FileNotFoundError as exc:
            raise BlobNotFound() from exc
        except OSError as exc:
            raise StorageError(f"Failed to open file: {exc}") from exc

        metadata = {"content_type": PDF_MIME_TYPE, "content_length": size}

        def iterator(chunk_size: int = CHUNK_SIZE):
            while True:
                chunk = handle.read(chunk_size)
                if not chunk:
                    break
                yield chunk

        def closer():
            handle.close()

        return iterator, metadata, closer

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"Failed to delete file: {exc}") from exc

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()


class S3StorageService:
    def __init__(self, bucket: Optional[str] = None) -> None:
        self.bucket = bucket or settings.aws.s3_bucket
        self._client = boto3_client("s3")

    def write(self, key: str, chunks: Iterable[bytes], content_type: str = PDF_MIME_TYPE) -> int:
        # spool first so the object is only PUT once every byte has arrived
        with tempfile.SpooledTemporaryFile(max_size=8 * 1024 * 1024) as buffer:
            total = 0
            for chunk in chunks:
                buffer.write(chunk)
                total += len(chunk)
            buffer.seek(0)
            try:
                self._client.upload_fileobj(buffer, self.bucket, key, ExtraArgs={"ContentType": content_type})
            except (BotoCoreError, ClientError) as exc:
                raise StorageError(f"Failed to upload to S3: {exc}") from exc
        return total

    def open_stream(self, key: str) -> StreamHandle:
        try:
            obj = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                raise BlobNotFound() from exc
            raise StorageError(f"Failed to download S3 object: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to download S3 object: {exc}") from exc

        body = obj["Body"]
        metadata = {
            "content_type": obj.get("ContentType", PDF_MIME_TYPE),
            "content_length": obj.get("ContentLength"),
        }

        def iterator(chunk_size: int = CHUNK_SIZE):
            for chunk in body.iter_chunks(chunk_size):
                if chunk:
                    yield chunk

        def closer():
            try:
                body.close()
            except Exception:  # pragma: no cover - best effort
                logger.debug("Failed to close S3 body for %s", key, exc_info=True)

        return iterator, metadata, closer

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to delete S3 object: {exc}") from exc

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                return False
            raise StorageError(f"Failed to inspect S3 object: {exc}") from exc
        return True


def get_storage_service() -> StorageService:
    if settings.storage.backend == "s3":
        return S3StorageService()
    return LocalStorageService()
