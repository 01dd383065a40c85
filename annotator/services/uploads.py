from __future__ import annotations

import logging
import os
import re
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Iterator, NoReturn, Optional, Sequence

from ..config import PDF_MIME_TYPE, settings
from ..errors import EmptyPayload, PayloadError, PayloadTooLarge, TooManyFiles, UnsupportedMediaType
from .metrics import record_blob_cleanup_failure, record_upload_rejected
from .storage import StorageService

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 1024 * 1024

_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


@dataclass
class StoredUpload:
    storage_key: str
    byte_size: int
    original_name: str


def sanitize_filename(filename: str) -> str:
    name = os.path.basename(filename or "document.pdf")
    name = re.sub(r"[^A-Za-z0-9._-]", "_", name)
    return name[:100] or "document.pdf"


def _format_limit(max_bytes: int) -> str:
    mib = max_bytes / (1024 * 1024)
    if mib >= 1:
        return f"{mib:g}MB"
    return f"{max_bytes} bytes"


class UploadPipeline:
    """Validates an incoming PDF stream and persists it under a fresh storage key."""

    def __init__(self, storage: StorageService, max_bytes: Optional[int] = None) -> None:
        self.storage = storage
        self.max_bytes = max_bytes or settings.storage.max_upload_bytes

    @staticmethod
    def build_key(original_name: str) -> str:
        suffix = os.path.splitext(original_name or "")[1]
        if not _SAFE_SUFFIX.match(suffix):
            suffix = ""
        return f"{uuid.uuid4().hex}{suffix}"

    def ensure_single_file(self, files: Sequence[object]) -> None:
        if not files:
            self._reject(EmptyPayload())
        if len(files) > 1:
            self._reject(TooManyFiles())

    def accept(
        self,
        stream: BinaryIO,
        declared_mime_type: Optional[str],
        filename: Optional[str],
        max_bytes: Optional[int] = None,
    ) -> StoredUpload:
        if declared_mime_type != PDF_MIME_TYPE:
            self._reject(UnsupportedMediaType())

        limit = max_bytes or self.max_bytes
        original_name = os.path.basename(filename or "document.pdf")[:255] or "document.pdf"
        key = self.build_key(original_name)

        try:
            byte_size = self.storage.write(key, self._read_chunks(stream, limit), content_type=PDF_MIME_TYPE)
        except PayloadError as exc:
            self._reject(exc)

        logger.info("upload_stored storage_key=%s bytes=%s original_name=%s", key, byte_size, original_name)
        return StoredUpload(storage_key=key, byte_size=byte_size, original_name=original_name)

    @contextmanager
    def compensate(self, stored: StoredUpload) -> Iterator[StoredUpload]:
        """Delete the stored blob if the block fails, then re-raise the original error."""
        try:
            yield stored
        except BaseException:
            self.discard(stored)
            raise

    def discard(self, stored: StoredUpload) -> None:
        try:
            self.storage.delete(stored.storage_key)
        except Exception:
            record_blob_cleanup_failure("upload")
            logger.warning(
                "Failed to delete stored file after upload error storage_key=%s",
                stored.storage_key,
                exc_info=True,
            )
        else:
            logger.info("upload_compensated storage_key=%s", stored.storage_key)

    def _read_chunks(self, stream: BinaryIO, limit: int) -> Iterator[bytes]:
        total = 0
        while True:
            chunk = stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            total += len(chunk)
            if total > limit:
                raise PayloadTooLarge(f"File size too large. Maximum size allowed is {_format_limit(limit)}.")
            yield chunk
        if total == 0:
            raise EmptyPayload()

    @staticmethod
    def _reject(exc: PayloadError) -> NoReturn:
        record_upload_rejected(exc.reason)
        logger.info("upload_rejected reason=%s", exc.reason)
        raise exc
