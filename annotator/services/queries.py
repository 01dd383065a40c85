"""Request-level operations composed from the stores and the visibility policy.

Callers pass the viewer explicitly; nothing here reads request or global state.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import BinaryIO, Optional, Sequence

from sqlalchemy.orm import Session

from ..config import settings
from ..errors import AuthorizationError
from ..models.annotations import Annotation
from ..models.documents import Document
from ..schemas import AnnotationCreate, AnnotationFilters, AnnotationUpdate, DocumentFields, DocumentFilters
from . import visibility
from .annotations import AnnotationStore
from .documents import DocumentStore
from .metrics import DOCUMENTS_UPLOADED_COUNTER
from .pagination import Page
from .storage import StorageService, StreamHandle
from .uploads import UploadPipeline
from .visibility import Viewer, require_identity

logger = logging.getLogger(__name__)


@dataclass
class IncomingFile:
    stream: BinaryIO
    filename: Optional[str]
    content_type: Optional[str]


@dataclass
class DocumentDetail:
    document: Document
    annotations: list[Annotation]


@dataclass
class DocumentFile:
    document: Document
    handle: StreamHandle


class QueryService:
    def __init__(self, db: Session, storage: StorageService, max_upload_bytes: Optional[int] = None) -> None:
        self.db = db
        self.storage = storage
        self.documents = DocumentStore(db, storage)
        self.annotations = AnnotationStore(db, self.documents)
        self.uploads = UploadPipeline(storage, max_upload_bytes)

    # --- Documents -------------------------------------------------------
    def upload_document(
        self,
        viewer: Viewer,
        files: Sequence[IncomingFile],
        fields: DocumentFields,
    ) -> Document:
        owner_id = require_identity(viewer)
        self.uploads.ensure_single_file(files)
        incoming = files[0]

        stored = self.uploads.accept(incoming.stream, incoming.content_type, incoming.filename)
        with self.uploads.compensate(stored):
            try:
                document = self.documents.insert(
                    owner_id=owner_id,
                    stored=stored,
                    title=fields.title,
                    description=fields.description,
                    tags=fields.tags or [],
                    is_public=settings.default_document_public if fields.is_public is None else fields.is_public,
                )
            except Exception:
                self.db.rollback()
                logger.warning("document_commit_failed storage_key=%s", stored.storage_key, exc_info=True)
                raise

        DOCUMENTS_UPLOADED_COUNTER.inc()
        return self.documents.load_created(document)

    def list_documents(
        self,
        viewer: Viewer,
        filters: DocumentFilters,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[Page[Document], dict[uuid.UUID, int]]:
        owner_id = require_identity(viewer)
        result = self.documents.list_owned(owner_id, filters, page, limit)
        counts = self.documents.annotation_counts(doc.id for doc in result.items)
        return result, counts

    def list_public_documents(
        self,
        filters: DocumentFilters,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[Page[Document], dict[uuid.UUID, int]]:
        result = self.documents.list_public(filters, page, limit)
        counts = self.documents.annotation_counts((doc.id for doc in result.items), include_private=False)
        return result, counts

    def _viewable_document(self, document_id: str | uuid.UUID, viewer: Viewer) -> Document:
        document = self.documents.get_by_id(document_id)
        if not visibility.can_view(document, viewer):
            raise AuthorizationError("Not authorized to access this PDF")
        return document

    def get_document_detail(self, document_id: str | uuid.UUID, viewer: Viewer) -> DocumentDetail:
        document = self._viewable_document(document_id, viewer)
        self.documents.touch_access(document)
        annotations = self.annotations.visible_for_document(document, viewer)
        return DocumentDetail(document=document, annotations=annotations)

    def open_document_file(self, document_id: str | uuid.UUID, viewer: Viewer) -> DocumentFile:
        document = self._viewable_document(document_id, viewer)
        handle = self.storage.open_stream(document.storage_key)
        try:
            self.documents.touch_access(document)
        except Exception:
            _, _, closer = handle
            closer()
            raise
        return DocumentFile(document=document, handle=handle)

    def _mutable_document(self, document_id: str | uuid.UUID, viewer: Viewer, action: str) -> Document:
        require_identity(viewer)
        document = self.documents.get_by_id(document_id)
        if not visibility.can_mutate_document(document, viewer):
            raise AuthorizationError(f"Not authorized to {action} this PDF")
        return document

    def update_document(self, document_id: str | uuid.UUID, viewer: Viewer, fields: DocumentFields) -> Document:
        document = self._mutable_document(document_id, viewer, "update")
        return self.documents.update(document, fields)

    def delete_document(self, document_id: str | uuid.UUID, viewer: Viewer) -> None:
        document = self._mutable_document(document_id, viewer, "delete")
        self.documents.delete(document)

    # --- Annotations -----------------------------------------------------
    def create_annotation(self, viewer: Viewer, payload: AnnotationCreate) -> Annotation:
        return self.annotations.create(viewer, payload)

    def get_annotation(self, annotation_id: str, viewer: Viewer) -> Annotation:
        return self.annotations.get(annotation_id, viewer)

    def list_document_annotations(
        self,
        document_id: str,
        viewer: Viewer,
        filters: AnnotationFilters,
    ) -> list[Annotation]:
        return self.annotations.list_for_document(document_id, viewer, filters)

    def list_my_annotations(
        self,
        viewer: Viewer,
        filters: AnnotationFilters,
        page: int = 1,
        limit: int = 20,
    ) -> Page[Annotation]:
        author_id = require_identity(viewer)
        return self.annotations.list_for_user(author_id, filters, page, limit)

    def update_annotation(self, annotation_id: str, viewer: Viewer, payload: AnnotationUpdate) -> Annotation:
        return self.annotations.update(annotation_id, viewer, payload)

    def delete_annotation(self, annotation_id: str, viewer: Viewer) -> None:
        self.annotations.delete(annotation_id, viewer)

    def add_reply(self, annotation_id: str, viewer: Viewer, text: Optional[str]) -> Annotation:
        return self.annotations.add_reply(annotation_id, viewer, text)

    def delete_reply(self, annotation_id: str, reply_id: str, viewer: Viewer) -> Annotation:
        return self.annotations.delete_reply(annotation_id, reply_id, viewer)
