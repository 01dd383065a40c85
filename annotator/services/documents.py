from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Query, Session

from ..errors import NotFoundError, ValidationError
from ..models.annotations import Annotation, AnnotationReply
from ..models.base import utcnow
from ..models.documents import Document, DocumentStatus, DocumentTag
from ..schemas import DocumentFields, DocumentFilters
from .metrics import DOCUMENTS_DELETED_COUNTER, record_blob_cleanup_failure
from .pagination import Page, offset_for
from .storage import StorageService
from .uploads import StoredUpload

logger = logging.getLogger(__name__)


def parse_uuid(value: str | uuid.UUID, label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid {label} id") from exc


class DocumentStore:
    def __init__(self, db: Session, storage: Optional[StorageService] = None) -> None:
        self.db = db
        self.storage = storage

    # --- Writes ----------------------------------------------------------
    def create(self, **fields: Any) -> Document:
        return self.load_created(self.insert(**fields))

    def insert(
        self,
        *,
        owner_id: uuid.UUID,
        stored: StoredUpload,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Iterable[str] = (),
        is_public: bool = False,
        status: DocumentStatus = DocumentStatus.READY,
        page_count: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Document:
        document = Document(
            owner_id=owner_id,
            title=title or stored.original_name[:100],
            description=description or "",
            storage_key=stored.storage_key,
            original_name=stored.original_name,
            file_size=stored.byte_size,
            page_count=page_count,
            is_public=is_public,
            status=status,
            metadata_json=dict(metadata or {}),
        )
        document.replace_tags(list(dict.fromkeys(tags)))
        self.db.add(document)
        self.db.commit()
        return document

    def load_created(self, document: Document) -> Document:
        """Reload server defaults for a freshly committed row."""
        self.db.refresh(document)
        logger.info(
            "document_created document_id=%s owner_id=%s storage_key=%s bytes=%s",
            document.id,
            document.owner_id,
            document.storage_key,
            document.file_size,
        )
        return document

    def update(self, document: Document, fields: DocumentFields) -> Document:
        provided = fields.model_fields_set
        if "title" in provided and fields.title is not None:
            document.title = fields.title
        if "description" in provided:
            document.description = fields.description or ""
        if "tags" in provided and fields.tags is not None:
            document.replace_tags(fields.tags)
        if "is_public" in provided and fields.is_public is not None:
            document.is_public = fields.is_public

        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        logger.info("document_updated document_id=%s fields=%s", document.id, sorted(provided))
        return document

    def touch_access(self, document: Document) -> None:
        (
            self.db.query(Document)
            .filter(Document.id == document.id)
            .update(
                {
                    Document.access_count: Document.access_count + 1,
                    Document.last_accessed_at: utcnow(),
                    # reads must not bump the modification time
                    Document.updated_at: Document.updated_at,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()

    def delete(self, document: Document) -> tuple[int, int]:
        """Remove a document, its annotations and their replies, then its blob.

        The row deletions share one transaction. The blob goes last and only on
        a best-effort basis: once the metadata is gone the deletion stands.
        """
        document_id = document.id
        storage_key = document.storage_key
        annotation_ids = select(Annotation.id).where(Annotation.document_id == document_id)

        try:
            replies_deleted = (
                self.db.query(AnnotationReply)
                .filter(AnnotationReply.annotation_id.in_(annotation_ids))
                .delete(synchronize_session=False)
            )
            annotations_deleted = (
                self.db.query(Annotation)
                .filter(Annotation.document_id == document_id)
                .delete(synchronize_session=False)
            )
            self.db.delete(document)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        DOCUMENTS_DELETED_COUNTER.inc()
        logger.info(
            "document_deleted document_id=%s annotations=%s replies=%s",
            document_id,
            annotations_deleted,
            replies_deleted,
        )

        if self.storage is not None:
            try:
                self.storage.delete(storage_key)
            except Exception:
                record_blob_cleanup_failure("delete")
                logger.warning(
                    "Failed to delete PDF file for removed document document_id=%s storage_key=%s",
                    document_id,
                    storage_key,
                    exc_info=True,
                )
        return annotations_deleted, replies_deleted

    # --- Reads -----------------------------------------------------------
    def get_by_id(self, document_id: str | uuid.UUID) -> Document:
        document_uuid = parse_uuid(document_id, "document")
        document = self.db.query(Document).filter(Document.id == document_uuid).one_or_none()
        if document is None:
            raise NotFoundError("PDF not found")
        return document

    def list_owned(
        self,
        owner_id: uuid.UUID,
        filters: DocumentFilters,
        page: int = 1,
        limit: int = 10,
    ) -> Page[Document]:
        query = self.db.query(Document).filter(Document.owner_id == owner_id)
        return self._paginate(self._apply_filters(query, filters), page, limit)

    def list_public(self, filters: DocumentFilters, page: int = 1, limit: int = 10) -> Page[Document]:
        query = self.db.query(Document).filter(Document.is_public.is_(True))
        return self._paginate(self._apply_filters(query, filters), page, limit)

    def annotation_counts(
        self,
        document_ids: Iterable[uuid.UUID],
        include_private: bool = True,
    ) -> dict[uuid.UUID, int]:
        ids = list(document_ids)
        if not ids:
            return {}
        query = (
            self.db.query(Annotation.document_id, func.count(Annotation.id))
            .filter(Annotation.document_id.in_(ids))
        )
        if not include_private:
            query = query.filter(Annotation.is_private.is_(False))
        return {document_id: int(count) for document_id, count in query.group_by(Annotation.document_id).all()}

    @staticmethod
    def _apply_filters(query: Query, filters: DocumentFilters) -> Query:
        if filters.search:
            term = filters.search
            query = query.filter(
                or_(
                    Document.title.icontains(term, autoescape=True),
                    Document.description.icontains(term, autoescape=True),
                    Document.tag_rows.any(DocumentTag.name.icontains(term, autoescape=True)),
                )
            )
        if filters.tags:
            query = query.filter(Document.tag_rows.any(DocumentTag.name.in_(filters.tags)))
        return query

    @staticmethod
    def _paginate(query: Query, page: int, limit: int) -> Page[Document]:
        total = query.count()
        items = (
            query.order_by(Document.created_at.desc(), Document.id.desc())
            .offset(offset_for(page, limit))
            .limit(limit)
            .all()
        )
        return Page(items=items, total=total, page=page, limit=limit)
