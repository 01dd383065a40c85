from __future__ import annotations

import logging
import uuid
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session, joinedload

from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..models.annotations import Annotation, AnnotationReply
from ..models.base import utcnow
from ..models.documents import Document
from ..schemas import AnnotationContent, AnnotationCreate, AnnotationFilters, AnnotationUpdate
from . import visibility
from .documents import DocumentStore, parse_uuid
from .metrics import REPLIES_ADDED_COUNTER, record_annotation_created
from .pagination import Page, offset_for
from .visibility import Viewer, require_identity

logger = logging.getLogger(__name__)

MAX_REPLY_LENGTH = 500


class AnnotationStore:
    def __init__(self, db: Session, documents: Optional[DocumentStore] = None) -> None:
        self.db = db
        self.documents = documents or DocumentStore(db)

    # --- Lookups ---------------------------------------------------------
    def _load(self, annotation_id: str | uuid.UUID) -> Annotation:
        annotation_uuid = parse_uuid(annotation_id, "annotation")
        annotation = (
            self.db.query(Annotation)
            .options(joinedload(Annotation.document))
            .filter(Annotation.id == annotation_uuid)
            .one_or_none()
        )
        if annotation is None:
            raise NotFoundError("Annotation not found")
        return annotation

    def get(self, annotation_id: str | uuid.UUID, viewer: Viewer) -> Annotation:
        annotation = self._load(annotation_id)
        if not visibility.can_view_annotation(annotation, annotation.document, viewer):
            raise AuthorizationError("Not authorized to view this annotation")
        return annotation

    def visible_for_document(
        self,
        document: Document,
        viewer: Viewer,
        filters: Optional[AnnotationFilters] = None,
    ) -> list[Annotation]:
        query = self.db.query(Annotation).filter(Annotation.document_id == document.id)
        if filters is not None:
            if filters.page is not None:
                query = query.filter(Annotation.page == filters.page)
            if filters.type is not None:
                query = query.filter(Annotation.type == filters.type)
            if filters.is_resolved is not None:
                query = query.filter(Annotation.is_resolved.is_(filters.is_resolved))
        rows = query.order_by(Annotation.created_at.desc(), Annotation.id.desc()).all()
        return [row for row in rows if visibility.can_view_annotation(row, document, viewer)]

    def list_for_document(
        self,
        document_id: str | uuid.UUID,
        viewer: Viewer,
        filters: Optional[AnnotationFilters] = None,
    ) -> list[Annotation]:
        document = self.documents.get_by_id(document_id)
        if not visibility.can_view(document, viewer):
            raise AuthorizationError("Not authorized to view annotations for this PDF")
        return self.visible_for_document(document, viewer, filters)

    def list_for_user(
        self,
        author_id: uuid.UUID,
        filters: Optional[AnnotationFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[Annotation]:
        query = self.db.query(Annotation).filter(Annotation.author_id == author_id)
        if filters is not None:
            if filters.type is not None:
                query = query.filter(Annotation.type == filters.type)
            if filters.is_resolved is not None:
                query = query.filter(Annotation.is_resolved.is_(filters.is_resolved))

        total = query.count()
        items = (
            query.options(joinedload(Annotation.document))
            .order_by(Annotation.created_at.desc(), Annotation.id.desc())
            .offset(offset_for(page, limit))
            .limit(limit)
            .all()
        )
        return Page(items=items, total=total, page=page, limit=limit)

    # --- Writes ----------------------------------------------------------
    def create(self, viewer: Viewer, payload: AnnotationCreate) -> Annotation:
        author_id = require_identity(viewer)
        document = self.documents.get_by_id(payload.document_id)
        if not visibility.can_view(document, viewer):
            raise AuthorizationError("Not authorized to annotate this PDF")
        if document.page_count and payload.page > document.page_count:
            raise ValidationError(f"Page number exceeds document page count ({document.page_count})")

        annotation = Annotation(
            document_id=document.id,
            author_id=author_id,
            page=payload.page,
            type=payload.type,
            content=payload.content.to_document(),
            is_private=payload.is_private,
            tags=list(payload.tags),
        )
        self.db.add(annotation)
        self.db.commit()
        self.db.refresh(annotation)

        record_annotation_created(annotation.type.value)
        logger.info(
            "annotation_created annotation_id=%s document_id=%s author_id=%s type=%s",
            annotation.id,
            document.id,
            author_id,
            annotation.type.value,
        )
        return annotation

    def update(self, annotation_id: str | uuid.UUID, viewer: Viewer, payload: AnnotationUpdate) -> Annotation:
        require_identity(viewer)
        annotation = self._load(annotation_id)
        if not visibility.can_edit_annotation(annotation, viewer):
            raise AuthorizationError("Not authorized to update this annotation")

        if payload.content is not None:
            merged = {**(annotation.content or {}), **payload.content}
            try:
                content = AnnotationContent.model_validate(merged)
            except PydanticValidationError as exc:
                raise ValidationError.from_pydantic(exc, prefix="content") from exc
            annotation.content = content.to_document()
        if payload.is_private is not None:
            annotation.is_private = payload.is_private
        if payload.is_resolved is not None:
            annotation.is_resolved = payload.is_resolved
        if payload.tags is not None:
            annotation.tags = list(payload.tags)

        self.db.add(annotation)
        self.db.commit()
        self.db.refresh(annotation)
        logger.info("annotation_updated annotation_id=%s", annotation.id)
        return annotation

    def delete(self, annotation_id: str | uuid.UUID, viewer: Viewer) -> None:
        require_identity(viewer)
        annotation = self._load(annotation_id)
        if not visibility.can_mutate_annotation(annotation, viewer):
            raise AuthorizationError("Not authorized to delete this annotation")

        deleted_id = annotation.id
        self.db.delete(annotation)
        self.db.commit()
        logger.info("annotation_deleted annotation_id=%s actor_id=%s", deleted_id, viewer.id)

    def add_reply(self, annotation_id: str | uuid.UUID, viewer: Viewer, text: Optional[str]) -> Annotation:
        author_id = require_identity(viewer)
        body = (text or "").strip()
        if not body:
            raise ValidationError("Reply text is required")
        if len(body) > MAX_REPLY_LENGTH:
            raise ValidationError(f"Reply cannot exceed {MAX_REPLY_LENGTH} characters")

        annotation = self._load(annotation_id)
        if not visibility.can_reply(annotation, annotation.document, viewer):
            raise AuthorizationError("Not authorized to reply to this annotation")

        annotation.replies.append(AnnotationReply(author_id=author_id, text=body, created_at=utcnow()))
        annotation.updated_at = utcnow()
        self.db.add(annotation)
        self.db.commit()
        self.db.refresh(annotation)

        REPLIES_ADDED_COUNTER.inc()
        logger.info("reply_added annotation_id=%s author_id=%s", annotation.id, author_id)
        return annotation

    def delete_reply(
        self,
        annotation_id: str | uuid.UUID,
        reply_id: str | uuid.UUID,
        viewer: Viewer,
    ) -> Annotation:
        require_identity(viewer)
        annotation = self._load(annotation_id)
        reply_uuid = parse_uuid(reply_id, "reply")
        reply = next((row for row in annotation.replies if row.id == reply_uuid), None)
        if reply is None:
            raise NotFoundError("Reply not found")
        if not visibility.can_delete_reply(reply, annotation, viewer):
            raise AuthorizationError("Not authorized to delete this reply")

        annotation.replies.remove(reply)
        self.db.add(annotation)
        self.db.commit()
        self.db.refresh(annotation)
        logger.info("reply_deleted annotation_id=%s reply_id=%s actor_id=%s", annotation.id, reply_uuid, viewer.id)
        return annotation
