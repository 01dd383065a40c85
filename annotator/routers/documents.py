from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import ValidationError as PydanticValidationError

from ..config import PDF_MIME_TYPE
from ..dependencies.auth import get_viewer, require_viewer
from ..dependencies.db import get_query_service
from ..errors import ValidationError
from ..models.documents import Document
from ..schemas import DocumentFields, DocumentFilters
from ..services.pagination import MAX_LIMIT, Page
from ..services.queries import IncomingFile, QueryService
from ..services.uploads import sanitize_filename
from ..services.visibility import Viewer
from .annotations import serialize_annotation, serialize_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents")

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off", ""}


def _parse_form_bool(value: Optional[str], field: str) -> Optional[bool]:
    if value is None:
        return None
    token = value.strip().lower()
    if token in _TRUE_VALUES:
        return True
    if token in _FALSE_VALUES:
        return False
    raise ValidationError(f"{field} must be a boolean")


def _parse_form_tags(value: Optional[str]) -> Optional[list[str]]:
    if value is None:
        return None
    raw = value.strip()
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise ValidationError("tags must be a JSON array or a comma separated list") from exc
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            raise ValidationError("tags must be a list of strings")
        return parsed
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_document(document: Document, annotation_count: int = 0, public: bool = False) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": str(document.id),
        "title": document.title,
        "description": document.description,
        "filename": document.storage_key,
        "originalName": document.original_name,
        "fileSize": document.file_size,
        "pageCount": document.page_count,
        "isPublic": document.is_public,
        "tags": document.tags,
        "status": document.status.value,
        "annotationCount": int(annotation_count or 0),
        "accessCount": document.access_count,
        "lastAccessed": _isoformat(document.last_accessed_at),
        "createdAt": _isoformat(document.created_at),
        "updatedAt": _isoformat(document.updated_at),
    }
    if public:
        payload["user"] = document.owner.display_name if document.owner else "Anonymous"
    return payload


def _page_envelope(result: Page[Document], counts: dict[uuid.UUID, int], public: bool = False) -> Dict[str, Any]:
    return {
        "success": True,
        "count": result.count,
        "total": result.total,
        "page": result.page,
        "pages": result.pages,
        "items": [serialize_document(doc, counts.get(doc.id, 0), public=public) for doc in result.items],
    }


@router.post("", status_code=201)
def upload_document(
    file: list[UploadFile] = File(default=[]),
    title: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    tags: Optional[str] = Form(default=None),
    is_public: Optional[str] = Form(default=None, alias="isPublic"),
    viewer: Viewer = Depends(require_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    try:
        fields = DocumentFields.model_validate(
            {
                "title": title or None,
                "description": description,
                "tags": _parse_form_tags(tags),
                "is_public": _parse_form_bool(is_public, "isPublic"),
            }
        )
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc

    incoming = [IncomingFile(stream=item.file, filename=item.filename, content_type=item.content_type) for item in file]
    try:
        document = service.upload_document(viewer, incoming, fields)
    finally:
        for item in file:
            item.file.close()

    logger.info("document_uploaded document_id=%s owner_id=%s", document.id, viewer.id)
    return {
        "success": True,
        "message": "PDF uploaded successfully",
        "document": serialize_document(document),
    }


@router.get("")
def list_documents(
    search: Optional[str] = Query(default=None),
    tags: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_LIMIT),
    viewer: Viewer = Depends(require_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    result, counts = service.list_documents(viewer, DocumentFilters.from_query(search, tags), page, limit)
    return _page_envelope(result, counts)


@router.get("/public")
def list_public_documents(
    search: Optional[str] = Query(default=None),
    tags: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_LIMIT),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    result, counts = service.list_public_documents(DocumentFilters.from_query(search, tags), page, limit)
    return _page_envelope(result, counts, public=True)


@router.get("/{doc_id}")
def get_document(
    doc_id: str,
    viewer: Viewer = Depends(get_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    detail = service.get_document_detail(doc_id, viewer)
    document = detail.document

    payload = serialize_document(document, len(detail.annotations))
    payload.update(
        {
            "mimeType": document.mime_type,
            "metadata": dict(document.metadata_json or {}),
            "user": serialize_user(document.owner),
            "annotations": [serialize_annotation(annotation) for annotation in detail.annotations],
        }
    )
    return {"success": True, "document": payload}


@router.get("/{doc_id}/file")
def get_document_file(
    doc_id: str,
    viewer: Viewer = Depends(get_viewer),
    service: QueryService = Depends(get_query_service),
):
    result = service.open_document_file(doc_id, viewer)
    iterator, _metadata, closer = result.handle
    document = result.document

    headers = {
        "Content-Disposition": f'inline; filename="{sanitize_filename(document.original_name)}"',
        "Content-Length": str(document.file_size),
    }

    background = BackgroundTasks()
    background.add_task(closer)
    return StreamingResponse(
        iterator(),
        media_type=PDF_MIME_TYPE,
        headers=headers,
        background=background,
    )


@router.put("/{doc_id}")
def update_document(
    doc_id: str,
    payload: DocumentFields = Body(...),
    viewer: Viewer = Depends(require_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    document = service.update_document(doc_id, viewer, payload)
    return {
        "success": True,
        "message": "PDF updated successfully",
        "document": serialize_document(document),
    }


@router.delete("/{doc_id}")
def delete_document(
    doc_id: str,
    viewer: Viewer = Depends(require_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    service.delete_document(doc_id, viewer)
    return {"success": True, "message": "PDF deleted successfully"}
