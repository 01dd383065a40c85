from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from ..dependencies.auth import get_viewer, require_viewer
from ..dependencies.db import get_query_service
from ..models.annotations import Annotation, AnnotationReply, AnnotationType
from ..models.users import User
from ..schemas import AnnotationCreate, AnnotationFilters, AnnotationUpdate, ReplyCreate
from ..services.pagination import MAX_LIMIT
from ..services.queries import QueryService
from ..services.visibility import Viewer

router = APIRouter(prefix="/annotations")


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_user(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": str(user.id), "name": user.display_name}


def serialize_reply(reply: AnnotationReply) -> Dict[str, Any]:
    return {
        "id": str(reply.id),
        "text": reply.text,
        "user": serialize_user(reply.author),
        "createdAt": _isoformat(reply.created_at),
    }


def serialize_annotation(annotation: Annotation, include_document: bool = False) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": str(annotation.id),
        "documentId": str(annotation.document_id),
        "page": annotation.page,
        "type": annotation.type.value,
        "content": dict(annotation.content or {}),
        "isPrivate": annotation.is_private,
        "isResolved": annotation.is_resolved,
        "tags": list(annotation.tags or []),
        "user": serialize_user(annotation.author),
        "replies": [serialize_reply(reply) for reply in annotation.replies],
        "replyCount": annotation.reply_count,
        "createdAt": _isoformat(annotation.created_at),
        "updatedAt": _isoformat(annotation.updated_at),
    }
    if include_document and annotation.document is not None:
        payload["document"] = {
            "id": str(annotation.document.id),
            "title": annotation.document.title,
            "originalName": annotation.document.original_name,
        }
    return payload


@router.post("", status_code=201)
def create_annotation(
    payload: AnnotationCreate = Body(...),
    viewer: Viewer = Depends(require_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    annotation = service.create_annotation(viewer, payload)
    return {
        "success": True,
        "message": "Annotation created successfully",
        "annotation": serialize_annotation(annotation),
    }


@router.get("/document/{doc_id}")
def list_document_annotations(
    doc_id: str,
    page: Optional[int] = Query(default=None, ge=1),
    type: Optional[AnnotationType] = Query(default=None),
    is_resolved: Optional[bool] = Query(default=None, alias="isResolved"),
    viewer: Viewer = Depends(get_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    filters = AnnotationFilters(page=page, type=type, is_resolved=is_resolved)
    annotations = service.list_document_annotations(doc_id, viewer, filters)
    return {
        "success": True,
        "count": len(annotations),
        "items": [serialize_annotation(annotation) for annotation in annotations],
    }


@router.get("/mine")
def list_my_annotations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_LIMIT),
    type: Optional[AnnotationType] = Query(default=None),
    is_resolved: Optional[bool] = Query(default=None, alias="isResolved"),
    viewer: Viewer = Depends(require_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    filters = AnnotationFilters(type=type, is_resolved=is_resolved)
    result = service.list_my_annotations(viewer, filters, page, limit)
    return {
        "success": True,
        "count": result.count,
        "total": result.total,
        "page": result.page,
        "pages": result.pages,
        "items": [serialize_annotation(annotation, include_document=True) for annotation in result.items],
    }


@router.get("/{annotation_id}")
def get_annotation(
    annotation_id: str,
    viewer: Viewer = Depends(get_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    annotation = service.get_annotation(annotation_id, viewer)
    return {"success": True, "annotation": serialize_annotation(annotation)}


@router.put("/{annotation_id}")
def update_annotation(
    annotation_id: str,
    payload: AnnotationUpdate = Body(...),
    viewer: Viewer = Depends(require_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    annotation = service.update_annotation(annotation_id, viewer, payload)
    return {
        "success": True,
        "message": "Annotation updated successfully",
        "annotation": serialize_annotation(annotation),
    }


@router.delete("/{annotation_id}")
def delete_annotation(
    annotation_id: str,
    viewer: Viewer = Depends(require_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    service.delete_annotation(annotation_id, viewer)
    return {"success": True, "message": "Annotation deleted successfully"}


@router.post("/{annotation_id}/replies", status_code=201)
def add_reply(
    annotation_id: str,
    payload: Optional[ReplyCreate] = Body(default=None),
    viewer: Viewer = Depends(require_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    annotation = service.add_reply(annotation_id, viewer, payload.text if payload else None)
    return {
        "success": True,
        "message": "Reply added successfully",
        "annotation": serialize_annotation(annotation),
    }


@router.delete("/{annotation_id}/replies/{reply_id}")
def delete_reply(
    annotation_id: str,
    reply_id: str,
    viewer: Viewer = Depends(require_viewer),
    service: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    annotation = service.delete_reply(annotation_id, reply_id, viewer)
    return {
        "success": True,
        "message": "Reply deleted successfully",
        "annotation": serialize_annotation(annotation),
    }
