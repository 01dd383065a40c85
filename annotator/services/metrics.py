from __future__ import annotations

from prometheus_client import Counter

DOCUMENTS_UPLOADED_COUNTER = Counter(
    "annotator_documents_uploaded_total",
    "PDF documents accepted and committed",
)

UPLOADS_REJECTED_COUNTER = Counter(
    "annotator_uploads_rejected_total",
    "Uploads rejected before a document was created",
    ["reason"],
)

DOCUMENTS_DELETED_COUNTER = Counter(
    "annotator_documents_deleted_total",
    "Documents deleted together with their annotations",
)

BLOB_CLEANUP_FAILURES_COUNTER = Counter(
    "annotator_blob_cleanup_failures_total",
    "Blob deletions that failed after the metadata change was final",
    ["stage"],
)

ANNOTATIONS_CREATED_COUNTER = Counter(
    "annotator_annotations_created_total",
    "Annotations created per type",
    ["type"],
)

REPLIES_ADDED_COUNTER = Counter(
    "annotator_replies_added_total",
    "Replies appended to annotations",
)


def record_upload_rejected(reason: str) -> None:
    UPLOADS_REJECTED_COUNTER.labels(reason=reason).inc()


def record_blob_cleanup_failure(stage: str) -> None:
    BLOB_CLEANUP_FAILURES_COUNTER.labels(stage=stage).inc()


def record_annotation_created(annotation_type: str) -> None:
    ANNOTATIONS_CREATED_COUNTER.labels(type=annotation_type).inc()
