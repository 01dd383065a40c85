from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..config import PDF_MIME_TYPE
from .base import Base, JSONType, utcnow


class DocumentStatus(str, enum.Enum):
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(f"mime_type = '{PDF_MIME_TYPE}'", name="ck_documents_mime_type_pdf"),
        Index("ix_documents_owner_created", "owner_id", "created_at"),
        Index("ix_documents_public", "is_public"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False, default="")
    storage_key = Column(String, nullable=False, unique=True)
    original_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String, nullable=False, default=PDF_MIME_TYPE)
    page_count = Column(Integer, nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    status = Column(
        Enum(
            DocumentStatus,
            name="document_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=DocumentStatus.READY,
    )
    # author, subject, creator, producer, keywords, creationDate, modificationDate
    metadata_json = Column("metadata", JSONType, nullable=False, default=dict, server_default=text("'{}'"))
    access_count = Column(Integer, nullable=False, default=0, server_default="0")
    last_accessed_at = Column(DateTime(timezone=True), default=utcnow, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    owner = relationship("User", lazy="joined")
    tag_rows = relationship(
        "DocumentTag",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentTag.position",
        lazy="selectin",
    )

    @property
    def tags(self) -> list[str]:
        return [row.name for row in self.tag_rows]

    def replace_tags(self, tags: list[str]) -> None:
        # reuse rows for surviving names; the unit of work inserts before it deletes
        existing = {row.name: row for row in self.tag_rows}
        rows = []
        for idx, name in enumerate(tags):
            row = existing.get(name) or DocumentTag(name=name)
            row.position = idx
            rows.append(row)
        self.tag_rows = rows


class DocumentTag(Base):
    __tablename__ = "document_tags"
    __table_args__ = (
        UniqueConstraint("document_id", "name", name="uq_document_tags_document_name"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(30), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    document = relationship("Document", back_populates="tag_rows")
