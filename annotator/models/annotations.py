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
    Uuid,
    text,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base, JSONType, utcnow


class AnnotationType(str, enum.Enum):
    HIGHLIGHT = "highlight"
    TEXT = "text"
    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    ARROW = "arrow"
    FREEHAND = "freehand"


class Annotation(Base):
    __tablename__ = "annotations"
    __table_args__ = (
        CheckConstraint("page >= 1", name="ck_annotations_page_positive"),
        Index("ix_annotations_document_page", "document_id", "page"),
        Index("ix_annotations_author_created", "author_id", "created_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    author_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    page = Column(Integer, nullable=False)
    type = Column(
        Enum(
            AnnotationType,
            name="annotation_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        index=True,
    )
    content = Column(JSONType, nullable=False, default=dict, server_default=text("'{}'"))
    is_private = Column(Boolean, nullable=False, default=False)
    is_resolved = Column(Boolean, nullable=False, default=False)
    tags = Column(JSONType, nullable=False, default=list, server_default=text("'[]'"))
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    author = relationship("User", lazy="joined")
    document = relationship("Document", lazy="select")
    replies = relationship(
        "AnnotationReply",
        back_populates="annotation",
        cascade="all, delete-orphan",
        order_by="AnnotationReply.position",
        collection_class=ordering_list("position"),
        lazy="selectin",
    )

    @property
    def reply_count(self) -> int:
        return len(self.replies)


class AnnotationReply(Base):
    __tablename__ = "annotation_replies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    annotation_id = Column(
        Uuid(as_uuid=True), ForeignKey("annotations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    text = Column(String(500), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    annotation = relationship("Annotation", back_populates="replies")
    author = relationship("User", lazy="joined")
