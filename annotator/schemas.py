"""Request payloads and annotation content shapes.

API JSON uses camelCase; every model accepts either the camelCase alias or the
Python field name.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

from .models.annotations import AnnotationType

HEX_COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"

DocumentTagName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=30)]
AnnotationTagName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=20)]


def _dedupe(values: Optional[list[str]]) -> Optional[list[str]]:
    if values is None:
        return None
    return list(dict.fromkeys(values))


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AnnotationStyle(CamelModel):
    color: str = Field(default="#FFFF00", pattern=HEX_COLOR_PATTERN)
    opacity: float = Field(default=0.5, ge=0, le=1)
    stroke_width: float = Field(default=2, ge=1, le=10)
    font_size: float = Field(default=14, ge=8, le=72)
    font_family: str = Field(default="Arial", max_length=64)


class Coordinates(CamelModel):
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None


class Bounds(CamelModel):
    x1: Optional[float] = None
    y1: Optional[float] = None
    x2: Optional[float] = None
    y2: Optional[float] = None


class Point(CamelModel):
    x: float
    y: float


class AnnotationContent(CamelModel):
    text: Optional[str] = Field(default=None, max_length=1000)
    coordinates: Optional[Coordinates] = None
    bounds: Optional[Bounds] = None
    points: Optional[list[Point]] = None
    style: AnnotationStyle = Field(default_factory=AnnotationStyle)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AnnotationCreate(CamelModel):
    document_id: uuid.UUID
    page: int = Field(ge=1)
    type: AnnotationType
    content: AnnotationContent
    is_private: bool = False
    tags: list[AnnotationTagName] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: list[str]) -> list[str]:
        return _dedupe(value) or []


class AnnotationUpdate(CamelModel):
    # content is a partial patch merged key-by-key into the stored content
    content: Optional[dict[str, Any]] = None
    is_private: Optional[bool] = None
    is_resolved: Optional[bool] = None
    tags: Optional[list[AnnotationTagName]] = None

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return _dedupe(value)


class ReplyCreate(CamelModel):
    text: str = ""


class DocumentFields(CamelModel):
    title: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]] = None
    description: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None
    tags: Optional[list[DocumentTagName]] = None
    is_public: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return _dedupe(value)


class DocumentFilters(CamelModel):
    search: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    @classmethod
    def from_query(cls, search: Optional[str], tags: Optional[str]) -> "DocumentFilters":
        parsed = [tag.strip() for tag in (tags or "").split(",") if tag.strip()]
        return cls(search=(search or "").strip() or None, tags=parsed)


class AnnotationFilters(CamelModel):
    page: Optional[int] = Field(default=None, ge=1)
    type: Optional[AnnotationType] = None
    is_resolved: Optional[bool] = None
