from __future__ import annotations

from typing import Iterator

from fastapi import Depends
from sqlalchemy.orm import Session

from ..config import settings
from ..db.session import SessionLocal
from ..services.queries import QueryService
from ..services.storage import get_storage_service


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_query_service(db: Session = Depends(get_db)) -> QueryService:
    return QueryService(db, get_storage_service(), max_upload_bytes=settings.storage.max_upload_bytes)
