from datetime import datetime, timezone

from fastapi import APIRouter

from ..config import settings

router = APIRouter()


@router.get("/health")
def health() -> dict[str, object]:
    return {
        "success": True,
        "message": "PDF Annotator API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
