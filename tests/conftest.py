from __future__ import annotations

import io
import os
import pathlib
import secrets
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

import pytest

ROOT_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

_TEST_DIR = pathlib.Path(tempfile.mkdtemp(prefix="annotator-tests-"))

os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", f"sqlite:///{_TEST_DIR / 'annotator.db'}")
os.environ["STORAGE_BACKEND"] = "local"
os.environ["UPLOAD_DIR"] = str(_TEST_DIR / "uploads")
os.environ["EMAIL_BACKEND"] = "console"

from fastapi.testclient import TestClient  # noqa: E402

from annotator.config import settings  # noqa: E402
from annotator.db.session import SessionLocal, engine  # noqa: E402
from annotator.main import app  # noqa: E402
from annotator.models import UserRole, UserSession  # noqa: E402
from annotator.models.base import Base  # noqa: E402
from annotator.services.auth import AuthService  # noqa: E402
from helpers import SAMPLE_PDF  # noqa: E402


@dataclass
class ApiUser:
    id: str
    email: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@pytest.fixture(scope="session", autouse=True)
def database_schema() -> Iterator[None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="session")
def client(database_schema) -> Iterator[TestClient]:
    """Provide a FastAPI TestClient instance."""
    with TestClient(app) as _client:
        yield _client


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch) -> pathlib.Path:
    """Point local blob storage at a per-test directory."""
    path = tmp_path / "uploads"
    monkeypatch.setattr(settings.storage, "backend", "local")
    monkeypatch.setattr(settings.storage, "upload_dir", str(path))
    return path


@pytest.fixture(autouse=True)
def cleanup_database() -> Iterator[None]:
    """Delete every row after each test to keep isolation."""
    yield
    with SessionLocal() as session:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()


@pytest.fixture()
def make_user() -> Callable[..., ApiUser]:
    """Create a user with a live session and return its bearer credentials."""

    def _make(email: str, name: Optional[str] = None, role: UserRole = UserRole.USER) -> ApiUser:
        token = secrets.token_urlsafe(32)
        with SessionLocal() as session:
            user = AuthService(session).get_or_create_user(email, name)
            user.role = role
            session.add(
                UserSession(
                    user_id=user.id,
                    session_token_hash=AuthService.hash_token(token),
                    expires_at=datetime.now(timezone.utc) + timedelta(hours=4),
                )
            )
            session.commit()
            return ApiUser(id=str(user.id), email=user.email, token=token)

    return _make


@pytest.fixture()
def owner(make_user) -> ApiUser:
    return make_user("owner@example.com", "Olivia Owner")


@pytest.fixture()
def other_user(make_user) -> ApiUser:
    return make_user("reader@example.com", "Rene Reader")


@pytest.fixture()
def admin_user(make_user) -> ApiUser:
    return make_user("admin@example.com", "Ada Admin", role=UserRole.ADMIN)


@pytest.fixture()
def upload_pdf(client) -> Callable[..., dict]:
    """Upload a PDF as ``user`` and return the created document payload."""

    def _upload(user: ApiUser, filename: str = "report.pdf", content: bytes = SAMPLE_PDF, **fields) -> dict:
        data = {key: str(value).lower() if isinstance(value, bool) else value for key, value in fields.items()}
        response = client.post(
            "/documents",
            headers=user.headers,
            data=data,
            files={"file": (filename, io.BytesIO(content), "application/pdf")},
        )
        assert response.status_code == 201, response.text
        return response.json()["document"]

    return _upload


@pytest.fixture()
def create_annotation(client) -> Callable[..., dict]:
    def _create(user: ApiUser, document_id: str, **overrides) -> dict:
        payload = {
            "documentId": document_id,
            "page": 1,
            "type": "highlight",
            "content": {"text": "check this", "coordinates": {"x": 10, "y": 20, "width": 100, "height": 12}},
        }
        payload.update(overrides)
        response = client.post("/annotations", headers=user.headers, json=payload)
        assert response.status_code == 201, response.text
        return response.json()["annotation"]

    return _create

