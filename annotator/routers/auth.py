from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import EmailStr, Field
from sqlalchemy.orm import Session

from ..dependencies.auth import (
    AuthContext,
    clear_session_cookie,
    finalize_login,
    issue_magic_link,
    require_auth,
    session_token_from_request,
)
from ..dependencies.db import get_db
from ..models import User
from ..schemas import CamelModel
from ..services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


class MagicLinkRequest(CamelModel):
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=100)
    redirect_path: Optional[str] = Field(default="/library", pattern=r"^/")


def _serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.display_name,
        "role": user.role.value,
        "lastLoginAt": user.last_login_at.isoformat() if user.last_login_at else None,
    }


@router.post("/magic-link")
def send_magic_link(payload: MagicLinkRequest, request: Request, db: Session = Depends(get_db)) -> dict:
    issue_magic_link(payload.email, payload.name, request, db, payload.redirect_path)
    return {"success": True, "message": "Magic link sent"}


@router.get("/callback")
def magic_link_callback(
    token: str,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> dict:
    user, session_token, redirect_path = finalize_login(request, response, token, db)
    return {
        "success": True,
        "user": _serialize_user(user),
        "token": session_token,
        "redirectPath": redirect_path,
    }


@router.get("/me")
def get_current_user(context: AuthContext = Depends(require_auth)) -> dict:
    return {"success": True, "user": _serialize_user(context.user)}


@router.post("/logout")
def logout_user(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> dict:
    raw_token = session_token_from_request(request)
    if raw_token:
        AuthService(db).revoke_session(raw_token)
    clear_session_cookie(response)
    return {"success": True, "message": "Logged out"}

