from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import AuthenticationError, ValidationError
from ..models import User, UserSession
from ..services.auth import AuthError, AuthService
from ..services.visibility import ANONYMOUS, Viewer
from .db import get_db


@dataclass
class AuthContext:
    user: User
    session: UserSession

    @property
    def viewer(self) -> Viewer:
        return Viewer(id=self.user.id, role=self.user.role.value)


def session_token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.cookie_name)


def optional_auth(request: Request, db: Session = Depends(get_db)) -> Optional[AuthContext]:
    raw_token = session_token_from_request(request)
    if not raw_token:
        return None
    row = AuthService(db).session_from_token(raw_token)
    if not row:
        # a presented credential that does not resolve is never downgraded to anonymous
        raise AuthenticationError("Authentication required")
    session, user = row
    request.state.user_id = str(user.id)
    return AuthContext(user=user, session=session)


def require_auth(context: Optional[AuthContext] = Depends(optional_auth)) -> AuthContext:
    if context is None:
        raise AuthenticationError("Authentication required")
    return context


def get_viewer(context: Optional[AuthContext] = Depends(optional_auth)) -> Viewer:
    return context.viewer if context else ANONYMOUS


def require_viewer(context: AuthContext = Depends(require_auth)) -> Viewer:
    return context.viewer


def issue_magic_link(
    email: str,
    name: Optional[str],
    request: Request,
    db: Session,
    redirect_path: Optional[str] = None,
) -> str:
    try:
        return AuthService(db).request_magic_link(
            email=email,
            name=name,
            request_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            redirect_path=redirect_path,
        )
    except AuthError as exc:
        raise ValidationError(str(exc)) from exc


def finalize_login(request: Request, response: Response, signed_token: str, db: Session) -> tuple[User, str, str]:
    try:
        user, session_token, redirect_path = AuthService(db).redeem_magic_link(
            signed_token,
            request_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    except AuthError as exc:
        raise ValidationError(str(exc)) from exc

    attach_session_cookie(response, session_token)
    return user, session_token, redirect_path


def attach_session_cookie(response: Response, raw_token: str) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=raw_token,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
        domain=settings.cookie_domain,
        path="/",
        max_age=int(timedelta(hours=settings.session_ttl_hours).total_seconds()),
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.cookie_name,
        domain=settings.cookie_domain,
        path="/",
    )
