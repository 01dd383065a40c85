from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..models import LoginToken, User, UserRole, UserSession
from .email import EmailMessage, get_email_client

logger = logging.getLogger(__name__)


class AuthError(Exception):
    pass


class AuthService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.serializer = URLSafeTimedSerializer(settings.magic_link_secret, salt="magic-link")

    # --- Magic link flow -------------------------------------------------
    def request_magic_link(
        self,
        email: str,
        name: Optional[str] = None,
        request_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        redirect_path: Optional[str] = None,
    ) -> str:
        normalized_email = email.strip().lower()
        if not normalized_email:
            raise AuthError("Email required")

        user = self.get_or_create_user(normalized_email, name)
        if not user.is_active:
            raise AuthError("Account disabled")

        raw_token = secrets.token_urlsafe(32)
        login_token = LoginToken(
            user_id=user.id,
            token_hash=self.hash_token(raw_token),
            email=normalized_email,
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=settings.magic_link_expiry_minutes),
        )
        self.db.add(login_token)
        self.db.flush()

        signed_token = self.serializer.dumps(
            {
                "token": raw_token,
                "user_id": str(user.id),
                "login_token_id": str(login_token.id),
                "redirect": redirect_path or "/library",
            }
        )

        magic_link = f"{settings.app_url}/auth/callback?token={signed_token}"
        text_body = (
            "Your PDF Annotator sign-in link is ready.\n\n"
            f"Click to sign in: {magic_link}\n\n"
            f"This link expires in {settings.magic_link_expiry_minutes} minutes. "
            "If you did not request it, you can ignore this message."
        )

        try:
            get_email_client().send(
                EmailMessage(to=normalized_email, subject="Your PDF Annotator sign-in link", text_body=text_body)
            )
        except Exception as exc:
            self.db.rollback()
            logger.error("Failed to send magic link: email=%s error=%s", normalized_email, exc)
            raise AuthError("Could not send magic link") from exc

        self.db.commit()
        logger.info("magic_link_issued user_id=%s request_ip=%s user_agent=%s", user.id, request_ip, user_agent)
        return magic_link

    def redeem_magic_link(
        self,
        signed_token: str,
        request_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> tuple[User, str, str]:
        try:
            payload = self.serializer.loads(signed_token, max_age=settings.magic_link_expiry_minutes * 60)
        except SignatureExpired as exc:
            raise AuthError("Magic link expired") from exc
        except BadSignature as exc:
            raise AuthError("Invalid login token") from exc

        try:
            user_id = uuid.UUID(payload["user_id"])
            login_token_id = uuid.UUID(payload["login_token_id"])
            raw_token = payload["token"]
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthError("Invalid login token") from exc

        now = datetime.now(timezone.utc)
        login_token = (
            self.db.query(LoginToken)
            .filter(
                LoginToken.id == login_token_id,
                LoginToken.user_id == user_id,
                LoginToken.token_hash == self.hash_token(raw_token),
                LoginToken.consumed_at.is_(None),
                LoginToken.expires_at > now,
            )
            .one_or_none()
        )
        if not login_token:
            raise AuthError("Login token not found or already used")

        login_token.consumed_at = now
        user = self.db.query(User).filter(User.id == user_id).one()
        user.last_login_at = now
        session_token = self.issue_session(user, user_agent=user_agent, ip_address=request_ip, commit=False)
        self.db.add(login_token)
        self.db.commit()

        logger.info("user_login user_id=%s login_token_id=%s", user.id, login_token_id)
        return user, session_token, payload.get("redirect", "/library")

    # --- Session flow ----------------------------------------------------
    def issue_session(
        self,
        user: User,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        commit: bool = True,
    ) -> str:
        raw_token = secrets.token_urlsafe(32)
        self.db.add(
            UserSession(
                user_id=user.id,
                session_token_hash=self.hash_token(raw_token),
                user_agent=user_agent,
                ip_address=ip_address,
                expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.session_ttl_hours),
            )
        )
        if commit:
            self.db.commit()
        return raw_token

    def session_from_token(self, raw_token: str) -> Optional[tuple[UserSession, User]]:
        if not raw_token:
            return None
        now = datetime.now(timezone.utc)
        return (
            self.db.query(UserSession, User)
            .join(User, User.id == UserSession.user_id)
            .filter(
                UserSession.session_token_hash == self.hash_token(raw_token),
                UserSession.revoked_at.is_(None),
                UserSession.expires_at > now,
                User.is_active.is_(True),
            )
            .one_or_none()
        )

    def revoke_session(self, raw_token: str) -> None:
        hashed = self.hash_token(raw_token)
        updated = (
            self.db.query(UserSession)
            .filter(UserSession.session_token_hash == hashed, UserSession.revoked_at.is_(None))
            .update({"revoked_at": datetime.now(timezone.utc)})
        )
        if updated:
            logger.info("session_revoked hash=%s", hashed[:8])
        self.db.commit()

    # --- Helpers ---------------------------------------------------------
    @staticmethod
    def hash_token(value: str) -> str:
        return hashlib.sha256(value.encode("utf-8")).hexdigest()

    def get_or_create_user(self, email: str, name: Optional[str] = None) -> User:
        normalized = email.strip().lower()
        user = self.db.query(User).filter(func.lower(User.email) == normalized).one_or_none()
        if user:
            if name and not user.name:
                user.name = name
            return user

        user = User(email=normalized, name=name)
        self.db.add(user)
        self.db.flush()
        logger.info("user_created user_id=%s", user.id)
        return user

    def set_role(self, user: User, role: UserRole) -> User:
        user.role = role
        self.db.add(user)
        self.db.commit()
        logger.info("user_role_changed user_id=%s role=%s", user.id, role.value)
        return user
