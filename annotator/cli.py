from __future__ import annotations

import typer

from .config import settings
from .db.session import SessionLocal
from .models import User, UserRole
from .services.auth import AuthService

app = typer.Typer(help="PDF Annotator administrative CLI")


def _find_user(db, email: str) -> User:
    user = db.query(User).filter(User.email == email.strip().lower()).one_or_none()
    if user is None:
        typer.echo(f"No user with email {email}", err=True)
        raise typer.Exit(code=1)
    return user


@app.command()
def create_user(
    email: str = typer.Argument(..., help="User email"),
    name: str = typer.Option("", "--name", "-n", help="Optional display name"),
    admin: bool = typer.Option(False, "--admin", help="Grant the admin role"),
) -> None:
    """Create a user (or update an existing one) without going through the magic link."""
    db = SessionLocal()
    try:
        auth = AuthService(db)
        user = auth.get_or_create_user(email, name or None)
        if admin:
            user.role = UserRole.ADMIN
        db.commit()
        typer.echo(f"User {user.email} ({user.id}) role={user.role.value}")
    finally:
        db.close()


@app.command()
def issue_session(email: str = typer.Argument(..., help="User email")) -> None:
    """Mint a session token for local testing."""
    db = SessionLocal()
    try:
        user = _find_user(db, email)
        raw_token = AuthService(db).issue_session(user, user_agent="cli")
        typer.echo(f"Session expires in {settings.session_ttl_hours}h")
        typer.echo(f"Cookie:  {settings.cookie_name}={raw_token}")
        typer.echo(f"Header:  Authorization: Bearer {raw_token}")
    finally:
        db.close()


@app.command()
def set_role(
    email: str = typer.Argument(..., help="User email"),
    role: UserRole = typer.Argument(..., help="user or admin"),
) -> None:
    """Change a user's role."""
    db = SessionLocal()
    try:
        user = AuthService(db).set_role(_find_user(db, email), role)
        typer.echo(f"{user.email} is now {user.role.value}")
    finally:
        db.close()


if __name__ == "__main__":
    app()
