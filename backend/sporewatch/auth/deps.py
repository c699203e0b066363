from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from .service import Identity, authorize


def session_token(request: Request) -> str | None:
    """Session token from the ``session`` cookie, else an ``Authorization: Bearer`` header."""
    token = request.cookies.get(settings.session_cookie)
    if token:
        return token
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def require_role(role: str):
    """FastAPI dependency factory: ``Depends(require_role("admin"))``."""

    def _dep(request: Request, db: Session = Depends(get_db)) -> Identity:
        return authorize(db, session_token(request), role)

    return _dep


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"
