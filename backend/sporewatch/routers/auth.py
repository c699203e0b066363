# backend/sporewatch/routers/auth.py
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ..auth.deps import client_address, require_role, session_token
from ..auth.service import Identity, login, logout
from ..config import settings
from ..db import get_db
from ..models import User
from ..schemas import IdentityOut, LoginRequest

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/login")
def login_route(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """Check credentials, open a session and set the ``session`` cookie.

    Every request counts toward the rate limit, including ones missing a field.
    """
    result = login(db, payload.email, payload.password, client_address(request))

    response.set_cookie(
        key=settings.session_cookie,
        value=result.token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        expires=result.expires_at.strftime("%a, %d %b %Y %H:%M:%S GMT"),
        path="/",
    )
    user = IdentityOut(
        id=result.identity.id,
        email=result.identity.email,
        role=result.identity.role,
        full_name=result.full_name,
        is_active=result.is_active,
    )
    return {"user": user}


@router.post("/logout")
def logout_route(request: Request, response: Response, db: Session = Depends(get_db)):
    logout(db, session_token(request))
    response.delete_cookie(
        key=settings.session_cookie,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )
    return {"success": True}


@router.get("/me")
def me(
    identity: Identity = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    user = db.get(User, identity.id)
    return {"user": IdentityOut.model_validate(user)}
