# backend/sporewatch/routers/users.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Path as FPath, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List

from ..auth.deps import require_role
from ..auth.passwords import hash_password
from ..auth.service import Identity
from ..db import get_db
from ..models import User
from ..schemas import UserOut, UserCreate, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


def _get_user_or_404(db: Session, user_id: int) -> User:
    row = db.get(User, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="user_not_found")
    return row


@router.get("/", response_model=List[UserOut])
def list_users(
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_role("admin")),
):
    """List all users, newest first."""
    return db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int = FPath(...),
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_role("admin")),
):
    return _get_user_or_404(db, user_id)


@router.post("/", response_model=UserOut, status_code=201)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_role("admin")),
):
    """Create a user. 409 if the email is already registered."""
    email = payload.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="email_exists")

    row = User(
        email=email,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name.strip(),
        role=payload.role,
        is_active=True,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("User %s (%s) created by %s", row.email, row.role, admin.email)
    return row


@router.patch("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int = FPath(...),
    payload: UserUpdate = None,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_role("admin")),
):
    """Partial update: full_name, role, is_active and/or password."""
    row = _get_user_or_404(db, user_id)

    changed = False
    if payload is not None:
        if payload.full_name is not None:
            row.full_name = payload.full_name
            changed = True
        if payload.role is not None:
            row.role = payload.role
            changed = True
        if payload.is_active is not None:
            row.is_active = payload.is_active
            changed = True
        if payload.password is not None:
            row.password_hash = hash_password(payload.password)
            changed = True

    if changed:
        db.add(row)
        db.commit()
        db.refresh(row)
    return row


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: int = FPath(...),
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_role("admin")),
):
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="cannot_delete_self")
    row = _get_user_or_404(db, user_id)

    db.delete(row)
    try:
        db.commit()
    except IntegrityError:
        # still referenced by routes, uploads or tracking points
        db.rollback()
        raise HTTPException(status_code=409, detail="user_has_records")

    logger.info("User %s deleted by %s", row.email, admin.email)
    return Response(status_code=204)
