import logging
import secrets
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import (
    Forbidden,
    InvalidCredentials,
    MissingCredentials,
    RateLimited,
    SessionExpired,
    Unauthenticated,
)
from ..models import ROLE_RANK, User, UserSession, utcnow
from .passwords import verify_password
from .ratelimit import check_rate_limit

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str


class LoginResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: Identity
    full_name: str | None
    is_active: bool
    token: str
    expires_at: datetime


def role_rank(role: str) -> int:
    return ROLE_RANK.get(role, 0)


def _identity(user: User) -> Identity:
    return Identity(id=user.id, email=user.email, role=user.role)


def authorize(
    db: Session,
    token: str | None,
    required_role: str = "viewer",
    now: datetime | None = None,
) -> Identity:
    """Resolve a session token to an active user holding at least ``required_role``."""
    if required_role not in ROLE_RANK:
        raise ValueError(f"unknown role: {required_role}")
    if not token:
        raise Unauthenticated()

    session = db.get(UserSession, token)
    if session is None:
        raise Unauthenticated()

    now = now or utcnow()
    if session.expires_at <= now:
        # lazy cleanup
        user_id = session.user_id
        db.delete(session)
        db.commit()
        logger.info("Removed expired session for user %s", user_id)
        raise SessionExpired()

    user = db.get(User, session.user_id)
    if user is None or not user.is_active:
        raise Unauthenticated()

    if role_rank(user.role) < role_rank(required_role):
        raise Forbidden()

    return _identity(user)


def login(
    db: Session,
    email: str | None,
    password: str | None,
    client_addr: str,
    now: datetime | None = None,
) -> LoginResult:
    now = now or utcnow()
    if not check_rate_limit(db, client_addr, now=now):
        raise RateLimited()
    if not email or not password:
        raise MissingCredentials()

    normalized = email.strip().lower()
    user = db.query(User).filter(User.email == normalized).first()

    # Always run one bcrypt comparison so unknown and known accounts take
    # the same time.
    stored_hash = user.password_hash if user is not None else None
    password_ok = verify_password(password, stored_hash)
    if user is None or not user.is_active or not password_ok:
        logger.info("Failed login for %s from %s", normalized, client_addr)
        raise InvalidCredentials()

    token = secrets.token_hex(32)
    expires_at = now + timedelta(hours=settings.session_ttl_hours)
    db.add(UserSession(token=token, user_id=user.id, expires_at=expires_at, created_at=now))
    user.last_login = now
    db.commit()

    logger.info("User %s logged in", user.email)
    return LoginResult(
        identity=_identity(user),
        full_name=user.full_name,
        is_active=user.is_active,
        token=token,
        expires_at=expires_at,
    )


def logout(db: Session, token: str | None) -> None:
    if not token:
        return
    deleted = db.query(UserSession).filter(UserSession.token == token).delete()
    db.commit()
    if deleted:
        logger.info("Session closed")
