import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import LoginAttempt, utcnow

logger = logging.getLogger(__name__)


def check_rate_limit(
    db: Session,
    client_addr: str,
    now: datetime | None = None,
    max_attempts: int | None = None,
    window: timedelta | None = None,
) -> bool:
    """Count one login attempt for ``client_addr``; False once over the limit.

    One ``login_attempts`` row per address, shared by every worker. The
    read-modify-write is unlocked; a concurrent burst can slip a few extra
    attempts through, and two first attempts racing to create the row both
    end up counted on it.
    """
    now = now or utcnow()
    max_attempts = max_attempts or settings.login_max_attempts
    window = window or timedelta(minutes=settings.login_window_minutes)

    row = db.get(LoginAttempt, client_addr)
    if row is None:
        db.add(LoginAttempt(client_addr=client_addr, count=1, reset_at=now + window))
        try:
            db.commit()
            return True
        except IntegrityError:
            # a concurrent first attempt created the row; count against it
            db.rollback()
            row = db.get(LoginAttempt, client_addr)

    if now > row.reset_at:
        row.count = 1
        row.reset_at = now + window
        db.commit()
        return True

    if row.count >= max_attempts:
        logger.warning("Login rate limit hit for %s", client_addr)
        return False

    row.count += 1
    db.commit()
    return True
