"""
Session authenticator tests (no HTTP): authorize, login, logout, rate limit.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from sporewatch.auth.ratelimit import check_rate_limit
from sporewatch.auth.service import authorize, login, logout, role_rank
from sporewatch.errors import (
    Forbidden,
    InvalidCredentials,
    MissingCredentials,
    RateLimited,
    SessionExpired,
    Unauthenticated,
)
from sporewatch.models import LoginAttempt, User, UserSession, utcnow

from conftest import DEFAULT_PASSWORD

ROLES = ["viewer", "sampler", "admin"]


def _open_session(db, user, expires_in=timedelta(hours=1)):
    token = f"tok-{user.id}-{expires_in.total_seconds()}"
    db.add(UserSession(token=token, user_id=user.id, expires_at=utcnow() + expires_in))
    db.commit()
    return token


# =============================================================================
# authorize
# =============================================================================

@pytest.mark.parametrize("actual", ROLES)
@pytest.mark.parametrize("required", ROLES)
def test_role_hierarchy(db, make_user, actual, required):
    user = make_user(email=f"{actual}-{required}@example.com", role=actual)
    token = _open_session(db, user)

    if role_rank(actual) >= role_rank(required):
        identity = authorize(db, token, required)
        assert identity.id == user.id
        assert identity.role == actual
        assert identity.email == user.email
    else:
        with pytest.raises(Forbidden):
            authorize(db, token, required)


def test_missing_token_is_unauthenticated(db):
    with pytest.raises(Unauthenticated):
        authorize(db, None, "viewer")
    with pytest.raises(Unauthenticated):
        authorize(db, "", "viewer")


def test_unknown_token_is_unauthenticated(db):
    with pytest.raises(Unauthenticated) as exc:
        authorize(db, "no-such-token", "viewer")
    assert not isinstance(exc.value, SessionExpired)


def test_expired_session_is_removed(db, make_user):
    user = make_user(role="admin")
    token = _open_session(db, user, expires_in=timedelta(minutes=-1))

    with pytest.raises(SessionExpired):
        authorize(db, token, "viewer")
    assert db.get(UserSession, token) is None

    # second lookup: plain "not found", nothing left to delete
    with pytest.raises(Unauthenticated) as exc:
        authorize(db, token, "viewer")
    assert not isinstance(exc.value, SessionExpired)


def test_expiry_boundary_counts_as_expired(db, make_user):
    user = make_user()
    now = utcnow()
    db.add(UserSession(token="edge", user_id=user.id, expires_at=now))
    db.commit()

    with pytest.raises(SessionExpired):
        authorize(db, "edge", "viewer", now=now)


def test_inactive_user_is_unauthenticated(db, make_user):
    user = make_user(role="admin", is_active=False)
    token = _open_session(db, user)
    with pytest.raises(Unauthenticated):
        authorize(db, token, "viewer")


# =============================================================================
# login / logout
# =============================================================================

def test_login_creates_session_and_updates_last_login(db, make_user):
    make_user(email="grower@example.com", role="sampler")

    result = login(db, "  Grower@Example.COM ", DEFAULT_PASSWORD, "10.0.0.1")

    assert result.identity.email == "grower@example.com"
    assert result.identity.role == "sampler"
    assert len(result.token) == 64
    session = db.get(UserSession, result.token)
    assert session is not None
    assert session.expires_at - utcnow() > timedelta(hours=23)

    user = db.get(User, result.identity.id)
    db.refresh(user)
    assert user.last_login is not None
    assert authorize(db, result.token, "sampler").id == user.id


def test_login_result_is_a_frozen_model(db, make_user):
    user = make_user(email="a@example.com", role="sampler")
    result = login(db, "a@example.com", DEFAULT_PASSWORD, "10.0.0.1")

    assert result.identity.model_dump() == {"id": user.id, "email": "a@example.com", "role": "sampler"}
    with pytest.raises(PydanticValidationError):
        result.identity.role = "admin"
    with pytest.raises(PydanticValidationError):
        result.token = "other"


def test_login_tokens_are_unique(db, make_user):
    make_user(email="a@example.com")
    first = login(db, "a@example.com", DEFAULT_PASSWORD, "10.0.0.1")
    second = login(db, "a@example.com", DEFAULT_PASSWORD, "10.0.0.1")
    assert first.token != second.token


@pytest.mark.parametrize(
    "email,password",
    [
        ("nobody@example.com", DEFAULT_PASSWORD),
        ("user@example.com", "wrong"),
    ],
)
def test_bad_credentials_are_undifferentiated(db, make_user, email, password):
    make_user(email="user@example.com")
    with pytest.raises(InvalidCredentials) as exc:
        login(db, email, password, "10.0.0.1")
    assert exc.value.message == "Invalid credentials"


def test_inactive_user_cannot_login(db, make_user):
    make_user(email="gone@example.com", is_active=False)
    with pytest.raises(InvalidCredentials):
        login(db, "gone@example.com", DEFAULT_PASSWORD, "10.0.0.1")


def test_plaintext_password_hash_never_matches(db):
    db.add(User(email="legacy@example.com", password_hash="admin123", role="admin"))
    db.commit()
    with pytest.raises(InvalidCredentials):
        login(db, "legacy@example.com", "admin123", "10.0.0.1")


def test_logout_is_idempotent(db, make_user):
    make_user(email="a@example.com")
    result = login(db, "a@example.com", DEFAULT_PASSWORD, "10.0.0.1")

    logout(db, result.token)
    assert db.get(UserSession, result.token) is None
    logout(db, result.token)
    logout(db, None)

    with pytest.raises(Unauthenticated):
        authorize(db, result.token, "viewer")


# =============================================================================
# rate limiting
# =============================================================================

def test_eleventh_attempt_is_rate_limited(db, make_user):
    make_user(email="a@example.com")
    now = utcnow()

    for _ in range(10):
        with pytest.raises(InvalidCredentials):
            login(db, "a@example.com", "wrong", "192.0.2.7", now=now)

    with pytest.raises(RateLimited):
        login(db, "a@example.com", DEFAULT_PASSWORD, "192.0.2.7", now=now)

    # other addresses are unaffected
    assert login(db, "a@example.com", DEFAULT_PASSWORD, "192.0.2.8", now=now).token


def test_rate_limit_resets_after_window(db, make_user):
    make_user(email="a@example.com")
    now = utcnow()

    for _ in range(10):
        with pytest.raises(InvalidCredentials):
            login(db, "a@example.com", "wrong", "192.0.2.7", now=now)
    with pytest.raises(RateLimited):
        login(db, "a@example.com", DEFAULT_PASSWORD, "192.0.2.7", now=now + timedelta(minutes=14))

    later = now + timedelta(minutes=15, seconds=1)
    result = login(db, "a@example.com", DEFAULT_PASSWORD, "192.0.2.7", now=later)
    assert result.identity.email == "a@example.com"


def test_successful_logins_count_toward_limit(db, make_user):
    make_user(email="a@example.com")
    now = utcnow()
    for _ in range(10):
        login(db, "a@example.com", DEFAULT_PASSWORD, "192.0.2.9", now=now)
    with pytest.raises(RateLimited):
        login(db, "a@example.com", DEFAULT_PASSWORD, "192.0.2.9", now=now)


def test_missing_credentials_still_count_toward_limit(db, make_user):
    make_user(email="a@example.com")
    now = utcnow()

    for email, password in [("", "x"), ("a@example.com", None)] * 5:
        with pytest.raises(MissingCredentials):
            login(db, email, password, "192.0.2.10", now=now)

    with pytest.raises(RateLimited):
        login(db, "a@example.com", DEFAULT_PASSWORD, "192.0.2.10", now=now)


def test_concurrent_first_attempts_share_one_counter(db, session_factory, monkeypatch):
    now = utcnow()
    real_get = db.get
    calls = []

    def racing_get(entity, key, **kwargs):
        calls.append(key)
        if len(calls) == 1:
            # another worker records its first attempt after our lookup
            with session_factory() as other:
                other.add(LoginAttempt(client_addr=key, count=3, reset_at=now + timedelta(minutes=15)))
                other.commit()
            return None
        return real_get(entity, key, **kwargs)

    monkeypatch.setattr(db, "get", racing_get)

    assert check_rate_limit(db, "192.0.2.11", now=now) is True

    with session_factory() as s:
        assert s.get(LoginAttempt, "192.0.2.11").count == 4
