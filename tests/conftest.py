"""
SporeWatch test configuration

Each test gets a fresh in-memory SQLite database shared by the test code and
the FastAPI app (via a get_db override).
"""

import os

# Must be set before sporewatch.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sporewatch.auth.passwords import hash_password
from sporewatch.db import enable_sqlite_foreign_keys, get_db, init_db
from sporewatch.main import app
from sporewatch.models import User
from sporewatch.seed_dev import seed_species

DEFAULT_PASSWORD = "s3cret-pass"

SCENARIO_CSV = (
    "sample_id,start_name,start_point,end_name,end_point,species,read_count,collection_date\n"
    '25_01,Perth,"-31.95086, 115.86223",Bindoon,"-31.39306, 116.09878",'
    "Puccinia striiformis,1234,30/07/2025\n"
)


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(eng)
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    with factory() as s:
        seed_species(s)
    return factory


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def make_user(session_factory):
    """Create a user directly in the database."""

    def _make(email="user@example.com", role="viewer", password=DEFAULT_PASSWORD, is_active=True):
        with session_factory() as s:
            user = User(
                email=email.lower(),
                password_hash=hash_password(password),
                role=role,
                full_name=f"Test {role.title()}",
                is_active=is_active,
            )
            s.add(user)
            s.commit()
            s.refresh(user)
            return user

    return _make


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def client(session_factory):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def login_as(client, make_user):
    """Create a user with ``role`` and log the shared client in as them."""

    def _login(role="viewer", email=None):
        email = email or f"{role}@example.com"
        user = make_user(email=email, role=role)
        resp = client.post("/api/login", json={"email": email, "password": DEFAULT_PASSWORD})
        assert resp.status_code == 200, resp.text
        return user

    return _login
