# backend/sporewatch/db.py
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from .config import settings

logger = logging.getLogger(__name__)

IS_SQLITE = settings.db_url.startswith("sqlite")

engine = create_engine(
    settings.db_url,
    connect_args={"check_same_thread": False} if IS_SQLITE else {},
    pool_pre_ping=not IS_SQLITE,
    future=True,
)


def enable_sqlite_foreign_keys(target_engine) -> None:
    """ON DELETE CASCADE and FK checks are off by default in SQLite."""

    @event.listens_for(target_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON;")
        cursor.close()


if IS_SQLITE:
    enable_sqlite_foreign_keys(engine)


SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # handlers read attributes after commit
    future=True,
)

Base = declarative_base()


def init_db(bind=None) -> None:
    # models must be imported so their tables are registered on Base
    from . import models  # noqa: F401

    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    logger.info("Database schema ready (%s)", target.url.get_backend_name())


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
