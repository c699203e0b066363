# backend/sporewatch/models.py
from datetime import datetime, timezone
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .db import Base


ROLE_RANK = {"viewer": 1, "sampler": 2, "admin": 3}


def utcnow() -> datetime:
    # Naive UTC: SQLite drops tzinfo, so everything stored is compared naive.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Always stored lowercase
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, index=True)  # viewer|sampler|admin
    full_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)


class UserSession(Base):
    __tablename__ = "sessions"

    token = Column(String(64), primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    expires_at = Column(DateTime, index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User")


class LoginAttempt(Base):
    """Login rate-limit counter, one row per client address."""

    __tablename__ = "login_attempts"

    client_addr = Column(String(64), primary_key=True)
    count = Column(Integer, default=0, nullable=False)
    reset_at = Column(DateTime, nullable=False)


class SamplingRoute(Base):
    __tablename__ = "sampling_routes"

    id = Column(Integer, primary_key=True, index=True)
    # Human chosen identifier, e.g. "25_01"
    sample_id = Column(String(50), unique=True, index=True, nullable=False)
    start_name = Column(String(255), nullable=False)
    end_name = Column(String(255), nullable=False)
    start_latitude = Column(Float, nullable=False)
    start_longitude = Column(Float, nullable=False)
    end_latitude = Column(Float, nullable=False)
    end_longitude = Column(Float, nullable=False)
    collection_date = Column(Date, index=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    collection_start_time = Column(DateTime, nullable=True)
    collection_end_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    detections = relationship(
        "PathogenDetection",
        back_populates="route",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    tracking_points = relationship(
        "GpsTrackingPoint",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    uploads = relationship(
        "SampleUpload",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def year(self) -> int:
        return self.collection_date.year


class GpsTrackingPoint(Base):
    __tablename__ = "gps_tracking_points"

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(
        Integer,
        ForeignKey("sampling_routes.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    recorded_at = Column(DateTime, default=utcnow, index=True, nullable=False)
    recorded_by = Column(Integer, ForeignKey("users.id"), nullable=True)


class PathogenSpecies(Base):
    __tablename__ = "pathogen_species"

    id = Column(Integer, primary_key=True, index=True)
    species_name = Column(String(255), unique=True, index=True, nullable=False)
    common_name = Column(String(255), nullable=True)
    disease_type = Column(String(100), index=True, nullable=True)


class PathogenDetection(Base):
    __tablename__ = "pathogen_detections"
    __table_args__ = (
        UniqueConstraint(
            "route_id", "pathogen_species_id", name="unique_pathogen_per_route"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(
        Integer,
        ForeignKey("sampling_routes.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    pathogen_species_id = Column(
        Integer, ForeignKey("pathogen_species.id"), nullable=False
    )
    read_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    route = relationship("SamplingRoute", back_populates="detections")
    species = relationship("PathogenSpecies", lazy="joined")


class SampleUpload(Base):
    """Audit trail of CSV uploads; rows are only ever appended."""

    __tablename__ = "sample_uploads"

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(
        Integer,
        ForeignKey("sampling_routes.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    filename = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=True)
    row_count = Column(Integer, nullable=True)
    upload_date = Column(DateTime, default=utcnow, nullable=False)
    processing_status = Column(String(50), default="completed")
    notes = Column(Text, nullable=True)
