# backend/sporewatch/routers/samples.py
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import extract
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..auth.deps import require_role
from ..auth.service import Identity
from ..db import get_db
from ..models import (
    GpsTrackingPoint,
    PathogenDetection,
    PathogenSpecies,
    SamplingRoute,
    utcnow,
)
from ..schemas import (
    DetectionCreate,
    DetectionOut,
    FieldCollectionCreate,
    RouteCreate,
    RouteOut,
    RouteUpdate,
    RouteWithDetectionsOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/samples", tags=["samples"])


def _get_route_or_404(db: Session, route_id: int) -> SamplingRoute:
    row = db.get(SamplingRoute, route_id)
    if not row:
        raise HTTPException(status_code=404, detail="route_not_found")
    return row


def _to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


# ---------- List routes with their detections ----------
@router.get("/", response_model=List[RouteWithDetectionsOut])
def list_samples(
    year: Optional[int] = Query(None, description="Optional collection year filter"),
    min_reads: int = Query(0, ge=0, description="Hide detections below this read count"),
    db: Session = Depends(get_db),
    _viewer: Identity = Depends(require_role("viewer")),
):
    q = db.query(SamplingRoute).options(selectinload(SamplingRoute.detections))
    if year is not None:
        q = q.filter(extract("year", SamplingRoute.collection_date) == year)
    rows = q.order_by(SamplingRoute.collection_date.desc(), SamplingRoute.id.desc()).all()

    out = []
    for r in rows:
        item = RouteWithDetectionsOut.model_validate(r)
        if min_reads:
            # presentation-side filter, stored rows are untouched
            item.detections = [d for d in item.detections if d.read_count >= min_reads]
        out.append(item)
    return out


@router.get("/years", response_model=List[int])
def list_years(
    db: Session = Depends(get_db),
    _viewer: Identity = Depends(require_role("viewer")),
):
    rows = db.query(SamplingRoute.collection_date).all()
    return sorted({d.year for (d,) in rows}, reverse=True)


@router.get("/{route_id}", response_model=RouteWithDetectionsOut)
def get_sample(
    route_id: int,
    db: Session = Depends(get_db),
    _viewer: Identity = Depends(require_role("viewer")),
):
    return _get_route_or_404(db, route_id)


# ---------- Manual entry ----------
@router.post("/", response_model=RouteOut, status_code=201)
def create_sample(
    payload: RouteCreate,
    db: Session = Depends(get_db),
    sampler: Identity = Depends(require_role("sampler")),
):
    sample_id = payload.sample_id.strip()
    if db.query(SamplingRoute).filter(SamplingRoute.sample_id == sample_id).first():
        raise HTTPException(status_code=409, detail="sample_id_exists")

    row = SamplingRoute(
        **payload.model_dump(exclude={"sample_id"}),
        sample_id=sample_id,
        created_by=sampler.id,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="sample_id_exists")
    db.refresh(row)
    return row


# ---------- Field collection (GPS) ----------
@router.post("/field", response_model=RouteOut, status_code=201)
def create_field_sample(
    payload: FieldCollectionCreate,
    db: Session = Depends(get_db),
    sampler: Identity = Depends(require_role("sampler")),
):
    """Save a route walked in the field, plus its GPS breadcrumb trail.

    The route is committed first; if the tracking points then fail to save,
    the route is kept and the failure only logged.
    """
    sample_id = payload.sample_id.strip()
    if db.query(SamplingRoute).filter(SamplingRoute.sample_id == sample_id).first():
        raise HTTPException(status_code=409, detail="sample_id_exists")

    now = utcnow()
    start, end = payload.start_position, payload.end_position
    row = SamplingRoute(
        sample_id=sample_id,
        start_name=payload.start_name or "Field Location",
        end_name=payload.end_name or "Field Location",
        start_latitude=start.latitude,
        start_longitude=start.longitude,
        end_latitude=end.latitude,
        end_longitude=end.longitude,
        collection_date=now.date(),
        collection_start_time=_to_naive_utc(start.timestamp),
        collection_end_time=now,
        created_by=sampler.id,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="sample_id_exists")
    db.refresh(row)

    if payload.tracking_points:
        db.add_all(
            GpsTrackingPoint(
                route_id=row.id,
                latitude=p.latitude,
                longitude=p.longitude,
                accuracy=p.accuracy,
                recorded_at=_to_naive_utc(p.timestamp),
                recorded_by=sampler.id,
            )
            for p in payload.tracking_points
        )
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Could not save tracking points for %s", sample_id)

    return row


@router.patch("/{route_id}", response_model=RouteOut)
def update_sample(
    route_id: int,
    payload: RouteUpdate,
    db: Session = Depends(get_db),
    _sampler: Identity = Depends(require_role("sampler")),
):
    row = _get_route_or_404(db, route_id)
    fields = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "sample_id" in fields:
        fields["sample_id"] = fields["sample_id"].strip()
        clash = (
            db.query(SamplingRoute)
            .filter(SamplingRoute.sample_id == fields["sample_id"], SamplingRoute.id != route_id)
            .first()
        )
        if clash:
            raise HTTPException(status_code=409, detail="sample_id_exists")

    for key, value in fields.items():
        setattr(row, key, value)
    if fields:
        db.commit()
        db.refresh(row)
    return row


@router.delete("/{route_id}", status_code=204)
def delete_sample(
    route_id: int,
    db: Session = Depends(get_db),
    sampler: Identity = Depends(require_role("sampler")),
):
    """Delete a route; detections, uploads and tracking points go with it."""
    row = _get_route_or_404(db, route_id)
    db.delete(row)
    db.commit()
    logger.info("Route %s deleted by %s", row.sample_id, sampler.email)
    return Response(status_code=204)


# ---------- Detections on a route ----------
@router.get("/{route_id}/detections", response_model=List[DetectionOut])
def list_detections(
    route_id: int,
    db: Session = Depends(get_db),
    _viewer: Identity = Depends(require_role("viewer")),
):
    _get_route_or_404(db, route_id)
    return (
        db.query(PathogenDetection)
        .filter(PathogenDetection.route_id == route_id)
        .order_by(PathogenDetection.read_count.desc())
        .all()
    )


@router.post("/{route_id}/detections", response_model=DetectionOut, status_code=201)
def add_detection(
    route_id: int,
    payload: DetectionCreate,
    db: Session = Depends(get_db),
    _sampler: Identity = Depends(require_role("sampler")),
):
    _get_route_or_404(db, route_id)
    if not db.get(PathogenSpecies, payload.pathogen_species_id):
        raise HTTPException(status_code=404, detail="species_not_found")

    exists = (
        db.query(PathogenDetection)
        .filter(
            PathogenDetection.route_id == route_id,
            PathogenDetection.pathogen_species_id == payload.pathogen_species_id,
        )
        .first()
    )
    if exists:
        raise HTTPException(status_code=409, detail="detection_exists")

    row = PathogenDetection(
        route_id=route_id,
        pathogen_species_id=payload.pathogen_species_id,
        read_count=payload.read_count,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="detection_exists")
    db.refresh(row)
    return row


detections_router = APIRouter(prefix="/api/detections", tags=["samples"])


@detections_router.delete("/{detection_id}", status_code=204)
def delete_detection(
    detection_id: int,
    db: Session = Depends(get_db),
    _sampler: Identity = Depends(require_role("sampler")),
):
    row = db.get(PathogenDetection, detection_id)
    if not row:
        raise HTTPException(status_code=404, detail="detection_not_found")
    db.delete(row)
    db.commit()
    return Response(status_code=204)
