# backend/sporewatch/ingest/pipeline.py
import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import ConflictError, StoreError, ValidationError
from ..models import PathogenDetection, PathogenSpecies, SampleUpload, SamplingRoute
from .parser import (
    DetectionRow,
    parse_collection_date,
    parse_coordinates,
    parse_csv,
    parse_read_count,
)

logger = logging.getLogger(__name__)

UPLOAD_NOTES = "Uploaded via metabarcode CSV upload"


class UploadResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    routes_processed: int = 0
    detections_added: int = 0
    errors: list[str] = []


def _group_by_sample(rows: list[DetectionRow]) -> dict[str, list[DetectionRow]]:
    # dicts keep insertion order, so groups come out in first-seen order
    groups: dict[str, list[DetectionRow]] = {}
    for row in rows:
        groups.setdefault(row.sample_id, []).append(row)
    return groups


class MetabarcodeIngest:
    """One CSV upload: groups rows per sample and writes routes + detections.

    Every store write is committed by itself. A failure inside one sample is
    reported and the next sample carries on.
    """

    def __init__(
        self,
        db: Session,
        filename: str,
        file_size: int,
        uploaded_by: Optional[int] = None,
    ):
        self.db = db
        self.filename = filename
        self.file_size = file_size
        self.uploaded_by = uploaded_by
        self.errors: list[str] = []
        self.routes_processed = 0
        self.detections_added = 0
        self._species_ids: dict[str, Optional[int]] = {}

    def run(self, text: str) -> UploadResult:
        if not text.strip():
            return self._empty_result("CSV file is empty or invalid")

        parsed = parse_csv(text)
        if parsed.missing_columns:
            return self._empty_result(
                "CSV is missing required columns: " + ", ".join(parsed.missing_columns)
            )
        if not parsed.rows:
            return self._empty_result("CSV file is empty or invalid")

        groups = _group_by_sample(parsed.rows)
        for sample_id, rows in groups.items():
            self._process_sample(sample_id, rows)

        result = UploadResult(
            success=len(self.errors) < len(parsed.rows),
            message=f"Processed {len(groups)} samples",
            routes_processed=self.routes_processed,
            detections_added=self.detections_added,
            errors=self.errors,
        )
        logger.info(
            "Ingested %s: %d samples, %d new routes, %d detections, %d errors",
            self.filename,
            len(groups),
            self.routes_processed,
            self.detections_added,
            len(self.errors),
        )
        return result

    def _empty_result(self, reason: str) -> UploadResult:
        logger.info("Rejected upload %s: %s", self.filename, reason)
        return UploadResult(
            success=False, message="No valid data found in CSV", errors=[reason]
        )

    # ───────────────────────── per sample ─────────────────────────

    def _process_sample(self, sample_id: str, rows: list[DetectionRow]) -> None:
        first = rows[0]
        try:
            start = parse_coordinates(first.start_point)
            end = parse_coordinates(first.end_point)
        except ValidationError:
            self.errors.append(f"{sample_id}: Invalid coordinates")
            return

        try:
            collection_date = parse_collection_date(first.collection_date)
        except ValidationError:
            self.errors.append(f"{sample_id}: Invalid collection date")
            return

        try:
            route_id = self._resolve_route(sample_id, first, start, end, collection_date)
        except StoreError as exc:
            self.errors.append(f"{sample_id}: Failed to create route - {exc}")
            return

        try:
            self._record_upload(route_id, len(rows))
        except StoreError as exc:
            self.errors.append(f"{sample_id}: Failed to record upload - {exc}")

        for row in rows:
            self._process_detection(sample_id, route_id, row)

    def _resolve_route(self, sample_id, first, start, end, collection_date) -> int:
        existing = self._find_route_id(sample_id)
        if existing is not None:
            # existing routes are never overwritten by an upload
            return existing

        try:
            route_id = self._insert_route(sample_id, first, start, end, collection_date)
        except ConflictError:
            # another upload created it between our select and insert
            existing = self._find_route_id(sample_id)
            if existing is None:
                raise StoreError("sample_id conflict but route not found")
            return existing

        self.routes_processed += 1
        return route_id

    def _find_route_id(self, sample_id: str) -> Optional[int]:
        try:
            return (
                self.db.query(SamplingRoute.id)
                .filter(SamplingRoute.sample_id == sample_id)
                .scalar()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(str(exc.__cause__ or exc)) from exc

    def _insert_route(self, sample_id, first, start, end, collection_date) -> int:
        route = SamplingRoute(
            sample_id=sample_id,
            start_name=first.start_name,
            end_name=first.end_name,
            start_latitude=start[0],
            start_longitude=start[1],
            end_latitude=end[0],
            end_longitude=end[1],
            collection_date=collection_date,
            created_by=self.uploaded_by,
        )
        self.db.add(route)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if self._find_route_id(sample_id) is not None:
                raise ConflictError(sample_id) from exc
            raise StoreError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Route insert failed for %s: %s", sample_id, exc)
            raise StoreError(str(exc.__cause__ or exc)) from exc
        return route.id

    def _record_upload(self, route_id: int, row_count: int) -> None:
        self.db.add(
            SampleUpload(
                route_id=route_id,
                uploaded_by=self.uploaded_by,
                filename=self.filename,
                file_size=self.file_size,
                row_count=row_count,
                notes=UPLOAD_NOTES,
            )
        )
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Upload audit insert failed for route %s: %s", route_id, exc)
            raise StoreError(str(exc.__cause__ or exc)) from exc

    # ───────────────────────── per detection ─────────────────────────

    def _process_detection(self, sample_id: str, route_id: int, row: DetectionRow) -> None:
        try:
            read_count = parse_read_count(row.read_count)
        except ValidationError:
            self.errors.append(f"{sample_id}: Invalid read count for {row.species}")
            return

        try:
            species_id = self._species_id(row.species)
        except StoreError:
            self.errors.append(f"{sample_id}: Failed to add detection for {row.species}")
            return
        if species_id is None:
            self.errors.append(f"{sample_id}: Unknown species {row.species}")
            return

        try:
            upsert_detection(self.db, route_id, species_id, read_count)
        except StoreError as exc:
            logger.warning("Detection upsert failed for %s/%s: %s", sample_id, row.species, exc)
            self.errors.append(f"{sample_id}: Failed to add detection for {row.species}")
            return
        self.detections_added += 1

    def _species_id(self, name: str) -> Optional[int]:
        if name not in self._species_ids:
            try:
                self._species_ids[name] = (
                    self.db.query(PathogenSpecies.id)
                    .filter(PathogenSpecies.species_name == name)
                    .scalar()
                )
            except SQLAlchemyError as exc:
                self.db.rollback()
                raise StoreError(str(exc.__cause__ or exc)) from exc
        return self._species_ids[name]


def upsert_detection(db: Session, route_id: int, species_id: int, read_count: int) -> None:
    """Insert a detection, or overwrite read_count if the species is already on the route."""
    dialect = db.get_bind().dialect.name
    values = {
        "route_id": route_id,
        "pathogen_species_id": species_id,
        "read_count": read_count,
    }
    try:
        if dialect in ("sqlite", "postgresql"):
            insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
            stmt = insert(PathogenDetection).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["route_id", "pathogen_species_id"],
                set_={"read_count": stmt.excluded.read_count},
            )
            db.execute(stmt)
        else:
            row = (
                db.query(PathogenDetection)
                .filter(
                    PathogenDetection.route_id == route_id,
                    PathogenDetection.pathogen_species_id == species_id,
                )
                .first()
            )
            if row is None:
                db.add(PathogenDetection(**values))
            else:
                row.read_count = read_count
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError(str(exc.__cause__ or exc)) from exc


def ingest_metabarcode_csv(
    db: Session,
    text: str,
    filename: str,
    file_size: Optional[int] = None,
    uploaded_by: Optional[int] = None,
) -> UploadResult:
    if file_size is None:
        file_size = len(text.encode("utf-8"))
    return MetabarcodeIngest(db, filename, file_size, uploaded_by).run(text)
