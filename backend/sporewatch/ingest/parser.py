# backend/sporewatch/ingest/parser.py
"""CSV parsing for metabarcode uploads.

Expected header (extra columns are ignored)::

    sample_id,start_name,start_point,end_name,end_point,species,read_count,collection_date
    25_01,Perth,"-31.95086, 115.86223",Bindoon,"-31.39306, 116.09878",Puccinia striiformis,1234,30/07/2025

Rows are read into a loose ``RawRow`` first (every field optional) and only
turned into a strict ``DetectionRow`` once the required fields are known to
be present.
"""
import csv
import io
import math
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from ..errors import ValidationError

REQUIRED_COLUMNS = (
    "sample_id",
    "start_name",
    "start_point",
    "end_name",
    "end_point",
    "species",
    "read_count",
    "collection_date",
)


class RawRow(BaseModel):
    sample_id: Optional[str] = None
    start_name: Optional[str] = None
    start_point: Optional[str] = None
    end_name: Optional[str] = None
    end_point: Optional[str] = None
    species: Optional[str] = None
    read_count: Optional[str] = None
    collection_date: Optional[str] = None


class DetectionRow(BaseModel):
    sample_id: str
    species: str
    start_name: str = ""
    start_point: str = ""
    end_name: str = ""
    end_point: str = ""
    read_count: str = ""
    collection_date: str = ""

    @classmethod
    def from_raw(cls, raw: RawRow) -> Optional["DetectionRow"]:
        """None when the row lacks a sample id or species (blank trailing lines)."""
        if not raw.sample_id or not raw.species:
            return None
        fields = {k: v for k, v in raw.model_dump().items() if v is not None}
        return cls(**fields)


class ParsedCSV(BaseModel):
    rows: list[DetectionRow]
    missing_columns: list[str] = []


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    # DictReader puts surplus cells in a list under the None key
    if isinstance(value, list):
        return None
    return value.strip()


def parse_csv(text: str) -> ParsedCSV:
    # utf-8-sig exports from Excel leave a BOM on the first header
    text = text.lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text), skipinitialspace=True)
    # blank header cells keep their position so later columns stay aligned
    header = [h.strip() if h else "" for h in (reader.fieldnames or [])]
    reader.fieldnames = header
    missing = [c for c in REQUIRED_COLUMNS if c not in header]
    if missing:
        return ParsedCSV(rows=[], missing_columns=missing)

    rows: list[DetectionRow] = []
    for record in reader:
        raw = RawRow(**{k: _clean(record.get(k)) for k in REQUIRED_COLUMNS})
        row = DetectionRow.from_raw(raw)
        if row is not None:
            rows.append(row)
    return ParsedCSV(rows=rows)


def parse_coordinates(value: str) -> tuple[float, float]:
    """'"-31.95086, 115.86223"' -> (-31.95086, 115.86223)"""
    cleaned = value.replace('"', "").replace("'", "").strip()
    parts = [p.strip() for p in cleaned.split(",")]
    if len(parts) != 2:
        raise ValidationError(f"expected 'lat, lon', got {value!r}")
    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError as exc:
        raise ValidationError(f"non-numeric coordinate in {value!r}") from exc
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValidationError(f"non-finite coordinate in {value!r}")
    return lat, lon


def parse_collection_date(value: str) -> date:
    """DD/MM/YYYY, or an already normalized YYYY-MM-DD."""
    value = value.strip()
    parts = value.split("/")
    try:
        if len(parts) == 3:
            day, month, year = (int(p) for p in parts)
            return date(year, month, day)
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValidationError(f"unrecognised date {value!r}") from exc


def parse_read_count(value: str) -> int:
    try:
        count = int(value.strip())
    except ValueError as exc:
        raise ValidationError(f"read count {value!r} is not an integer") from exc
    if count < 0:
        raise ValidationError(f"read count {value!r} is negative")
    return count
