# backend/sporewatch/schemas.py
from typing import Optional, List, Literal
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


Role = Literal["viewer", "sampler", "admin"]


# ====== Read models (responses) ======


class IdentityOut(ORMModel):
    id: int
    email: str
    role: Role
    full_name: Optional[str] = None
    is_active: Optional[bool] = None


class UserOut(ORMModel):
    # no password_hash
    id: int
    email: str
    role: Role
    full_name: Optional[str] = None
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime] = None


class SpeciesOut(ORMModel):
    id: int
    species_name: str
    common_name: Optional[str] = None
    disease_type: Optional[str] = None


class DetectionOut(ORMModel):
    id: int
    route_id: int
    pathogen_species_id: int
    read_count: int
    species: SpeciesOut


class RouteOut(ORMModel):
    id: int
    sample_id: str
    start_name: str
    end_name: str
    start_latitude: float
    start_longitude: float
    end_latitude: float
    end_longitude: float
    collection_date: date
    created_by: Optional[int] = None
    collection_start_time: Optional[datetime] = None
    collection_end_time: Optional[datetime] = None
    created_at: datetime

    @computed_field
    @property
    def year(self) -> int:
        return self.collection_date.year


class RouteWithDetectionsOut(RouteOut):
    detections: List[DetectionOut] = []


class UploadOut(ORMModel):
    id: int
    route_id: int
    uploaded_by: Optional[int] = None
    filename: str
    file_size: Optional[int] = None
    row_count: Optional[int] = None
    upload_date: datetime
    processing_status: Optional[str] = None
    notes: Optional[str] = None


# ====== Write models (requests) ======


class LoginRequest(BaseModel):
    # Optional so a missing field is a 400, not a validation 422
    email: Optional[str] = None
    password: Optional[str] = None


class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1, max_length=255)
    role: Role = "viewer"


class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=1)


class RouteCreate(BaseModel):
    sample_id: str = Field(..., min_length=1, max_length=50)
    start_name: str = Field(..., min_length=1)
    end_name: str = Field(..., min_length=1)
    start_latitude: float = Field(..., ge=-90, le=90)
    start_longitude: float = Field(..., ge=-180, le=180)
    end_latitude: float = Field(..., ge=-90, le=90)
    end_longitude: float = Field(..., ge=-180, le=180)
    collection_date: date


class RouteUpdate(BaseModel):
    sample_id: Optional[str] = Field(None, min_length=1, max_length=50)
    start_name: Optional[str] = None
    end_name: Optional[str] = None
    start_latitude: Optional[float] = Field(None, ge=-90, le=90)
    start_longitude: Optional[float] = Field(None, ge=-180, le=180)
    end_latitude: Optional[float] = Field(None, ge=-90, le=90)
    end_longitude: Optional[float] = Field(None, ge=-180, le=180)
    collection_date: Optional[date] = None


class GpsPosition(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = None
    timestamp: datetime


# Route recorded live in the field: start fix, current fix, breadcrumbs
class FieldCollectionCreate(BaseModel):
    sample_id: str = Field(..., min_length=1, max_length=50)
    start_name: Optional[str] = None
    end_name: Optional[str] = None
    start_position: GpsPosition
    end_position: GpsPosition
    tracking_points: List[GpsPosition] = []


class DetectionCreate(BaseModel):
    pathogen_species_id: int
    read_count: int = Field(..., ge=0)


class SpeciesCreate(BaseModel):
    species_name: str = Field(..., min_length=1, max_length=255)
    common_name: Optional[str] = None
    disease_type: Optional[str] = None
