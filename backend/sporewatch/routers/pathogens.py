# backend/sporewatch/routers/pathogens.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.deps import require_role
from ..auth.service import Identity
from ..db import get_db
from ..models import PathogenSpecies
from ..schemas import SpeciesCreate, SpeciesOut

router = APIRouter(prefix="/api/pathogens", tags=["pathogens"])


@router.get("/", response_model=List[SpeciesOut])
def list_species(
    disease_type: Optional[str] = Query(None, description="Optional disease type filter"),
    db: Session = Depends(get_db),
    _viewer: Identity = Depends(require_role("viewer")),
):
    q = db.query(PathogenSpecies)
    if disease_type:
        q = q.filter(PathogenSpecies.disease_type == disease_type)
    return q.order_by(PathogenSpecies.species_name.asc()).all()


@router.post("/", response_model=SpeciesOut, status_code=201)
def create_species(
    payload: SpeciesCreate,
    db: Session = Depends(get_db),
    _admin: Identity = Depends(require_role("admin")),
):
    name = payload.species_name.strip()
    if db.query(PathogenSpecies).filter(PathogenSpecies.species_name == name).first():
        raise HTTPException(status_code=409, detail="species_exists")

    row = PathogenSpecies(
        species_name=name,
        common_name=payload.common_name,
        disease_type=payload.disease_type,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
