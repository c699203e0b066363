# backend/sporewatch/routers/uploads.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ..auth.deps import require_role
from ..auth.service import Identity
from ..db import get_db
from ..ingest.pipeline import UploadResult, ingest_metabarcode_csv
from ..models import SampleUpload
from ..schemas import UploadOut

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


async def _read_upload(request: Request, filename: Optional[str]) -> tuple[bytes, str]:
    """Body of a multipart ``file`` field, or the raw request body."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("file")
        if upload is None or isinstance(upload, str):
            raise HTTPException(status_code=400, detail="file_required")
        raw = await upload.read()
        return raw, upload.filename or filename or "upload.csv"

    raw = await request.body()
    return raw, filename or "upload.csv"


# ───────────────────────── Metabarcode CSV ─────────────────────────
@router.post("/metabarcode", response_model=UploadResult)
async def upload_metabarcode(
    request: Request,
    filename: Optional[str] = Query(None, description="Name recorded for raw-body uploads"),
    db: Session = Depends(get_db),
    sampler: Identity = Depends(require_role("sampler")),
):
    """
    Ingest a metabarcode CSV. Per-sample problems are itemized in ``errors``;
    the request itself only fails on auth or an unreadable body.
    """
    raw, name = await _read_upload(request, filename)
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="file_not_utf8")

    return ingest_metabarcode_csv(
        db, text, filename=name, file_size=len(raw), uploaded_by=sampler.id
    )


# ───────────────────────── Audit log ─────────────────────────
@router.get("/", response_model=List[UploadOut])
def list_uploads(
    route_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    _viewer: Identity = Depends(require_role("viewer")),
):
    q = db.query(SampleUpload)
    if route_id is not None:
        q = q.filter(SampleUpload.route_id == route_id)
    return q.order_by(SampleUpload.upload_date.desc(), SampleUpload.id.desc()).all()
