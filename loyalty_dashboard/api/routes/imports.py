"""Upload endpoint for merchant and transaction files."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from loyalty_dashboard.db.dependencies import get_db_session
from loyalty_dashboard.services.import_service import ImportService

router = APIRouter(tags=["imports"])


@router.post("/import")
def import_records(
    file: UploadFile = File(...),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    content = file.file.read()
    summary = ImportService(db).import_file(file.filename, content)
    return summary.to_dict()
