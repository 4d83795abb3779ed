"""Export endpoint for merchant and transaction records."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from loyalty_dashboard.db.dependencies import get_db_session
from loyalty_dashboard.services.export_service import ExportService

router = APIRouter(tags=["exports"])


@router.get("/export")
def export_records(
    type: str | None = Query(default=None),
    format: str = Query(default="csv"),
    db: Session = Depends(get_db_session),
) -> Response:
    exported = ExportService(db).export(type, format)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )
