"""Filter option endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from loyalty_dashboard.db.dependencies import get_db_session
from loyalty_dashboard.services.dashboard_service import DashboardService

router = APIRouter(prefix="/filters", tags=["filters"])


@router.get("/options")
def get_filter_options(
    month: list[str] | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    """Categories, branches and merchants seen in the selected months."""

    return DashboardService(db).filter_options(month)
