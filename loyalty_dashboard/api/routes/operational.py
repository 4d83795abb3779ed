"""Operational dashboard endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from loyalty_dashboard.db.dependencies import get_db_session
from loyalty_dashboard.services.dashboard_service import DashboardService
from loyalty_dashboard.services.filters import RawFilters, parse_multi_param

router = APIRouter(prefix="/operational", tags=["operational"])


@router.get("")
def get_operational_dashboard(
    month: list[str] | None = Query(default=None),
    category: list[str] | None = Query(default=None),
    branch: list[str] | None = Query(default=None),
    merchant: list[str] | None = Query(default=None),
    expiry_scope: str | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    raw_filters = RawFilters(
        categories=parse_multi_param(category),
        branches=parse_multi_param(branch),
        merchants=parse_multi_param(merchant),
    )
    return DashboardService(db).operational(month=month, raw_filters=raw_filters, expiry_scope=expiry_scope)
