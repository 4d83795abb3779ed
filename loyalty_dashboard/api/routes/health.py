"""Liveness endpoint."""

from fastapi import APIRouter

from loyalty_dashboard.core.config import get_settings

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "service": get_settings().app_name}
