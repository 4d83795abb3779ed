"""Top-level API router."""

from fastapi import APIRouter

from loyalty_dashboard.api.routes.exports import router as exports_router
from loyalty_dashboard.api.routes.filters import router as filters_router
from loyalty_dashboard.api.routes.health import router as health_router
from loyalty_dashboard.api.routes.imports import router as imports_router
from loyalty_dashboard.api.routes.operational import router as operational_router
from loyalty_dashboard.api.routes.overview import router as overview_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(overview_router)
api_router.include_router(operational_router)
api_router.include_router(filters_router)
api_router.include_router(exports_router)
api_router.include_router(imports_router)
