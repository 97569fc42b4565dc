"""Top-level API router."""

from fastapi import APIRouter

from ngo_reporting.api.routes.dashboards import router as dashboards_router
from ngo_reporting.api.routes.health import router as health_router
from ngo_reporting.api.routes.reports import router as reports_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(reports_router)
api_router.include_router(dashboards_router)
