"""Facility dashboard endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ngo_reporting.db.dependencies import get_db_session
from ngo_reporting.services.dashboard_service import DashboardService

router = APIRouter(prefix="/dashboards", tags=["dashboards"])


@router.get("/facilities/{facility_id}")
def get_facility_dashboard(
    facility_id: UUID,
    as_of: date | None = None,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = DashboardService.from_session(db)
    summary = service.build_summary(facility_id, as_of=as_of)
    return service.serialize_summary(summary)
