"""Financial report endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ngo_reporting.db.dependencies import get_db_session
from ngo_reporting.services.report_service import ReportService, list_report_types
from ngo_reporting.services.reporting_types import Granularity, ReportParameter

router = APIRouter(prefix="/reports", tags=["reports"])


class ReportParameterPayload(BaseModel):
    facility_id: UUID | None = None
    start_date: date
    end_date: date
    compare_start_date: date | None = None
    compare_end_date: date | None = None
    group_by: Granularity = Granularity.MONTH
    category_ids: list[UUID] = Field(default_factory=list)
    project_ids: list[UUID] = Field(default_factory=list)
    vendor_ids: list[UUID] = Field(default_factory=list)

    def to_parameter(self) -> ReportParameter:
        return ReportParameter(
            facility_id=self.facility_id,
            start_date=self.start_date,
            end_date=self.end_date,
            compare_start_date=self.compare_start_date,
            compare_end_date=self.compare_end_date,
            group_by=self.group_by,
            category_ids=frozenset(self.category_ids),
            project_ids=frozenset(self.project_ids),
            vendor_ids=frozenset(self.vendor_ids),
        )


@router.get("/types")
def get_report_types() -> dict[str, object]:
    return {"items": [ReportService.serialize_report_type(item) for item in list_report_types()]}


@router.post("/{report_type}")
def generate_report(
    report_type: str,
    payload: ReportParameterPayload,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ReportService.from_session(db)
    result = service.generate_report(report_type, payload.to_parameter())
    return service.serialize_report_result(result)
