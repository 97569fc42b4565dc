"""Read-only data access consumed by the reporting engine."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from ngo_reporting.core.config import get_settings
from ngo_reporting.models.entities import (
    Budget,
    Category,
    DistributionRecord,
    Employee,
    LeaveRequest,
    Project,
    QurbanCampaign,
    QurbanDonation,
    Transaction,
)
from ngo_reporting.services.aggregation import normalize_amount
from ngo_reporting.services.reporting_types import (
    BudgetRecord,
    CampaignRecord,
    CategoryRecord,
    DistributionRecord as DistributionSnapshot,
    DonationRecord,
    EmployeeRecord,
    LeaveRecord,
    ProjectRecord,
    TransactionRecord,
)

logger = logging.getLogger(__name__)


class ReportingDataSource(Protocol):
    """Facility-scoped, idempotent fetches the engine depends on."""

    def fetch_transactions(
        self,
        facility_id: UUID,
        start_date: date | None,
        end_date: date | None,
    ) -> list[TransactionRecord]: ...

    def fetch_all_budgets(self, facility_id: UUID) -> list[BudgetRecord]: ...

    def fetch_categories(self, facility_id: UUID) -> list[CategoryRecord]: ...

    def fetch_projects(self, facility_id: UUID) -> list[ProjectRecord]: ...

    def fetch_employees(self, facility_id: UUID) -> list[EmployeeRecord]: ...

    def fetch_approved_leaves(self, facility_id: UUID) -> list[LeaveRecord]: ...

    def fetch_donations(self, facility_id: UUID) -> list[DonationRecord]: ...

    def fetch_campaigns(self, facility_id: UUID) -> list[CampaignRecord]: ...

    def fetch_distributions(self, facility_id: UUID) -> list[DistributionSnapshot]: ...


class ReportingRepository:
    """SQLAlchemy implementation of :class:`ReportingDataSource`."""

    def __init__(
        self,
        db: Session,
        *,
        base_currency: str | None = None,
        timezone: str | None = None,
    ) -> None:
        settings = get_settings()
        self.db = db
        self.base_currency = base_currency or settings.base_currency
        self.timezone = ZoneInfo(timezone or settings.facility_timezone)

    def _local(self, value: datetime | None) -> datetime | None:
        """Express a stored timestamp in the facility zone; naive values are UTC."""

        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(self.timezone)

    # ---------- Finance ----------
    def fetch_transactions(
        self,
        facility_id: UUID,
        start_date: date | None,
        end_date: date | None,
    ) -> list[TransactionRecord]:
        query = select(Transaction).where(Transaction.facility_id == facility_id)
        if start_date is not None:
            query = query.where(Transaction.transaction_date >= start_date)
        if end_date is not None:
            query = query.where(Transaction.transaction_date <= end_date)
        rows = self.db.scalars(query.order_by(Transaction.transaction_date.asc(), Transaction.id.asc())).all()
        logger.debug(
            "Fetched transactions.",
            extra={"facility_id": str(facility_id), "rows": len(rows)},
        )
        return [self._to_transaction_record(row) for row in rows]

    def _to_transaction_record(self, row: Transaction) -> TransactionRecord:
        amount = Decimal(row.amount)
        rate = Decimal(row.exchange_rate) if row.exchange_rate is not None else None
        return TransactionRecord(
            id=row.id,
            type=row.type.value,
            date=row.transaction_date,
            amount=amount,
            currency=row.currency,
            exchange_rate=rate,
            amount_in_base_currency=normalize_amount(amount, row.currency, rate, base_currency=self.base_currency),
            status=row.status.value,
            facility_id=row.facility_id,
            category_id=row.category_id,
            category_name=row.category_name,
            vendor_customer_id=row.vendor_customer_id,
            vendor_customer_name=row.vendor_customer_name,
            project_id=row.project_id,
            project_name=row.project_name,
            description=row.description or "",
        )

    def fetch_all_budgets(self, facility_id: UUID) -> list[BudgetRecord]:
        rows = self.db.scalars(
            select(Budget).where(Budget.facility_id == facility_id).order_by(Budget.start_date.asc(), Budget.id.asc())
        ).all()
        return [
            BudgetRecord(
                id=row.id,
                scope=row.scope.value,
                scope_id=row.scope_id,
                amount=Decimal(row.amount),
                start_date=row.start_date,
                end_date=row.end_date,
                status=row.status,
            )
            for row in rows
        ]

    def fetch_categories(self, facility_id: UUID) -> list[CategoryRecord]:
        rows = self.db.scalars(
            select(Category).where(Category.facility_id == facility_id).order_by(Category.name.asc())
        ).all()
        return [CategoryRecord(id=row.id, name=row.name, type=row.type.value) for row in rows]

    # ---------- Projects ----------
    def fetch_projects(self, facility_id: UUID) -> list[ProjectRecord]:
        rows = self.db.scalars(
            select(Project).where(Project.facility_id == facility_id).order_by(Project.name.asc())
        ).all()
        return [
            ProjectRecord(
                id=row.id,
                name=row.name,
                status=row.status,
                start_date=row.start_date,
                budget=Decimal(row.budget or 0),
                spent=Decimal(row.spent or 0),
            )
            for row in rows
        ]

    # ---------- HR ----------
    def fetch_employees(self, facility_id: UUID) -> list[EmployeeRecord]:
        rows = self.db.scalars(
            select(Employee)
            .where(Employee.facility_id == facility_id)
            .order_by(Employee.last_name.asc(), Employee.first_name.asc())
        ).all()
        return [
            EmployeeRecord(
                id=row.id,
                first_name=row.first_name,
                last_name=row.last_name,
                department=row.department,
                position=row.position,
                status=row.status,
                hire_date=row.hire_date,
                created_at=self._local(row.created_at),
                salary=Decimal(row.salary or 0),
            )
            for row in rows
        ]

    def fetch_approved_leaves(self, facility_id: UUID) -> list[LeaveRecord]:
        rows = self.db.scalars(
            select(LeaveRequest).where(
                LeaveRequest.facility_id == facility_id,
                LeaveRequest.status == "approved",
            )
        ).all()
        return [LeaveRecord(id=row.id, employee_id=row.employee_id, total_days=row.total_days or 0) for row in rows]

    # ---------- Qurban / donations ----------
    def fetch_donations(self, facility_id: UUID) -> list[DonationRecord]:
        rows = self.db.scalars(
            select(QurbanDonation)
            .where(QurbanDonation.facility_id == facility_id)
            .order_by(QurbanDonation.created_at.asc())
        ).all()
        records: list[DonationRecord] = []
        for row in rows:
            amount = Decimal(row.amount)
            rate = Decimal(row.exchange_rate) if row.exchange_rate is not None else None
            records.append(
                DonationRecord(
                    id=row.id,
                    donor_name=row.donor_name,
                    payment_status=row.payment_status,
                    share_count=row.share_count or 0,
                    amount=amount,
                    amount_in_base_currency=normalize_amount(
                        amount,
                        row.currency,
                        rate,
                        base_currency=self.base_currency,
                    ),
                    created_on=self._local(row.created_at).date(),
                )
            )
        return records

    def fetch_campaigns(self, facility_id: UUID) -> list[CampaignRecord]:
        rows = self.db.scalars(select(QurbanCampaign).where(QurbanCampaign.facility_id == facility_id)).all()
        return [
            CampaignRecord(
                id=row.id,
                name=row.name,
                target_animals=row.target_animals or 0,
                completed_animals=row.completed_animals or 0,
            )
            for row in rows
        ]

    def fetch_distributions(self, facility_id: UUID) -> list[DistributionSnapshot]:
        rows = self.db.scalars(
            select(DistributionRecord).where(DistributionRecord.facility_id == facility_id)
        ).all()
        return [
            DistributionSnapshot(
                id=row.id,
                distribution_date=row.distribution_date,
                package_count=row.package_count or 0,
            )
            for row in rows
        ]
