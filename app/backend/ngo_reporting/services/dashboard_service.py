"""Cross-domain dashboard rollup for one facility.

Each sub-rollup distinguishes cumulative figures (everything on record) from
monthly trend figures (current calendar month against the previous one).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ngo_reporting.core.config import Settings, get_settings
from ngo_reporting.repositories.reporting_repository import ReportingDataSource, ReportingRepository
from ngo_reporting.services.aggregation import (
    EXPENSE,
    INCOME,
    SHORT_MONTH_LABELS,
    ZERO,
    BucketPoint,
    BucketSeries,
    aggregate_by_dimension,
    bucket_points,
    build_dimension_rows,
    month_end,
    month_start,
    percentage_change,
    realized_transactions,
    shift_month,
    sum_by_type,
    transaction_points,
)
from ngo_reporting.services.reporting_types import (
    AmountTrendPoint,
    CategoryShare,
    DashboardSummary,
    DonationRecord,
    DonationsRollup,
    EmployeeDetail,
    FinanceRollup,
    Granularity,
    HrRollup,
    MonthlyTrendPoint,
    ProjectsRollup,
    QurbanRollup,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Q2 = Decimal("0.01")
ACTIVE = "active"
ON_LEAVE = "on-leave"
COMPLETED = "completed"
PAID = "paid"
NO_VALUE = "-"


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


@dataclass(frozen=True, slots=True)
class MonthWindows:
    current_start: date
    current_end: date
    previous_start: date
    previous_end: date

    @classmethod
    def for_date(cls, as_of: date) -> MonthWindows:
        current_start = month_start(as_of)
        previous_start = shift_month(current_start, -1)
        return cls(
            current_start=current_start,
            current_end=month_end(current_start),
            previous_start=previous_start,
            previous_end=month_end(previous_start),
        )

    def in_current(self, value: date) -> bool:
        return self.current_start <= value <= self.current_end

    def in_previous(self, value: date) -> bool:
        return self.previous_start <= value <= self.previous_end


def _dense_months(points: Iterable[BucketPoint], windows: MonthWindows, months: int) -> BucketSeries:
    return bucket_points(
        points,
        Granularity.MONTH,
        fill_empty=True,
        start=shift_month(windows.current_start, -(months - 1)),
        end=windows.current_end,
    )


def _short_label(period_key: str) -> str:
    return SHORT_MONTH_LABELS[int(period_key[5:7]) - 1]


def _category_shares(
    current: Sequence[TransactionRecord],
    previous: Sequence[TransactionRecord],
) -> tuple[CategoryShare, ...]:
    def key(txn: TransactionRecord) -> object:
        return txn.category_id or "uncategorized"

    def name(txn: TransactionRecord) -> str | None:
        return txn.category_name

    rows = build_dimension_rows(
        aggregate_by_dimension(current, key, name),
        previous=aggregate_by_dimension(previous, key, name),
    )
    return tuple(
        CategoryShare(
            category=row.category,
            amount=row.income + row.expense,
            percentage=row.percentage,
            change=row.previous_period_diff if row.previous_period_diff is not None else ZERO,
        )
        for row in rows
    )


class DashboardService:
    """Builds a fresh :class:`DashboardSummary` per call; nothing is cached."""

    def __init__(self, source: ReportingDataSource, *, settings: Settings | None = None) -> None:
        self.source = source
        self.settings = settings or get_settings()

    @classmethod
    def from_session(cls, db: Session) -> DashboardService:
        return cls(ReportingRepository(db))

    def build_summary(
        self,
        facility_id: UUID | None,
        *,
        as_of: date | None = None,
        parallel: bool | None = None,
    ) -> DashboardSummary:
        if facility_id is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="facility_id is required.",
            )
        reference = as_of or date.today()
        windows = MonthWindows.for_date(reference)
        builders: dict[str, Callable[[UUID, MonthWindows], object]] = {
            "finance": self.finance_rollup,
            "hr": self.hr_rollup,
            "projects": self.projects_rollup,
            "qurban": self.qurban_rollup,
            "donations": self.donations_rollup,
        }
        run_parallel = self.settings.dashboard_parallel_rollups if parallel is None else parallel
        logger.info(
            "Building dashboard summary.",
            extra={"facility_id": str(facility_id), "as_of": reference.isoformat(), "parallel": run_parallel},
        )

        if run_parallel:
            with ThreadPoolExecutor(max_workers=self.settings.dashboard_max_workers) as pool:
                futures = {
                    name: pool.submit(self._run_rollup, name, builder, facility_id, windows)
                    for name, builder in builders.items()
                }
                rollups = {name: future.result() for name, future in futures.items()}
        else:
            rollups = {
                name: self._run_rollup(name, builder, facility_id, windows) for name, builder in builders.items()
            }

        return DashboardSummary(facility_id=facility_id, as_of=reference, **rollups)

    @staticmethod
    def _run_rollup(
        name: str,
        builder: Callable[[UUID, MonthWindows], T],
        facility_id: UUID,
        windows: MonthWindows,
    ) -> T:
        try:
            return builder(facility_id, windows)
        except SQLAlchemyError as exc:
            logger.error(
                "Data access failed while building dashboard rollup.",
                extra={"rollup": name, "facility_id": str(facility_id)},
                exc_info=True,
            )
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Failed to load data for dashboard rollup '{name}'.",
            ) from exc

    # ---------- Finance ----------
    def _is_hq_transfer(self, txn: TransactionRecord) -> bool:
        return any(marker in txn.description for marker in self.settings.hq_transfer_markers)

    def finance_rollup(self, facility_id: UUID, windows: MonthWindows) -> FinanceRollup:
        rows = self.source.fetch_transactions(facility_id, None, None)
        status_counts = {"pending": 0, "approved": 0, "rejected": 0, "draft": 0}
        for txn in rows:
            if txn.status in status_counts:
                status_counts[txn.status] += 1

        approved = realized_transactions(rows)
        transfers = [txn for txn in approved if txn.type == INCOME and self._is_hq_transfer(txn)]
        operating = [txn for txn in approved if not (txn.type == INCOME and self._is_hq_transfer(txn))]

        total_income, total_expense = sum_by_type(operating)
        budget_from_hq, _ = sum_by_type(transfers)

        current = [txn for txn in operating if windows.in_current(txn.date)]
        previous = [txn for txn in operating if windows.in_previous(txn.date)]
        current_income, current_expense = sum_by_type(current)
        previous_income, previous_expense = sum_by_type(previous)

        trend = _dense_months(transaction_points(operating), windows, self.settings.dashboard_trend_months)
        monthly_trend = tuple(
            MonthlyTrendPoint(name=_short_label(key), income=_q2(income), expense=_q2(expense))
            for key, income, expense in zip(trend.keys, trend.income, trend.expense)
        )

        return FinanceRollup(
            total_income=_q2(total_income),
            total_expense=_q2(total_expense),
            budget_from_hq=_q2(budget_from_hq),
            net_income=_q2(total_income + budget_from_hq - total_expense),
            income_change=percentage_change(current_income, previous_income),
            expense_change=percentage_change(current_expense, previous_expense),
            monthly_trend=monthly_trend,
            pending_transactions=status_counts["pending"],
            approved_transactions=status_counts["approved"],
            rejected_transactions=status_counts["rejected"],
            draft_transactions=status_counts["draft"],
            category_expenses=_category_shares(
                [txn for txn in current if txn.type == EXPENSE],
                [txn for txn in previous if txn.type == EXPENSE],
            ),
            category_incomes=_category_shares(
                [txn for txn in current if txn.type == INCOME],
                [txn for txn in previous if txn.type == INCOME],
            ),
        )

    # ---------- HR ----------
    def hr_rollup(self, facility_id: UUID, windows: MonthWindows) -> HrRollup:
        employees = self.source.fetch_employees(facility_id)
        leave_days: dict[UUID, int] = {}
        for leave in self.source.fetch_approved_leaves(facility_id):
            leave_days[leave.employee_id] = leave_days.get(leave.employee_id, 0) + leave.total_days

        active = [employee for employee in employees if employee.status == ACTIVE]
        # Approximation: employees who left since last month are not counted
        # in the previous-month snapshot.
        previous_active = [
            employee
            for employee in active
            if employee.joined_on is not None and employee.joined_on <= windows.previous_end
        ]

        return HrRollup(
            total_employees=len(employees),
            active_employees=len(active),
            leave_count=sum(1 for employee in employees if employee.status == ON_LEAVE),
            total_salaries=_q2(sum((employee.salary for employee in active), ZERO)),
            employee_change=percentage_change(len(active), len(previous_active)),
            employee_details=tuple(
                EmployeeDetail(
                    id=employee.id,
                    name=employee.full_name,
                    department=employee.department or NO_VALUE,
                    position=employee.position or NO_VALUE,
                    status=employee.status,
                    join_date=employee.joined_on,
                    leave_days=leave_days.get(employee.id, 0),
                    salary=_q2(employee.salary),
                )
                for employee in employees
            ),
        )

    # ---------- Projects ----------
    def projects_rollup(self, facility_id: UUID, windows: MonthWindows) -> ProjectsRollup:
        projects = self.source.fetch_projects(facility_id)
        previous = [project for project in projects if project.start_date <= windows.previous_end]
        return ProjectsRollup(
            total_projects=len(projects),
            active_projects=sum(1 for project in projects if project.status == ACTIVE),
            completed_projects=sum(1 for project in projects if project.status == COMPLETED),
            total_budget=_q2(sum((project.budget for project in projects), ZERO)),
            total_spent=_q2(sum((project.spent for project in projects), ZERO)),
            project_change=percentage_change(len(projects), len(previous)),
        )

    # ---------- Qurban ----------
    @staticmethod
    def _paid(donations: Iterable[DonationRecord]) -> list[DonationRecord]:
        return [donation for donation in donations if donation.payment_status == PAID]

    def qurban_rollup(self, facility_id: UUID, windows: MonthWindows) -> QurbanRollup:
        paid = self._paid(self.source.fetch_donations(facility_id))
        campaigns = self.source.fetch_campaigns(facility_id)
        distributions = self.source.fetch_distributions(facility_id)

        current = [donation for donation in paid if windows.in_current(donation.created_on)]
        previous = [donation for donation in paid if windows.in_previous(donation.created_on)]

        return QurbanRollup(
            total_shares=sum(donation.share_count for donation in paid),
            total_donations=_q2(sum((donation.amount_in_base_currency for donation in paid), ZERO)),
            slaughtered_count=sum(campaign.completed_animals for campaign in campaigns),
            target_animals=sum(campaign.target_animals for campaign in campaigns),
            distributed_count=sum(record.package_count for record in distributions),
            share_change=percentage_change(
                sum(donation.share_count for donation in current),
                sum(donation.share_count for donation in previous),
            ),
            donation_change=percentage_change(
                sum((donation.amount_in_base_currency for donation in current), ZERO),
                sum((donation.amount_in_base_currency for donation in previous), ZERO),
            ),
        )

    # ---------- Donations ----------
    def donations_rollup(self, facility_id: UUID, windows: MonthWindows) -> DonationsRollup:
        donations = self.source.fetch_donations(facility_id)
        paid = self._paid(donations)
        trend = _dense_months(
            [BucketPoint(on=donation.created_on, income=donation.amount_in_base_currency) for donation in paid],
            windows,
            self.settings.dashboard_trend_months,
        )
        current_amount = sum(
            (donation.amount_in_base_currency for donation in paid if windows.in_current(donation.created_on)),
            ZERO,
        )
        previous_amount = sum(
            (donation.amount_in_base_currency for donation in paid if windows.in_previous(donation.created_on)),
            ZERO,
        )
        return DonationsRollup(
            total_amount=_q2(sum((donation.amount_in_base_currency for donation in paid), ZERO)),
            donor_count=len(donations),
            monthly_trend=tuple(
                AmountTrendPoint(name=_short_label(key), amount=_q2(amount))
                for key, amount in zip(trend.keys, trend.income)
            ),
            amount_change=percentage_change(current_amount, previous_amount),
        )

    # ---------- Serialization ----------
    @staticmethod
    def serialize_summary(summary: DashboardSummary) -> dict[str, object]:
        def shares(items: Sequence[CategoryShare]) -> list[dict[str, str]]:
            return [
                {
                    "category": item.category,
                    "amount": str(item.amount),
                    "percentage": str(item.percentage),
                    "change": str(item.change),
                }
                for item in items
            ]

        finance = summary.finance
        hr = summary.hr
        projects = summary.projects
        qurban = summary.qurban
        donations = summary.donations
        return {
            "facility_id": str(summary.facility_id),
            "as_of": summary.as_of.isoformat(),
            "finance": {
                "total_income": str(finance.total_income),
                "total_expense": str(finance.total_expense),
                "budget_from_hq": str(finance.budget_from_hq),
                "net_income": str(finance.net_income),
                "income_change": str(finance.income_change),
                "expense_change": str(finance.expense_change),
                "monthly_trend": [
                    {"name": point.name, "income": str(point.income), "expense": str(point.expense)}
                    for point in finance.monthly_trend
                ],
                "pending_transactions": finance.pending_transactions,
                "approved_transactions": finance.approved_transactions,
                "rejected_transactions": finance.rejected_transactions,
                "draft_transactions": finance.draft_transactions,
                "category_expenses": shares(finance.category_expenses),
                "category_incomes": shares(finance.category_incomes),
            },
            "hr": {
                "total_employees": hr.total_employees,
                "active_employees": hr.active_employees,
                "leave_count": hr.leave_count,
                "total_salaries": str(hr.total_salaries),
                "employee_change": str(hr.employee_change),
                "employee_details": [
                    {
                        "id": str(detail.id),
                        "name": detail.name,
                        "department": detail.department,
                        "position": detail.position,
                        "status": detail.status,
                        "join_date": detail.join_date.isoformat() if detail.join_date else None,
                        "leave_days": detail.leave_days,
                        "salary": str(detail.salary),
                    }
                    for detail in hr.employee_details
                ],
            },
            "projects": {
                "total_projects": projects.total_projects,
                "active_projects": projects.active_projects,
                "completed_projects": projects.completed_projects,
                "total_budget": str(projects.total_budget),
                "total_spent": str(projects.total_spent),
                "project_change": str(projects.project_change),
            },
            "qurban": {
                "total_shares": qurban.total_shares,
                "total_donations": str(qurban.total_donations),
                "slaughtered_count": qurban.slaughtered_count,
                "target_animals": qurban.target_animals,
                "distributed_count": qurban.distributed_count,
                "share_change": str(qurban.share_change),
                "donation_change": str(qurban.donation_change),
            },
            "donations": {
                "total_amount": str(donations.total_amount),
                "donor_count": donations.donor_count,
                "monthly_trend": [
                    {"name": point.name, "amount": str(point.amount)} for point in donations.monthly_trend
                ],
                "amount_change": str(donations.amount_change),
            },
        }
