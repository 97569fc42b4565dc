"""Immutable input snapshots and result structures of the reporting engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

ZERO = Decimal("0.00")


class ReportType(str, enum.Enum):
    INCOME_EXPENSE = "income-expense"
    CASH_FLOW = "cash-flow"
    BUDGET_REALIZATION = "budget-realization"
    CATEGORY_ANALYSIS = "category-analysis"
    VENDOR_ANALYSIS = "vendor-analysis"
    PROJECT_FINANCIAL = "project-financial"


class Granularity(str, enum.Enum):
    DAY = "day"
    MONTH = "month"


# ---------- Input records ----------
@dataclass(frozen=True, slots=True)
class TransactionRecord:
    id: UUID
    type: str
    date: date
    amount: Decimal
    currency: str
    exchange_rate: Decimal | None
    amount_in_base_currency: Decimal
    status: str
    facility_id: UUID
    category_id: UUID | None = None
    category_name: str | None = None
    vendor_customer_id: UUID | None = None
    vendor_customer_name: str | None = None
    project_id: UUID | None = None
    project_name: str | None = None
    description: str = ""


@dataclass(frozen=True, slots=True)
class BudgetRecord:
    id: UUID
    scope: str
    scope_id: UUID | None
    amount: Decimal
    start_date: date
    end_date: date
    status: str


@dataclass(frozen=True, slots=True)
class CategoryRecord:
    id: UUID
    name: str
    type: str


@dataclass(frozen=True, slots=True)
class ProjectRecord:
    id: UUID
    name: str
    status: str
    start_date: date
    budget: Decimal
    spent: Decimal


@dataclass(frozen=True, slots=True)
class EmployeeRecord:
    id: UUID
    first_name: str
    last_name: str
    department: str | None
    position: str | None
    status: str
    hire_date: date | None
    created_at: datetime | None
    salary: Decimal

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def joined_on(self) -> date | None:
        if self.hire_date is not None:
            return self.hire_date
        return self.created_at.date() if self.created_at is not None else None


@dataclass(frozen=True, slots=True)
class LeaveRecord:
    id: UUID
    employee_id: UUID
    total_days: int


@dataclass(frozen=True, slots=True)
class DonationRecord:
    id: UUID
    donor_name: str
    payment_status: str
    share_count: int
    amount: Decimal
    amount_in_base_currency: Decimal
    created_on: date


@dataclass(frozen=True, slots=True)
class CampaignRecord:
    id: UUID
    name: str
    target_animals: int
    completed_animals: int


@dataclass(frozen=True, slots=True)
class DistributionRecord:
    id: UUID
    distribution_date: date
    package_count: int


# ---------- Request ----------
@dataclass(frozen=True, slots=True)
class ReportParameter:
    facility_id: UUID | None
    start_date: date
    end_date: date
    compare_start_date: date | None = None
    compare_end_date: date | None = None
    group_by: Granularity = Granularity.MONTH
    category_ids: frozenset[UUID] = frozenset()
    project_ids: frozenset[UUID] = frozenset()
    vendor_ids: frozenset[UUID] = frozenset()

    @property
    def has_comparison(self) -> bool:
        return self.compare_start_date is not None and self.compare_end_date is not None


# ---------- Results ----------
@dataclass(frozen=True, slots=True)
class CategoryReportRow:
    category: str
    income: Decimal
    expense: Decimal
    net: Decimal
    percentage: Decimal
    previous_period_diff: Decimal | None = None


@dataclass(frozen=True, slots=True)
class ReportSummary:
    total_income: Decimal = ZERO
    total_expense: Decimal = ZERO
    net: Decimal = ZERO
    income_change: Decimal | None = None
    expense_change: Decimal | None = None
    variance: Decimal | None = None
    variance_percentage: Decimal | None = None


@dataclass(frozen=True, slots=True)
class ChartData:
    labels: tuple[str, ...] = ()
    income: tuple[Decimal, ...] = ()
    expense: tuple[Decimal, ...] = ()


@dataclass(frozen=True, slots=True)
class ReportResult:
    report_type: ReportType
    summary: ReportSummary = field(default_factory=ReportSummary)
    chart_data: ChartData = field(default_factory=ChartData)
    table_data: tuple[CategoryReportRow, ...] = ()


@dataclass(frozen=True, slots=True)
class MonthlyTrendPoint:
    name: str
    income: Decimal = ZERO
    expense: Decimal = ZERO


@dataclass(frozen=True, slots=True)
class AmountTrendPoint:
    name: str
    amount: Decimal = ZERO


@dataclass(frozen=True, slots=True)
class CategoryShare:
    category: str
    amount: Decimal
    percentage: Decimal
    change: Decimal


@dataclass(frozen=True, slots=True)
class FinanceRollup:
    total_income: Decimal
    total_expense: Decimal
    budget_from_hq: Decimal
    net_income: Decimal
    income_change: Decimal
    expense_change: Decimal
    monthly_trend: tuple[MonthlyTrendPoint, ...]
    pending_transactions: int
    approved_transactions: int
    rejected_transactions: int
    draft_transactions: int
    category_expenses: tuple[CategoryShare, ...]
    category_incomes: tuple[CategoryShare, ...]


@dataclass(frozen=True, slots=True)
class EmployeeDetail:
    id: UUID
    name: str
    department: str
    position: str
    status: str
    join_date: date | None
    leave_days: int
    salary: Decimal


@dataclass(frozen=True, slots=True)
class HrRollup:
    total_employees: int
    active_employees: int
    leave_count: int
    total_salaries: Decimal
    employee_change: Decimal
    employee_details: tuple[EmployeeDetail, ...]


@dataclass(frozen=True, slots=True)
class ProjectsRollup:
    total_projects: int
    active_projects: int
    completed_projects: int
    total_budget: Decimal
    total_spent: Decimal
    project_change: Decimal


@dataclass(frozen=True, slots=True)
class QurbanRollup:
    total_shares: int
    total_donations: Decimal
    slaughtered_count: int
    target_animals: int
    distributed_count: int
    share_change: Decimal
    donation_change: Decimal


@dataclass(frozen=True, slots=True)
class DonationsRollup:
    total_amount: Decimal
    donor_count: int
    monthly_trend: tuple[AmountTrendPoint, ...]
    amount_change: Decimal


@dataclass(frozen=True, slots=True)
class DashboardSummary:
    facility_id: UUID
    as_of: date
    finance: FinanceRollup
    hr: HrRollup
    projects: ProjectsRollup
    qurban: QurbanRollup
    donations: DonationsRollup
