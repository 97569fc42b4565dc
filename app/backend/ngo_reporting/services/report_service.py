"""Financial report generation over facility transactions, budgets and projects."""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import assert_never

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ngo_reporting.core.config import Settings, get_settings
from ngo_reporting.repositories.reporting_repository import ReportingDataSource, ReportingRepository
from ngo_reporting.services.aggregation import (
    EXPENSE,
    INCOME,
    ZERO,
    BucketPoint,
    BucketSeries,
    DimensionTotals,
    aggregate_by_dimension,
    bucket_points,
    bucket_transactions,
    build_dimension_rows,
    percentage_change,
    realized_transactions,
    sum_by_type,
)
from ngo_reporting.services.reporting_types import (
    BudgetRecord,
    CategoryReportRow,
    ChartData,
    Granularity,
    ReportParameter,
    ReportResult,
    ReportSummary,
    ReportType,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

UNCATEGORIZED_KEY = "uncategorized"
UNKNOWN_NAME = "Bilinmeyen"
# Budgets in these states never count as planned spend.
EXCLUDED_BUDGET_STATUSES = frozenset({"draft", "cancelled"})

EXPENSE_ONLY = frozenset({EXPENSE})
Q2 = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class ReportDescriptor:
    id: ReportType
    name: str
    description: str
    category: str
    icon: str


REPORT_CATALOGUE: tuple[ReportDescriptor, ...] = (
    ReportDescriptor(
        id=ReportType.INCOME_EXPENSE,
        name="Gelir-Gider Raporu",
        description="Dönemsel gelir ve gider karşılaştırması, kategori bazlı detaylı analiz",
        category="financial",
        icon="ChartBar",
    ),
    ReportDescriptor(
        id=ReportType.CASH_FLOW,
        name="Nakit Akış Raporu",
        description="Nakit giriş-çıkış analizi",
        category="financial",
        icon="TrendUp",
    ),
    ReportDescriptor(
        id=ReportType.BUDGET_REALIZATION,
        name="Bütçe Gerçekleşme Raporu",
        description="Planlanan bütçe ile gerçekleşen harcamaların karşılaştırması",
        category="budget",
        icon="Target",
    ),
    ReportDescriptor(
        id=ReportType.CATEGORY_ANALYSIS,
        name="Kategori Bazlı Analiz",
        description="Harcamaların kategorilere göre detaylı dağılımı",
        category="category",
        icon="PieChart",
    ),
    ReportDescriptor(
        id=ReportType.VENDOR_ANALYSIS,
        name="Tedarikçi Analizi",
        description="Tedarikçi bazında harcama analizi",
        category="financial",
        icon="Users",
    ),
    ReportDescriptor(
        id=ReportType.PROJECT_FINANCIAL,
        name="Proje Finansal Raporu",
        description="Proje bazında gelir, gider ve maliyet analizi",
        category="financial",
        icon="FolderOpen",
    ),
)


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def list_report_types() -> list[ReportDescriptor]:
    return list(REPORT_CATALOGUE)


def _category_key(txn: TransactionRecord) -> Hashable:
    return txn.category_id or UNCATEGORIZED_KEY


def _category_name(txn: TransactionRecord) -> str | None:
    return txn.category_name


def _chart_from_series(series: BucketSeries) -> ChartData:
    return ChartData(
        labels=series.labels,
        income=tuple(_q2(value) for value in series.income),
        expense=tuple(_q2(value) for value in series.expense),
    )


def _chart_from_rows(rows: Sequence[CategoryReportRow]) -> ChartData:
    return ChartData(
        labels=tuple(row.category for row in rows),
        income=tuple(row.income for row in rows),
        expense=tuple(row.expense for row in rows),
    )


class ReportService:
    """Builds one of the six fixed report kinds for a facility and window."""

    def __init__(self, source: ReportingDataSource, *, settings: Settings | None = None) -> None:
        self.source = source
        self.settings = settings or get_settings()

    @classmethod
    def from_session(cls, db: Session) -> ReportService:
        return cls(ReportingRepository(db))

    # ---------- Validation ----------
    @staticmethod
    def resolve_report_type(value: ReportType | str) -> ReportType:
        if isinstance(value, ReportType):
            return value
        try:
            return ReportType(value.strip().lower())
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown report type: {value}.",
            ) from exc

    @staticmethod
    def validate_parameters(parameters: ReportParameter) -> None:
        problem: str | None = None
        if parameters.facility_id is None:
            problem = "facility_id is required."
        elif parameters.end_date < parameters.start_date:
            problem = "end_date must be greater than or equal to start_date."
        elif (parameters.compare_start_date is None) != (parameters.compare_end_date is None):
            problem = "compare_start_date and compare_end_date must be provided together."
        elif parameters.has_comparison and parameters.compare_end_date < parameters.compare_start_date:
            problem = "compare_end_date must be greater than or equal to compare_start_date."

        if problem is not None:
            logger.warning("Rejected report parameters.", extra={"reason": problem})
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=problem)

    # ---------- Dispatch ----------
    def generate_report(self, report_type: ReportType | str, parameters: ReportParameter) -> ReportResult:
        kind = self.resolve_report_type(report_type)
        self.validate_parameters(parameters)
        logger.info(
            "Generating report.",
            extra={
                "report_type": kind.value,
                "facility_id": str(parameters.facility_id),
                "start_date": parameters.start_date.isoformat(),
                "end_date": parameters.end_date.isoformat(),
            },
        )

        try:
            match kind:
                case ReportType.INCOME_EXPENSE:
                    result = self.income_expense_report(parameters)
                case ReportType.CASH_FLOW:
                    result = self.cash_flow_report(parameters)
                case ReportType.BUDGET_REALIZATION:
                    result = self.budget_realization_report(parameters)
                case ReportType.CATEGORY_ANALYSIS:
                    result = self.category_analysis_report(parameters)
                case ReportType.VENDOR_ANALYSIS:
                    result = self.vendor_analysis_report(parameters)
                case ReportType.PROJECT_FINANCIAL:
                    result = self.project_financial_report(parameters)
                case _:
                    assert_never(kind)
        except SQLAlchemyError as exc:
            logger.error(
                "Data access failed while generating report.",
                extra={"report_type": kind.value, "facility_id": str(parameters.facility_id)},
                exc_info=True,
            )
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Failed to load data for report '{kind.value}'.",
            ) from exc

        logger.info(
            "Report generated.",
            extra={"report_type": kind.value, "rows": len(result.table_data), "buckets": len(result.chart_data.labels)},
        )
        return result

    # ---------- Shared steps ----------
    def _window_transactions(
        self,
        parameters: ReportParameter,
        start_date: date,
        end_date: date,
        *,
        types: frozenset[str] | None = None,
    ) -> tuple[TransactionRecord, ...]:
        rows = self.source.fetch_transactions(parameters.facility_id, start_date, end_date)
        return realized_transactions(rows, parameters=parameters, types=types)

    def _current_and_previous(
        self,
        parameters: ReportParameter,
        *,
        types: frozenset[str] | None = None,
    ) -> tuple[tuple[TransactionRecord, ...], tuple[TransactionRecord, ...] | None]:
        current = self._window_transactions(parameters, parameters.start_date, parameters.end_date, types=types)
        if not parameters.has_comparison:
            return current, None
        previous = self._window_transactions(
            parameters,
            parameters.compare_start_date,
            parameters.compare_end_date,
            types=types,
        )
        return current, previous

    @staticmethod
    def _summary(
        total_income: Decimal,
        total_expense: Decimal,
        previous: Sequence[TransactionRecord] | None,
    ) -> ReportSummary:
        income_change: Decimal | None = None
        expense_change: Decimal | None = None
        if previous is not None:
            previous_income, previous_expense = sum_by_type(previous)
            income_change = percentage_change(total_income, previous_income)
            expense_change = percentage_change(total_expense, previous_expense)
        return ReportSummary(
            total_income=_q2(total_income),
            total_expense=_q2(total_expense),
            net=_q2(total_income - total_expense),
            income_change=income_change,
            expense_change=expense_change,
        )

    def _dimension_report(
        self,
        kind: ReportType,
        parameters: ReportParameter,
        *,
        key_fn: Callable[[TransactionRecord], Hashable | None],
        name_fn: Callable[[TransactionRecord], str | None],
        types: frozenset[str] | None = None,
        known: dict[Hashable, str] | None = None,
        always_shown: Sequence[str] = (),
    ) -> ReportResult:
        current, previous = self._current_and_previous(parameters, types=types)
        totals = aggregate_by_dimension(current, key_fn, name_fn, known=known)
        previous_totals = aggregate_by_dimension(previous, key_fn, name_fn) if previous is not None else None
        rows = build_dimension_rows(totals, always_shown=always_shown, previous=previous_totals)

        total_income = sum((item.income for item in totals.values()), ZERO)
        total_expense = sum((item.expense for item in totals.values()), ZERO)
        previous_tagged = None
        if previous is not None:
            previous_tagged = [txn for txn in previous if key_fn(txn) is not None]
        return ReportResult(
            report_type=kind,
            summary=self._summary(total_income, total_expense, previous_tagged),
            chart_data=_chart_from_rows(rows),
            table_data=rows,
        )

    # ---------- Report kinds ----------
    def income_expense_report(self, parameters: ReportParameter) -> ReportResult:
        current, previous = self._current_and_previous(parameters)
        series = bucket_transactions(
            current,
            parameters.group_by,
            fill_empty=self.settings.fill_empty_buckets,
            start=parameters.start_date,
            end=parameters.end_date,
        )
        total_income, total_expense = sum_by_type(current)

        known = {
            category.id: category.name
            for category in self.source.fetch_categories(parameters.facility_id)
            if not parameters.category_ids or category.id in parameters.category_ids
        }
        totals = aggregate_by_dimension(current, _category_key, _category_name, known=known)
        previous_totals = (
            aggregate_by_dimension(previous, _category_key, _category_name) if previous is not None else None
        )
        rows = build_dimension_rows(
            totals,
            always_shown=self.settings.always_shown_categories,
            previous=previous_totals,
        )
        return ReportResult(
            report_type=ReportType.INCOME_EXPENSE,
            summary=self._summary(total_income, total_expense, previous),
            chart_data=_chart_from_series(series),
            table_data=rows,
        )

    def cash_flow_report(self, parameters: ReportParameter) -> ReportResult:
        # TODO: replace with inflow/outflow timing once opening and closing balances are defined.
        logger.debug("cash-flow report mirrors income-expense.")
        return replace(self.income_expense_report(parameters), report_type=ReportType.CASH_FLOW)

    def budget_realization_report(self, parameters: ReportParameter) -> ReportResult:
        """Planned against realized spend.

        ``total_income`` carries the budgeted amount and ``total_expense`` the
        approved spend. ``net`` equals ``variance`` (actual minus budgeted), so
        overspending is positive.
        """

        budgets = [
            budget
            for budget in self.source.fetch_all_budgets(parameters.facility_id)
            if budget.status not in EXCLUDED_BUDGET_STATUSES
            and budget.start_date <= parameters.end_date
            and budget.end_date >= parameters.start_date
        ]
        expenses, previous = self._current_and_previous(parameters, types=EXPENSE_ONLY)
        categories = {category.id: category.name for category in self.source.fetch_categories(parameters.facility_id)}

        budgeted = sum((budget.amount for budget in budgets), ZERO)
        _, actual = sum_by_type(expenses)
        variance = actual - budgeted
        variance_percentage = _q2(variance / budgeted * Decimal("100")) if budgeted > ZERO else ZERO

        series = bucket_points(
            [BucketPoint(on=budget.start_date, income=budget.amount) for budget in budgets]
            + [BucketPoint(on=txn.date, expense=txn.amount_in_base_currency) for txn in expenses],
            Granularity.MONTH,
            fill_empty=self.settings.fill_empty_buckets,
            start=parameters.start_date,
            end=parameters.end_date,
        )

        rows = self._budget_rows(budgets, expenses, categories)
        expense_change = None
        if previous is not None:
            _, previous_actual = sum_by_type(previous)
            expense_change = percentage_change(actual, previous_actual)

        return ReportResult(
            report_type=ReportType.BUDGET_REALIZATION,
            summary=ReportSummary(
                total_income=_q2(budgeted),
                total_expense=_q2(actual),
                net=_q2(variance),
                expense_change=expense_change,
                variance=_q2(variance),
                variance_percentage=variance_percentage,
            ),
            chart_data=_chart_from_series(series),
            table_data=rows,
        )

    @staticmethod
    def _budget_rows(
        budgets: Sequence[BudgetRecord],
        expenses: Sequence[TransactionRecord],
        categories: dict[Hashable, str],
    ) -> tuple[CategoryReportRow, ...]:
        planned: dict[Hashable, Decimal] = {}
        for budget in budgets:
            # category budgets only count when their category still exists
            if budget.scope != "category" or budget.scope_id not in categories:
                continue
            planned[budget.scope_id] = planned.get(budget.scope_id, ZERO) + budget.amount

        spent = aggregate_by_dimension(
            [txn for txn in expenses if txn.category_id in planned],
            lambda txn: txn.category_id,
            _category_name,
        )
        totals = {
            key: DimensionTotals(
                name=categories[key],
                income=amount,
                expense=spent[key].expense if key in spent else ZERO,
            )
            for key, amount in planned.items()
        }
        rows = build_dimension_rows(totals, always_shown=[item.name for item in totals.values()])
        realized: list[CategoryReportRow] = []
        for row in rows:
            deviation = None
            if row.income > ZERO:
                deviation = _q2(row.expense / row.income * Decimal("100") - Decimal("100"))
            realized.append(replace(row, previous_period_diff=deviation))
        return tuple(realized)

    def category_analysis_report(self, parameters: ReportParameter) -> ReportResult:
        return self._dimension_report(
            ReportType.CATEGORY_ANALYSIS,
            parameters,
            key_fn=_category_key,
            name_fn=lambda txn: txn.category_name or UNKNOWN_NAME,
            types=EXPENSE_ONLY,
        )

    def vendor_analysis_report(self, parameters: ReportParameter) -> ReportResult:
        return self._dimension_report(
            ReportType.VENDOR_ANALYSIS,
            parameters,
            key_fn=lambda txn: txn.vendor_customer_id,
            name_fn=lambda txn: txn.vendor_customer_name or UNKNOWN_NAME,
            types=EXPENSE_ONLY,
        )

    def project_financial_report(self, parameters: ReportParameter) -> ReportResult:
        projects = self.source.fetch_projects(parameters.facility_id)
        return self._dimension_report(
            ReportType.PROJECT_FINANCIAL,
            parameters,
            key_fn=lambda txn: txn.project_id,
            name_fn=lambda txn: txn.project_name,
            types=frozenset({INCOME, EXPENSE}),
            known={project.id: project.name for project in projects},
        )

    # ---------- Serialization ----------
    @staticmethod
    def serialize_report_type(descriptor: ReportDescriptor) -> dict[str, str]:
        return {
            "id": descriptor.id.value,
            "name": descriptor.name,
            "description": descriptor.description,
            "category": descriptor.category,
            "icon": descriptor.icon,
        }

    @staticmethod
    def serialize_report_result(result: ReportResult) -> dict[str, object]:
        def optional(value: Decimal | None) -> str | None:
            return str(value) if value is not None else None

        summary = result.summary
        return {
            "report_type": result.report_type.value,
            "summary": {
                "total_income": str(summary.total_income),
                "total_expense": str(summary.total_expense),
                "net": str(summary.net),
                "income_change": optional(summary.income_change),
                "expense_change": optional(summary.expense_change),
                "variance": optional(summary.variance),
                "variance_percentage": optional(summary.variance_percentage),
            },
            "chart_data": {
                "labels": list(result.chart_data.labels),
                "income": [str(value) for value in result.chart_data.income],
                "expense": [str(value) for value in result.chart_data.expense],
            },
            "table_data": [
                {
                    "category": row.category,
                    "income": str(row.income),
                    "expense": str(row.expense),
                    "net": str(row.net),
                    "percentage": str(row.percentage),
                    "previous_period_diff": optional(row.previous_period_diff),
                }
                for row in result.table_data
            ],
        }
