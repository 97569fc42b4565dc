"""Aggregation primitives shared by reports and the dashboard.

Every function here is pure: it reads immutable record snapshots and returns
new values, so each step can be exercised on its own.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from ngo_reporting.services.reporting_types import (
    CategoryReportRow,
    Granularity,
    ReportParameter,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
HUNDRED = Decimal("100")

REALIZED_STATUS = "approved"
INCOME = "income"
EXPENSE = "expense"
FALLBACK_DIMENSION_NAME = "Diğer"

MONTH_LABELS = (
    "Ocak",
    "Şubat",
    "Mart",
    "Nisan",
    "Mayıs",
    "Haziran",
    "Temmuz",
    "Ağustos",
    "Eylül",
    "Ekim",
    "Kasım",
    "Aralık",
)
SHORT_MONTH_LABELS = ("Oca", "Şub", "Mar", "Nis", "May", "Haz", "Tem", "Ağu", "Eyl", "Eki", "Kas", "Ara")


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def _allocate_shares(parts: list[Decimal], whole: Decimal) -> list[Decimal]:
    """Percent shares rounded to 0.01 that add up to exactly 100.

    Largest-remainder rounding: every share is floored to whole hundredths
    and the leftover hundredths go to the largest fractional remainders,
    earliest entry first on ties.
    """

    if whole == ZERO:
        return [ZERO for _ in parts]
    exact = [part / whole * HUNDRED / Q2 for part in parts]
    floors = [int(value) for value in exact]
    leftover = int(HUNDRED / Q2) - sum(floors)
    by_remainder = sorted(range(len(parts)), key=lambda index: (-(exact[index] - floors[index]), index))
    for index in by_remainder[:leftover]:
        floors[index] += 1
    return [_q2(Decimal(hundredths) * Q2) for hundredths in floors]


# ---------- Currency ----------
def normalize_amount(
    amount: Decimal,
    currency: str,
    exchange_rate: Decimal | None,
    *,
    base_currency: str,
) -> Decimal:
    """Convert a native amount into the base currency.

    Base-currency rows ignore the stored rate entirely. A missing or zero rate
    on a foreign-currency row passes the amount through unchanged, which is a
    known precision risk rather than an error.
    """

    if currency.upper() == base_currency.upper():
        return amount
    if not exchange_rate:
        logger.debug(
            "Exchange rate missing, using rate 1.",
            extra={"currency": currency, "base_currency": base_currency},
        )
        return amount
    return amount * exchange_rate


# ---------- Status / filter step ----------
def realized_transactions(
    transactions: Iterable[TransactionRecord],
    *,
    parameters: ReportParameter | None = None,
    types: frozenset[str] | None = None,
) -> tuple[TransactionRecord, ...]:
    """Single filter step applied before any aggregation runs.

    Keeps approved rows only, optionally narrowed to ``types`` and to the
    category/project/vendor filters carried by ``parameters``.
    """

    selected: list[TransactionRecord] = []
    for txn in transactions:
        if txn.status != REALIZED_STATUS:
            continue
        if types is not None and txn.type not in types:
            continue
        if parameters is not None:
            if parameters.category_ids and txn.category_id not in parameters.category_ids:
                continue
            if parameters.project_ids and txn.project_id not in parameters.project_ids:
                continue
            if parameters.vendor_ids and txn.vendor_customer_id not in parameters.vendor_ids:
                continue
        selected.append(txn)
    return tuple(selected)


def sum_by_type(transactions: Iterable[TransactionRecord]) -> tuple[Decimal, Decimal]:
    income = ZERO
    expense = ZERO
    for txn in transactions:
        if txn.type == INCOME:
            income += txn.amount_in_base_currency
        elif txn.type == EXPENSE:
            expense += txn.amount_in_base_currency
    return income, expense


# ---------- Time buckets ----------
@dataclass(frozen=True, slots=True)
class BucketPoint:
    on: date
    income: Decimal = ZERO
    expense: Decimal = ZERO


@dataclass(frozen=True, slots=True)
class BucketSeries:
    keys: tuple[str, ...]
    labels: tuple[str, ...]
    income: tuple[Decimal, ...]
    expense: tuple[Decimal, ...]

    @property
    def total_income(self) -> Decimal:
        return sum(self.income, ZERO)

    @property
    def total_expense(self) -> Decimal:
        return sum(self.expense, ZERO)


def month_start(value: date) -> date:
    return date(value.year, value.month, 1)


def shift_month(value: date, months: int) -> date:
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_end(value: date) -> date:
    return shift_month(value, 1) - timedelta(days=1)


def month_sequence(start_month: date, end_month: date) -> list[date]:
    current = month_start(start_month)
    end = month_start(end_month)
    months: list[date] = []
    while current <= end:
        months.append(current)
        current = shift_month(current, 1)
    return months


def period_key(value: date, granularity: Granularity) -> str:
    if granularity is Granularity.DAY:
        return value.isoformat()
    return f"{value.year:04d}-{value.month:02d}"


def period_label(key: str, granularity: Granularity) -> str:
    if granularity is Granularity.DAY:
        year, month, day = key.split("-")
        return f"{day}.{month}"
    return MONTH_LABELS[int(key[5:7]) - 1]


def _period_keys_between(start: date, end: date, granularity: Granularity) -> list[str]:
    if granularity is Granularity.DAY:
        return [(start + timedelta(days=offset)).isoformat() for offset in range((end - start).days + 1)]
    return [period_key(month, granularity) for month in month_sequence(start, end)]


def bucket_points(
    points: Iterable[BucketPoint],
    granularity: Granularity,
    *,
    fill_empty: bool = False,
    start: date | None = None,
    end: date | None = None,
) -> BucketSeries:
    """Accumulate points into chronologically ordered day or month buckets.

    By default only periods holding at least one point are emitted. With
    ``fill_empty`` every period between ``start`` and ``end`` (or the first
    and last point) is emitted, zero-valued where there was no activity.
    """

    totals: dict[str, tuple[Decimal, Decimal]] = {}
    first: date | None = None
    last: date | None = None
    for point in points:
        key = period_key(point.on, granularity)
        income, expense = totals.get(key, (ZERO, ZERO))
        totals[key] = (income + point.income, expense + point.expense)
        first = point.on if first is None or point.on < first else first
        last = point.on if last is None or point.on > last else last

    if fill_empty:
        range_start = start or first
        range_end = end or last
        if range_start is not None and range_end is not None and range_start <= range_end:
            for key in _period_keys_between(range_start, range_end, granularity):
                totals.setdefault(key, (ZERO, ZERO))

    keys = sorted(totals)
    return BucketSeries(
        keys=tuple(keys),
        labels=tuple(period_label(key, granularity) for key in keys),
        income=tuple(totals[key][0] for key in keys),
        expense=tuple(totals[key][1] for key in keys),
    )


def transaction_points(transactions: Iterable[TransactionRecord]) -> list[BucketPoint]:
    points: list[BucketPoint] = []
    for txn in transactions:
        if txn.type == INCOME:
            points.append(BucketPoint(on=txn.date, income=txn.amount_in_base_currency))
        elif txn.type == EXPENSE:
            points.append(BucketPoint(on=txn.date, expense=txn.amount_in_base_currency))
        else:
            # transfers still open their period
            points.append(BucketPoint(on=txn.date))
    return points


def bucket_transactions(
    transactions: Iterable[TransactionRecord],
    granularity: Granularity,
    *,
    fill_empty: bool = False,
    start: date | None = None,
    end: date | None = None,
) -> BucketSeries:
    return bucket_points(
        transaction_points(transactions),
        granularity,
        fill_empty=fill_empty,
        start=start,
        end=end,
    )


# ---------- Dimensions ----------
@dataclass(frozen=True, slots=True)
class DimensionTotals:
    name: str
    income: Decimal = ZERO
    expense: Decimal = ZERO

    @property
    def magnitude(self) -> Decimal:
        return abs(self.income) + abs(self.expense)


def aggregate_by_dimension(
    transactions: Iterable[TransactionRecord],
    key_fn: Callable[[TransactionRecord], Hashable | None],
    name_fn: Callable[[TransactionRecord], str | None],
    *,
    known: Mapping[Hashable, str] | None = None,
) -> dict[Hashable, DimensionTotals]:
    """Group base-currency amounts by a dimension key.

    Every ``known`` key is seeded with zero totals first. Transactions whose
    key is not known open a new entry named from the transaction itself, so
    rows pointing at deleted dimensions are still counted. Rows whose key is
    ``None`` are skipped.
    """

    totals: dict[Hashable, DimensionTotals] = {
        key: DimensionTotals(name=name) for key, name in (known or {}).items()
    }
    for txn in transactions:
        key = key_fn(txn)
        if key is None:
            continue
        current = totals.get(key) or DimensionTotals(name=name_fn(txn) or FALLBACK_DIMENSION_NAME)
        if txn.type == INCOME:
            current = DimensionTotals(current.name, current.income + txn.amount_in_base_currency, current.expense)
        elif txn.type == EXPENSE:
            current = DimensionTotals(current.name, current.income, current.expense + txn.amount_in_base_currency)
        totals[key] = current
    return totals


def build_dimension_rows(
    totals: Mapping[Hashable, DimensionTotals],
    *,
    always_shown: Iterable[str] = (),
    previous: Mapping[Hashable, DimensionTotals] | None = None,
) -> tuple[CategoryReportRow, ...]:
    """Turn grouped totals into sorted report rows.

    Zero-activity entries are dropped unless their name is in
    ``always_shown``. Percentages are each row's share of the summed
    ``|income| + |expense|``, allocated so they add up to exactly 100; rows
    sort by descending ``|income + expense|``.
    """

    allow_list = set(always_shown)
    kept = [
        (key, item)
        for key, item in totals.items()
        if item.income != ZERO or item.expense != ZERO or item.name in allow_list
    ]
    grand_total = sum((item.magnitude for _, item in kept), ZERO)
    shares = _allocate_shares([item.magnitude for _, item in kept], grand_total)

    rows: list[CategoryReportRow] = []
    for (key, item), share in zip(kept, shares):
        diff: Decimal | None = None
        if previous is not None:
            prior = previous.get(key)
            diff = percentage_change(item.magnitude, prior.magnitude if prior is not None else ZERO)
        rows.append(
            CategoryReportRow(
                category=item.name,
                income=_q2(item.income),
                expense=_q2(item.expense),
                net=_q2(item.income - item.expense),
                percentage=share,
                previous_period_diff=diff,
            )
        )
    rows.sort(key=lambda row: (-abs(row.income + row.expense), row.category))
    return tuple(rows)


# ---------- Trends ----------
def percentage_change(current: Decimal | int, previous: Decimal | int) -> Decimal:
    """Period-over-period change in percent.

    A zero base reports 100 for new activity and 0 otherwise.
    """

    current = Decimal(current)
    previous = Decimal(previous)
    if previous == ZERO:
        return Decimal("100.00") if current > ZERO else ZERO
    return _q2((current - previous) / previous * HUNDRED)
