from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import date
from decimal import Decimal

import pytest

from ngo_reporting.services.aggregation import (
    BucketPoint,
    aggregate_by_dimension,
    bucket_points,
    bucket_transactions,
    build_dimension_rows,
    month_end,
    normalize_amount,
    percentage_change,
    realized_transactions,
    shift_month,
)
from ngo_reporting.services.reporting_types import Granularity, ReportParameter, TransactionRecord


def test_normalize_amount_converts_foreign_currency() -> None:
    assert normalize_amount(Decimal("50"), "USD", Decimal("30"), base_currency="TRY") == Decimal("1500")


def test_normalize_amount_ignores_rate_for_base_currency() -> None:
    assert normalize_amount(Decimal("250.00"), "try", Decimal("42"), base_currency="TRY") == Decimal("250.00")


def test_normalize_amount_passes_through_missing_rate() -> None:
    assert normalize_amount(Decimal("80"), "EUR", None, base_currency="TRY") == Decimal("80")
    assert normalize_amount(Decimal("80"), "EUR", Decimal("0"), base_currency="TRY") == Decimal("80")


def test_realized_transactions_keeps_only_approved(txn: Callable[..., TransactionRecord]) -> None:
    rows = [
        txn(type="income", on=date(2026, 2, 1), amount="100"),
        txn(type="income", on=date(2026, 2, 2), amount="5000", status="pending"),
        txn(type="expense", on=date(2026, 2, 3), amount="40", status="rejected"),
        txn(type="expense", on=date(2026, 2, 4), amount="60", status="draft"),
    ]

    selected = realized_transactions(rows)

    assert [item.amount for item in selected] == [Decimal("100")]


def test_realized_transactions_applies_dimension_filters(txn: Callable[..., TransactionRecord]) -> None:
    wanted = uuid.uuid4()
    rows = [
        txn(type="expense", on=date(2026, 2, 1), amount="10", category_id=wanted),
        txn(type="expense", on=date(2026, 2, 1), amount="20", category_id=uuid.uuid4()),
        txn(type="income", on=date(2026, 2, 1), amount="30", category_id=wanted),
    ]
    parameters = ReportParameter(
        facility_id=uuid.uuid4(),
        start_date=date(2026, 2, 1),
        end_date=date(2026, 2, 28),
        category_ids=frozenset({wanted}),
    )

    selected = realized_transactions(rows, parameters=parameters, types=frozenset({"expense"}))

    assert [item.amount for item in selected] == [Decimal("10")]


def test_bucket_totals_match_input_totals(txn: Callable[..., TransactionRecord]) -> None:
    rows = [
        txn(type="income", on=date(2026, 2, 3), amount="1000"),
        txn(type="expense", on=date(2026, 2, 20), amount="400"),
        txn(type="expense", on=date(2026, 3, 15), amount="100"),
        txn(type="transfer", on=date(2026, 4, 1), amount="999"),
    ]

    series = bucket_transactions(rows, Granularity.MONTH)

    assert series.keys == ("2026-02", "2026-03", "2026-04")
    assert series.labels == ("Şubat", "Mart", "Nisan")
    assert series.total_income == Decimal("1000")
    assert series.total_expense == Decimal("500")
    assert series.expense[2] == Decimal("0.00")


def test_bucket_points_are_sparse_unless_filled() -> None:
    points = [
        BucketPoint(on=date(2026, 1, 10), income=Decimal("5")),
        BucketPoint(on=date(2026, 3, 10), expense=Decimal("7")),
    ]

    sparse = bucket_points(points, Granularity.MONTH)
    dense = bucket_points(
        points,
        Granularity.MONTH,
        fill_empty=True,
        start=date(2026, 1, 1),
        end=date(2026, 4, 30),
    )

    assert sparse.labels == ("Ocak", "Mart")
    assert dense.labels == ("Ocak", "Şubat", "Mart", "Nisan")
    assert dense.income == (Decimal("5"), Decimal("0.00"), Decimal("0.00"), Decimal("0.00"))


def test_day_buckets_use_day_month_labels() -> None:
    points = [
        BucketPoint(on=date(2026, 3, 2), income=Decimal("1")),
        BucketPoint(on=date(2026, 3, 1), income=Decimal("2")),
        BucketPoint(on=date(2026, 3, 2), expense=Decimal("3")),
    ]

    series = bucket_points(points, Granularity.DAY)

    assert series.keys == ("2026-03-01", "2026-03-02")
    assert series.labels == ("01.03", "02.03")
    assert series.income == (Decimal("2"), Decimal("1"))
    assert series.expense == (Decimal("0.00"), Decimal("3"))


def test_month_helpers_cross_year_boundaries() -> None:
    assert shift_month(date(2026, 1, 1), -1) == date(2025, 12, 1)
    assert shift_month(date(2025, 11, 1), 3) == date(2026, 2, 1)
    assert month_end(date(2024, 2, 1)) == date(2024, 2, 29)


def test_dimension_rows_keep_allow_listed_zero_rows(txn: Callable[..., TransactionRecord]) -> None:
    food = uuid.uuid4()
    idle = uuid.uuid4()
    other = uuid.uuid4()
    rows = [
        txn(type="expense", on=date(2026, 2, 1), amount="300", category_id=food, category_name="Gıda"),
        txn(type="income", on=date(2026, 2, 1), amount="100", category_id=food, category_name="Gıda"),
    ]
    known = {food: "Gıda", idle: "Kırtasiye", other: "Diğer Gelirler"}

    table = build_dimension_rows(
        aggregate_by_dimension(rows, lambda item: item.category_id, lambda item: item.category_name, known=known),
        always_shown=["Diğer Gelirler"],
    )

    assert [row.category for row in table] == ["Gıda", "Diğer Gelirler"]
    assert table[0].net == Decimal("-200.00")
    assert table[0].percentage == Decimal("100.00")
    assert table[1].percentage == Decimal("0.00")


def test_dimension_rows_name_unknown_keys_from_transactions(txn: Callable[..., TransactionRecord]) -> None:
    deleted = uuid.uuid4()
    rows = [
        txn(type="expense", on=date(2026, 2, 1), amount="30", category_id=deleted, category_name="Eski"),
        txn(type="expense", on=date(2026, 2, 1), amount="10", category_id=uuid.uuid4()),
        txn(type="expense", on=date(2026, 2, 1), amount="60"),
    ]

    totals = aggregate_by_dimension(rows, lambda item: item.category_id, lambda item: item.category_name)
    table = build_dimension_rows(totals)

    assert [row.category for row in table] == ["Eski", "Diğer"]
    assert sum((row.percentage for row in table), Decimal("0")) == Decimal("100.00")


@pytest.mark.parametrize("row_count", [3, 6, 7, 11])
def test_dimension_row_percentages_add_up_to_one_hundred(
    txn: Callable[..., TransactionRecord],
    row_count: int,
) -> None:
    rows = [
        txn(type="expense", on=date(2026, 2, 1), amount="10", category_id=uuid.uuid4(), category_name=f"Kalem {index}")
        for index in range(row_count)
    ]

    table = build_dimension_rows(
        aggregate_by_dimension(rows, lambda item: item.category_id, lambda item: item.category_name)
    )

    total = sum((row.percentage for row in table), Decimal("0"))
    assert total == Decimal("100.00")
    assert max(row.percentage for row in table) - min(row.percentage for row in table) <= Decimal("0.01")


def test_dimension_row_percentages_follow_largest_remainders(txn: Callable[..., TransactionRecord]) -> None:
    amounts = {"Gıda": "1", "Kira": "1", "Ulaşım": "1", "Eğitim": "3"}
    rows = [
        txn(type="expense", on=date(2026, 2, 1), amount=amount, category_id=uuid.uuid4(), category_name=name)
        for name, amount in amounts.items()
    ]

    table = build_dimension_rows(
        aggregate_by_dimension(rows, lambda item: item.category_id, lambda item: item.category_name)
    )

    shares = {row.category: row.percentage for row in table}
    assert shares == {
        "Eğitim": Decimal("50.00"),
        "Gıda": Decimal("16.67"),
        "Kira": Decimal("16.67"),
        "Ulaşım": Decimal("16.66"),
    }


def test_dimension_rows_report_previous_period_diff(txn: Callable[..., TransactionRecord]) -> None:
    key = uuid.uuid4()
    current = [txn(type="expense", on=date(2026, 3, 1), amount="150", category_id=key, category_name="Kira")]
    previous = [txn(type="expense", on=date(2026, 2, 1), amount="100", category_id=key, category_name="Kira")]

    def key_fn(item: TransactionRecord) -> uuid.UUID | None:
        return item.category_id

    def name_fn(item: TransactionRecord) -> str | None:
        return item.category_name

    table = build_dimension_rows(
        aggregate_by_dimension(current, key_fn, name_fn),
        previous=aggregate_by_dimension(previous, key_fn, name_fn),
    )

    assert table[0].previous_period_diff == Decimal("50.00")


def test_percentage_change_cases() -> None:
    assert percentage_change(Decimal("120"), Decimal("100")) == Decimal("20.00")
    assert percentage_change(Decimal("0"), Decimal("0")) == Decimal("0")
    assert percentage_change(Decimal("5"), Decimal("0")) == Decimal("100.00")
    assert percentage_change(Decimal("0"), Decimal("5")) == Decimal("-100.00")
    assert percentage_change(3, 4) == Decimal("-25.00")
