from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from ngo_reporting.models.entities import Employee, QurbanDonation
from ngo_reporting.repositories.reporting_repository import ReportingRepository

FACILITY_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c3")


def _seed_late_evening_rows(db: Session, created_at: datetime) -> None:
    db.add(
        QurbanDonation(
            facility_id=FACILITY_ID,
            donor_name="Ayşe Yılmaz",
            payment_status="paid",
            share_count=1,
            amount=Decimal("9000.00"),
            created_at=created_at,
        )
    )
    db.add(
        Employee(
            facility_id=FACILITY_ID,
            first_name="Mehmet",
            last_name="Kaya",
            hire_date=None,
            created_at=created_at,
        )
    )
    db.commit()


@pytest.mark.parametrize(
    ("zone", "expected"),
    [
        ("Europe/Istanbul", date(2026, 3, 1)),
        ("UTC", date(2026, 2, 28)),
    ],
)
def test_creation_dates_follow_facility_timezone(db_session: Session, zone: str, expected: date) -> None:
    # 22:30 UTC is already the next day in Istanbul (UTC+3).
    _seed_late_evening_rows(db_session, datetime(2026, 2, 28, 22, 30))
    repository = ReportingRepository(db_session, timezone=zone)

    [donation] = repository.fetch_donations(FACILITY_ID)
    [employee] = repository.fetch_employees(FACILITY_ID)

    assert donation.created_on == expected
    assert employee.joined_on == expected

