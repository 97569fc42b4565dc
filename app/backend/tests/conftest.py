from __future__ import annotations

import uuid
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ngo_reporting.db.base import Base
from ngo_reporting.db.dependencies import get_db_session
import ngo_reporting.models.entities  # noqa: F401
from ngo_reporting.main import create_app
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

TEST_TABLES = [
    Category.__table__,
    Project.__table__,
    Transaction.__table__,
    Budget.__table__,
    Employee.__table__,
    LeaveRequest.__table__,
    QurbanDonation.__table__,
    QurbanCampaign.__table__,
    DistributionRecord.__table__,
]

FACILITY_ID = uuid.UUID("00000000-0000-0000-0000-0000000000f1")


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@dataclass
class InMemorySource:
    """Data source backed by plain lists, used to drive the services directly."""

    transactions: list[TransactionRecord] = field(default_factory=list)
    budgets: list[BudgetRecord] = field(default_factory=list)
    categories: list[CategoryRecord] = field(default_factory=list)
    projects: list[ProjectRecord] = field(default_factory=list)
    employees: list[EmployeeRecord] = field(default_factory=list)
    leaves: list[LeaveRecord] = field(default_factory=list)
    donations: list[DonationRecord] = field(default_factory=list)
    campaigns: list[CampaignRecord] = field(default_factory=list)
    distributions: list[DistributionSnapshot] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)

    def fetch_transactions(
        self,
        facility_id: uuid.UUID,
        start_date: date | None,
        end_date: date | None,
    ) -> list[TransactionRecord]:
        self.calls.append("transactions")
        return [
            txn
            for txn in self.transactions
            if txn.facility_id == facility_id
            and (start_date is None or txn.date >= start_date)
            and (end_date is None or txn.date <= end_date)
        ]

    def fetch_all_budgets(self, facility_id: uuid.UUID) -> list[BudgetRecord]:
        return list(self.budgets)

    def fetch_categories(self, facility_id: uuid.UUID) -> list[CategoryRecord]:
        return list(self.categories)

    def fetch_projects(self, facility_id: uuid.UUID) -> list[ProjectRecord]:
        return list(self.projects)

    def fetch_employees(self, facility_id: uuid.UUID) -> list[EmployeeRecord]:
        return list(self.employees)

    def fetch_approved_leaves(self, facility_id: uuid.UUID) -> list[LeaveRecord]:
        return list(self.leaves)

    def fetch_donations(self, facility_id: uuid.UUID) -> list[DonationRecord]:
        return list(self.donations)

    def fetch_campaigns(self, facility_id: uuid.UUID) -> list[CampaignRecord]:
        return list(self.campaigns)

    def fetch_distributions(self, facility_id: uuid.UUID) -> list[DistributionSnapshot]:
        return list(self.distributions)


@pytest.fixture()
def source() -> InMemorySource:
    return InMemorySource()


def make_transaction(
    *,
    type: str,
    on: date,
    amount: str,
    status: str = "approved",
    currency: str = "TRY",
    base_amount: str | None = None,
    category_id: uuid.UUID | None = None,
    category_name: str | None = None,
    vendor_id: uuid.UUID | None = None,
    vendor_name: str | None = None,
    project_id: uuid.UUID | None = None,
    project_name: str | None = None,
    description: str = "",
) -> TransactionRecord:
    return TransactionRecord(
        id=uuid.uuid4(),
        type=type,
        date=on,
        amount=Decimal(amount),
        currency=currency,
        exchange_rate=None,
        amount_in_base_currency=Decimal(base_amount or amount),
        status=status,
        facility_id=FACILITY_ID,
        category_id=category_id,
        category_name=category_name,
        vendor_customer_id=vendor_id,
        vendor_customer_name=vendor_name,
        project_id=project_id,
        project_name=project_name,
        description=description,
    )


@pytest.fixture()
def txn() -> Callable[..., TransactionRecord]:
    return make_transaction
