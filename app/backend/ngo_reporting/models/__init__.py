"""ORM model package."""

from ngo_reporting.models.entities import (
    Budget,
    BudgetScope,
    Category,
    DistributionRecord,
    Employee,
    LeaveRequest,
    Project,
    QurbanCampaign,
    QurbanDonation,
    Transaction,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "Budget",
    "BudgetScope",
    "Category",
    "DistributionRecord",
    "Employee",
    "LeaveRequest",
    "Project",
    "QurbanCampaign",
    "QurbanDonation",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
]
