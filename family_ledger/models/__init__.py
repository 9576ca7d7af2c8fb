"""
Data Models Package

This package contains all Pydantic models used in Family Ledger.
All documents read from or written to the store conform to these schemas.
"""

from family_ledger.models.ledger import (
    Category,
    CategoryType,
    Family,
    Frequency,
    Goal,
    GoalWithdrawRequest,
    MoneyRequest,
    Profile,
    RecurringRule,
    RequestStatus,
    Role,
    Transaction,
    TransactionType,
    TransferDirection,
)
from family_ledger.models.reports import (
    AccountDashboard,
    BudgetCheck,
    BudgetStatus,
    CategoryShare,
    DashboardSummary,
    FinancialStatus,
    PeriodChange,
    ProfileDashboard,
    ProfileSpend,
    RecurringRunReport,
    TransferResult,
)
from family_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Category",
    "CategoryType",
    "Family",
    "Frequency",
    "Goal",
    "GoalWithdrawRequest",
    "MoneyRequest",
    "Profile",
    "RecurringRule",
    "RequestStatus",
    "Role",
    "Transaction",
    "TransactionType",
    "TransferDirection",
    # Result models
    "AccountDashboard",
    "BudgetCheck",
    "BudgetStatus",
    "CategoryShare",
    "DashboardSummary",
    "FinancialStatus",
    "PeriodChange",
    "ProfileDashboard",
    "ProfileSpend",
    "RecurringRunReport",
    "TransferResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
