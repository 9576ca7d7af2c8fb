"""
Result Models

Outputs of the budget validator, aggregator, dashboards, transfer engine
and recurring processor. These are never persisted.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from family_ledger.models.ledger import Transaction


class BudgetStatus(str, Enum):
    """Outcome of a budget check. Advisory only; never blocks on its own."""
    ALLOWED = "ALLOWED"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class FinancialStatus(str, Enum):
    """Dashboard health indicator."""
    HEALTHY = "Healthy"
    CAUTION = "Caution"
    WARNING = "Warning"
    CRITICAL = "Critical"
    OVER_BUDGET = "Over Budget"


class BudgetCheck(BaseModel):
    """Result of validating a prospective expense against a profile limit."""

    status: BudgetStatus
    message: str
    usage_percent: Optional[int] = Field(
        default=None,
        description="round(usage * 100), None when no limit applies"
    )

    @property
    def needs_confirmation(self) -> bool:
        return self.status is not BudgetStatus.ALLOWED


class CategoryShare(BaseModel):
    """One row of the expense breakdown."""

    category: str
    amount: int
    percent: float = Field(ge=0.0, le=100.0)


class PeriodChange(BaseModel):
    """Percent change versus the previous period."""

    income: float
    expense: float
    net: float


class DashboardSummary(BaseModel):
    """Aggregated view over a set of transactions."""

    income: int = 0
    expense: int = 0
    net: int = 0
    given: int = 0
    received: int = 0
    transfer_count: int = 0
    category_breakdown: list[CategoryShare] = Field(default_factory=list)
    changes: Optional[PeriodChange] = None


class ProfileSpend(BaseModel):
    """Monthly spend of one profile on the family dashboard."""

    profile_id: str
    name: str
    limit: int
    spent: int


class AccountDashboard(BaseModel):
    """Family-wide dashboard (Owner/Partner only)."""

    period_label: str
    summary: DashboardSummary
    total_limit: int
    financial_status: FinancialStatus
    burn_rate: float
    projected_spend: float
    profiles: list[ProfileSpend] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)


class ProfileDashboard(BaseModel):
    """Dashboard for a single profile."""

    profile_id: str
    period_label: str
    summary: DashboardSummary
    total_limit: int
    financial_status: FinancialStatus
    transactions: list[Transaction] = Field(default_factory=list)


class TransferResult(BaseModel):
    """Both legs written by a settlement."""

    debit: Transaction
    credit: Transaction
    request_id: Optional[str] = None


class RecurringRunReport(BaseModel):
    """What one pass of the recurring processor did."""

    created: list[str] = Field(default_factory=list, description="Transaction ids created")
    skipped: list[str] = Field(default_factory=list, description="Rule ids with nothing due")
    failed: dict[str, str] = Field(default_factory=dict, description="Rule id -> error")
