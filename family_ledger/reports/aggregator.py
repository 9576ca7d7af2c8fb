"""
Transaction Aggregator and Dashboards

``aggregate`` is a pure function over an in-memory list of transactions:
income, expense and net totals, internal transfers tracked apart from
them, an expense breakdown by category, and the change versus a previous
period.

DESIGN DECISION: Transfer legs written by this package carry a structured
``transfer_direction``. Older records do not, so classification falls back
to the category and note conventions those records were written with:
- internal transfer: ``is_transfer`` flag, type ``transfer``, category
  Granted/Present, or a note containing "(Granted)"
- given: note contains "Transfer to" or starts with "To ", or category
  "Transfer Out"
- received: note contains "Received from" or starts with "From ", or
  category "Allowance"

The dashboard services only fetch data and call ``aggregate``.
"""

from collections import defaultdict
from datetime import date
from typing import Iterable, Optional

from family_ledger.config import LedgerSettings
from family_ledger.dates import Period, month_period
from family_ledger.errors import AccessDeniedError
from family_ledger.models.ledger import Transaction, TransactionType, TransferDirection
from family_ledger.models.reports import (
    AccountDashboard,
    CategoryShare,
    DashboardSummary,
    FinancialStatus,
    PeriodChange,
    ProfileDashboard,
    ProfileSpend,
)
from family_ledger.permissions import can_view_account_dashboard, can_view_profile
from family_ledger.repository import FamilyRepository
from family_ledger.session import Session

CATEGORY_ALIASES = {"Granted": "Present"}


# =============================================================================
# CLASSIFICATION
# =============================================================================

def is_internal_transfer(txn: Transaction) -> bool:
    """Money moved between profiles rather than earned or spent outside."""
    return txn.is_internal_transfer


def transfer_direction(txn: Transaction) -> TransferDirection:
    """Direction of a transfer leg; structured field first, then legacy hints."""
    if txn.transfer_direction is not TransferDirection.NONE:
        return txn.transfer_direction

    note = txn.note or ""
    if "Transfer to" in note or note.startswith("To ") or txn.category == "Transfer Out":
        return TransferDirection.GIVEN
    if "Received from" in note or note.startswith("From ") or txn.category == "Allowance":
        return TransferDirection.RECEIVED
    return TransferDirection.NONE


def display_category(category: str) -> str:
    return CATEGORY_ALIASES.get(category, category)


def percent_change(current: int, previous: int) -> float:
    """``(current - previous) / previous * 100``; a zero baseline reads as 100% or 0%."""
    if previous == 0:
        return 100.0 if current != 0 else 0.0
    return (current - previous) / previous * 100


# =============================================================================
# AGGREGATION
# =============================================================================

def _in_period(transactions: Iterable[Transaction], period: Optional[Period]) -> list[Transaction]:
    if period is None:
        return list(transactions)
    return [t for t in transactions if period.contains(t.date)]


def _totals(transactions: list[Transaction]) -> DashboardSummary:
    summary = DashboardSummary()
    by_category: dict[str, int] = defaultdict(int)

    for txn in transactions:
        if is_internal_transfer(txn):
            summary.transfer_count += 1
            direction = transfer_direction(txn)
            if direction is TransferDirection.GIVEN:
                summary.given += txn.amount
            elif direction is TransferDirection.RECEIVED:
                summary.received += txn.amount
            continue

        if txn.type is TransactionType.INCOME:
            summary.income += txn.amount
        else:
            summary.expense += txn.amount
            by_category[display_category(txn.category)] += txn.amount

    summary.net = summary.income - summary.expense

    if summary.expense > 0:
        rows = sorted(by_category.items(), key=lambda item: (-item[1], item[0]))
        summary.category_breakdown = [
            CategoryShare(
                category=name,
                amount=amount,
                percent=round(amount / summary.expense * 100, 2),
            )
            for name, amount in rows
        ]
    return summary


def aggregate(
    transactions: Iterable[Transaction],
    period: Optional[Period] = None,
    previous_period: Optional[Period] = None,
) -> DashboardSummary:
    """
    Summarize transactions.

    Args:
        transactions: Any list of transactions (may span several periods)
        period: Only transactions dated inside it are counted (None = all)
        previous_period: If given, ``changes`` compares against it

    Returns:
        DashboardSummary. ``income - expense == net`` always holds.
    """
    transactions = list(transactions)
    summary = _totals(_in_period(transactions, period))

    if previous_period is not None:
        previous = _totals(_in_period(transactions, previous_period))
        summary.changes = PeriodChange(
            income=percent_change(summary.income, previous.income),
            expense=percent_change(summary.expense, previous.expense),
            net=percent_change(summary.net, previous.net),
        )
    return summary


def spend_by_profile(transactions: Iterable[Transaction]) -> dict[str, int]:
    """Non-transfer expense per profile id."""
    spent: dict[str, int] = defaultdict(int)
    for txn in transactions:
        if not is_internal_transfer(txn) and txn.type is not TransactionType.INCOME:
            spent[txn.profile_id] += txn.amount
    return dict(spent)


# =============================================================================
# DASHBOARDS
# =============================================================================

class DashboardService:
    """Family-wide and per-profile monthly dashboards."""

    def __init__(self, repository: FamilyRepository, settings: LedgerSettings):
        self._repository = repository
        self._settings = settings

    def _account_status(self, spent: int, total_limit: int) -> FinancialStatus:
        if total_limit > 0:
            ratio = spent / total_limit
            if ratio >= self._settings.critical_threshold:
                return FinancialStatus.CRITICAL
            if ratio >= self._settings.account_warning_threshold:
                return FinancialStatus.WARNING
        return FinancialStatus.HEALTHY

    def _profile_status(self, spent: int, limit: int) -> FinancialStatus:
        if limit > 0:
            ratio = spent / limit
            if ratio >= self._settings.critical_threshold:
                return FinancialStatus.OVER_BUDGET
            if ratio >= self._settings.warning_threshold:
                return FinancialStatus.CAUTION
        return FinancialStatus.HEALTHY

    async def account_dashboard(
        self,
        session: Session,
        month: date,
        today: Optional[date] = None,
    ) -> AccountDashboard:
        """
        Family dashboard for the month containing ``month``.

        Raises:
            AccessDeniedError: If the acting profile is not Owner or Partner
        """
        if not can_view_account_dashboard(session.role):
            raise AccessDeniedError("Account dashboard is restricted to Owner/Partner")

        today = today or date.today()
        period = month_period(month)
        family = await self._repository.get_family(session.family_id)
        profiles = await self._repository.list_profiles(session.family_id)
        history = await self._repository.list_transactions(
            session.family_id, start=period.previous().start, end=period.end
        )

        summary = aggregate(history, period, period.previous())
        current = _in_period(history, period)
        spent = spend_by_profile(current)
        total_limit = family.total_limit if family else 0

        if period.contains(today):
            days_passed = max(1, today.day)
        elif period.start > today:
            days_passed = 0
        else:
            days_passed = period.days
        burn_rate = summary.expense / days_passed if days_passed > 0 else 0.0
        projected = burn_rate * period.days if period.contains(today) else float(summary.expense)

        return AccountDashboard(
            period_label=period.label,
            summary=summary,
            total_limit=total_limit,
            financial_status=self._account_status(summary.expense, total_limit),
            burn_rate=burn_rate,
            projected_spend=projected,
            profiles=[
                ProfileSpend(
                    profile_id=p.id,
                    name=p.name,
                    limit=p.limit,
                    spent=spent.get(p.id, 0),
                )
                for p in profiles
            ],
            transactions=current,
        )

    async def profile_dashboard(
        self,
        session: Session,
        profile_id: str,
        month: date,
    ) -> ProfileDashboard:
        """
        Dashboard of one profile for the month containing ``month``.

        Raises:
            AccessDeniedError: If a Basic/Child profile asks for someone else
            NotFoundError: If the profile does not exist
        """
        if not can_view_profile(session.role, profile_id, session.profile_id):
            raise AccessDeniedError("You can only view your own dashboard")

        profile = await self._repository.require_profile(session.family_id, profile_id)
        period = month_period(month)
        history = await self._repository.list_transactions(
            session.family_id,
            profile_id=profile_id,
            start=period.previous().start,
            end=period.end,
        )
        summary = aggregate(history, period, period.previous())

        return ProfileDashboard(
            profile_id=profile.id,
            period_label=period.label,
            summary=summary,
            total_limit=profile.limit,
            financial_status=self._profile_status(summary.expense, profile.limit),
            transactions=_in_period(history, period),
        )
