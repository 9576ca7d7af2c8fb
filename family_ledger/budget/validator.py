"""
Budget Validator

Checks a prospective expense against the acting profile's monthly limit.

DESIGN DECISION: The check is advisory and fail-open.
- A missing profile or a profile without a limit is ALLOWED.
- If the profile cannot be fetched, the check is skipped (ALLOWED) and
  the failure is logged. A storage hiccup must never block a purchase.
- WARNING and CRITICAL only ask for confirmation; the caller decides
  whether to save anyway.

Usage is ``(spent + proposed) / limit``. Thresholds are compared in Decimal
against ``threshold * limit``, so 0.7 means exactly 70%.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import structlog

from family_ledger.config import LedgerSettings
from family_ledger.errors import LedgerError
from family_ledger.models.reports import BudgetCheck, BudgetStatus
from family_ledger.repository import FamilyRepository

logger = structlog.get_logger(__name__)


def usage_percent(total: int, limit: int) -> int:
    """``round(total / limit * 100)`` with halves rounded up."""
    ratio = Decimal(total) * 100 / Decimal(limit)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _reaches(total: int, limit: int, threshold: float) -> bool:
    return Decimal(total) >= Decimal(str(threshold)) * limit


def evaluate(
    spent: int,
    limit: Optional[int],
    proposed_amount: int,
    warning_threshold: float = 0.7,
    critical_threshold: float = 1.0,
) -> BudgetCheck:
    """
    Classify a prospective expense. Pure function.

    Args:
        spent: Amount already spent this month
        limit: Monthly limit (None or <= 0 means unlimited)
        proposed_amount: The expense being entered
        warning_threshold: Usage ratio that triggers WARNING
        critical_threshold: Usage ratio that triggers CRITICAL

    Returns:
        BudgetCheck with status, message and rounded usage percentage
    """
    if not limit or limit <= 0:
        return BudgetCheck(status=BudgetStatus.ALLOWED, message="No budget limit.")

    total = (spent or 0) + proposed_amount
    percent = usage_percent(total, limit)

    if _reaches(total, limit, critical_threshold):
        return BudgetCheck(
            status=BudgetStatus.CRITICAL,
            message=f"Critical: This exceeds the budget! ({percent}%)",
            usage_percent=percent,
        )
    if _reaches(total, limit, warning_threshold):
        return BudgetCheck(
            status=BudgetStatus.WARNING,
            message=f"Warning: Budget usage will be {percent}%",
            usage_percent=percent,
        )
    return BudgetCheck(
        status=BudgetStatus.ALLOWED,
        message="Transaction within budget.",
        usage_percent=percent,
    )


class BudgetValidator:
    """Runs ``evaluate`` against the stored profile counters."""

    def __init__(self, repository: FamilyRepository, settings: LedgerSettings):
        self._repository = repository
        self._settings = settings

    async def validate(
        self,
        family_id: str,
        profile_id: str,
        proposed_amount: int,
    ) -> BudgetCheck:
        """Budget check for ``proposed_amount``; never raises. Read-only."""
        try:
            profile = await self._repository.get_profile(family_id, profile_id)
        except LedgerError as e:
            logger.warning(
                "budget_validation_skipped",
                family_id=family_id,
                profile_id=profile_id,
                error=str(e),
            )
            return BudgetCheck(status=BudgetStatus.ALLOWED, message="Validation skipped.")

        if profile is None:
            return BudgetCheck(status=BudgetStatus.ALLOWED, message="Profile not found.")

        return evaluate(
            spent=profile.spent,
            limit=profile.limit,
            proposed_amount=proposed_amount,
            warning_threshold=self._settings.warning_threshold,
            critical_threshold=self._settings.critical_threshold,
        )
