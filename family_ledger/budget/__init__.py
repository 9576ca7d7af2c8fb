"""Budget validation package."""

from family_ledger.budget.validator import BudgetValidator, evaluate

__all__ = ["BudgetValidator", "evaluate"]
