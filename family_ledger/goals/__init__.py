"""Savings goals package."""

from family_ledger.goals.ledger import GoalLedger, goal_effect

__all__ = ["GoalLedger", "goal_effect"]
