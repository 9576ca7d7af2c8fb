"""Recurring charges package."""

from family_ledger.recurring.processor import RecurringProcessor, recurring_transaction_id

__all__ = ["RecurringProcessor", "recurring_transaction_id"]
