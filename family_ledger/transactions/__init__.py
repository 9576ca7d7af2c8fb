"""User-entered transactions."""

from family_ledger.transactions.service import TransactionService

__all__ = ["TransactionService"]
