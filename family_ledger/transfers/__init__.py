"""Transfers and money requests package."""

from family_ledger.transfers.engine import RequestService, TransferEngine

__all__ = ["RequestService", "TransferEngine"]
