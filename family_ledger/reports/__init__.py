"""Aggregation and dashboards package."""

from family_ledger.reports.aggregator import (
    DashboardService,
    aggregate,
    is_internal_transfer,
    percent_change,
    transfer_direction,
)

__all__ = [
    "DashboardService",
    "aggregate",
    "is_internal_transfer",
    "percent_change",
    "transfer_direction",
]
