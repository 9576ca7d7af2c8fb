"""
Audit Logger

DESIGN DECISION: Every money movement in a family is logged.
This provides:
1. Complete traceability of who changed what
2. Debugging capability (e.g. counter drift)
3. Family admins can see the history of approvals
4. A record that survives edits and deletions

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't break a save if logging fails)
- Tags every event with the family and the acting profile
"""

import logging
from typing import Optional

import structlog

from family_ledger.models.audit import AuditEvent, AuditEventBuilder
from family_ledger.models.reports import BudgetCheck
from family_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug: bool = False) -> None:
    """Send structlog output through stdlib logging at INFO, or DEBUG in debug mode."""
    logging.basicConfig(format="%(message)s", level=logging.DEBUG if debug else logging.INFO)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and admin visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("family_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=event.event_id,
                )
                return False

        return True

    async def log_transaction_saved(
        self,
        family_id: str,
        transaction_id: str,
        profile_id: str,
        amount: int,
        txn_type: str,
        actor_profile_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_saved(
            family_id=family_id,
            transaction_id=transaction_id,
            profile_id=profile_id,
            amount=amount,
            txn_type=txn_type,
            actor_profile_id=actor_profile_id,
        ))

    async def log_transaction_updated(
        self,
        family_id: str,
        transaction_id: str,
        old_amount: int,
        new_amount: int,
        actor_profile_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            family_id, transaction_id, old_amount, new_amount, actor_profile_id
        ))

    async def log_transaction_deleted(
        self,
        family_id: str,
        transaction_id: str,
        amount: int,
        actor_profile_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            family_id, transaction_id, amount, actor_profile_id
        ))

    async def log_budget_warning(
        self,
        family_id: str,
        profile_id: str,
        check: BudgetCheck,
        forced: bool,
    ) -> None:
        """Log a WARNING/CRITICAL budget check and whether the user overrode it."""
        await self.log(AuditEventBuilder.budget_warning(
            family_id=family_id,
            profile_id=profile_id,
            status=check.status.value,
            usage_percent=check.usage_percent,
            forced=forced,
        ))

    async def log_counters_reconciled(
        self,
        family_id: str,
        profile_id: str,
        spent_drift: int,
        earned_drift: int,
    ) -> None:
        await self.log(AuditEventBuilder.counters_reconciled(
            family_id, profile_id, spent_drift, earned_drift
        ))

    async def log_transfer_settled(
        self,
        family_id: str,
        from_profile_id: str,
        to_profile_id: str,
        amount: int,
        transaction_ids: list[str],
        request_id: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transfer_settled(
            family_id=family_id,
            from_profile_id=from_profile_id,
            to_profile_id=to_profile_id,
            amount=amount,
            transaction_ids=transaction_ids,
            request_id=request_id,
        ))

    async def log_request_created(
        self,
        family_id: str,
        request_id: str,
        amount: int,
        actor_profile_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.request_created(
            family_id, request_id, amount, actor_profile_id
        ))

    async def log_request_approved(
        self,
        family_id: str,
        request_id: str,
        actor_profile_id: str,
        transaction_ids: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.request_approved(
            family_id, request_id, actor_profile_id, transaction_ids
        ))

    async def log_request_rejected(
        self,
        family_id: str,
        request_id: str,
        actor_profile_id: str,
        reason: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.request_rejected(
            family_id, request_id, actor_profile_id, reason
        ))

    async def log_recurring_materialized(
        self,
        family_id: str,
        rule_id: str,
        transaction_id: str,
        period_key: str,
    ) -> None:
        await self.log(AuditEventBuilder.recurring_materialized(
            family_id, rule_id, transaction_id, period_key
        ))

    async def log_recurring_failed(
        self,
        family_id: str,
        rule_id: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.recurring_failed(family_id, rule_id, error_message))

    async def log_goal_movement(
        self,
        family_id: str,
        goal_id: str,
        amount: int,
        actor_profile_id: str,
        withdrawal: bool,
    ) -> None:
        await self.log(AuditEventBuilder.goal_movement(
            family_id=family_id,
            goal_id=goal_id,
            amount=amount,
            actor_profile_id=actor_profile_id,
            withdrawal=withdrawal,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        family_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            family_id=family_id,
            details=details,
        ))
