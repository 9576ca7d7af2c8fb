"""
Audit Models for Family Ledger

Every money movement in a family is logged for audit purposes:
who saved, edited or deleted a transaction, who approved a request,
which recurring charges were materialized.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from family_ledger.models.ledger import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    BUDGET_WARNING = "budget_warning"
    COUNTERS_RECONCILED = "counters_reconciled"

    # Transfers and requests
    TRANSFER_SETTLED = "transfer_settled"
    REQUEST_CREATED = "request_created"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"

    # Recurring charges
    RECURRING_MATERIALIZED = "recurring_materialized"
    RECURRING_FAILED = "recurring_failed"

    # Goals
    GOAL_CONTRIBUTION = "goal_contribution"
    GOAL_WITHDRAWAL = "goal_withdrawal"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - which family and entity is this about?
    family_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'request', 'goal')"
    )
    entity_id: Optional[str] = None
    actor_profile_id: Optional[str] = Field(
        default=None,
        description="Profile that triggered the event, None for system runs"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "family_id": self.family_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_profile_id": self.actor_profile_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_saved(family_id, txn, actor)
        event = AuditEventBuilder.request_approved(family_id, request_id, actor, ids)
    """

    @staticmethod
    def transaction_saved(
        family_id: str,
        transaction_id: str,
        profile_id: str,
        amount: int,
        txn_type: str,
        actor_profile_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            family_id=family_id,
            entity_type="transaction",
            entity_id=transaction_id,
            actor_profile_id=actor_profile_id,
            description=f"{txn_type.capitalize()} of {amount} saved for {profile_id}",
            details={"profile_id": profile_id, "amount": amount, "type": txn_type},
        )

    @staticmethod
    def transaction_updated(
        family_id: str,
        transaction_id: str,
        old_amount: int,
        new_amount: int,
        actor_profile_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            family_id=family_id,
            entity_type="transaction",
            entity_id=transaction_id,
            actor_profile_id=actor_profile_id,
            description=f"Transaction edited: {old_amount} -> {new_amount}",
            details={"old_amount": old_amount, "new_amount": new_amount},
        )

    @staticmethod
    def transaction_deleted(
        family_id: str,
        transaction_id: str,
        amount: int,
        actor_profile_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            family_id=family_id,
            entity_type="transaction",
            entity_id=transaction_id,
            actor_profile_id=actor_profile_id,
            description=f"Transaction of {amount} deleted",
            details={"amount": amount},
        )

    @staticmethod
    def budget_warning(
        family_id: str,
        profile_id: str,
        status: str,
        usage_percent: Optional[int],
        forced: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_WARNING,
            severity=AuditSeverity.WARNING,
            family_id=family_id,
            entity_type="profile",
            entity_id=profile_id,
            actor_profile_id=profile_id,
            description=f"Budget check {status} at {usage_percent}%",
            details={"status": status, "usage_percent": usage_percent, "forced": forced},
        )

    @staticmethod
    def counters_reconciled(
        family_id: str,
        profile_id: str,
        spent_drift: int,
        earned_drift: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COUNTERS_RECONCILED,
            family_id=family_id,
            entity_type="profile",
            entity_id=profile_id,
            description="Profile counters recomputed from transactions",
            details={"spent_drift": spent_drift, "earned_drift": earned_drift},
        )

    @staticmethod
    def transfer_settled(
        family_id: str,
        from_profile_id: str,
        to_profile_id: str,
        amount: int,
        transaction_ids: list[str],
        request_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_SETTLED,
            family_id=family_id,
            entity_type="transfer",
            entity_id=transaction_ids[0] if transaction_ids else None,
            actor_profile_id=from_profile_id,
            description=f"Transfer of {amount} from {from_profile_id} to {to_profile_id}",
            details={
                "to_profile_id": to_profile_id,
                "amount": amount,
                "transaction_ids": transaction_ids,
                "request_id": request_id,
            },
        )

    @staticmethod
    def request_created(
        family_id: str,
        request_id: str,
        amount: int,
        actor_profile_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REQUEST_CREATED,
            family_id=family_id,
            entity_type="request",
            entity_id=request_id,
            actor_profile_id=actor_profile_id,
            description=f"Money request for {amount} created",
            details={"amount": amount},
        )

    @staticmethod
    def request_approved(
        family_id: str,
        request_id: str,
        actor_profile_id: str,
        transaction_ids: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REQUEST_APPROVED,
            family_id=family_id,
            entity_type="request",
            entity_id=request_id,
            actor_profile_id=actor_profile_id,
            description="Request approved and settled",
            details={"transaction_ids": transaction_ids},
        )

    @staticmethod
    def request_rejected(
        family_id: str,
        request_id: str,
        actor_profile_id: str,
        reason: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REQUEST_REJECTED,
            family_id=family_id,
            entity_type="request",
            entity_id=request_id,
            actor_profile_id=actor_profile_id,
            description="Request rejected",
            details={"reason": reason or "No reason provided"},
        )

    @staticmethod
    def recurring_materialized(
        family_id: str,
        rule_id: str,
        transaction_id: str,
        period_key: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_MATERIALIZED,
            family_id=family_id,
            entity_type="recurring_rule",
            entity_id=rule_id,
            description=f"Recurring charge created for {period_key}",
            details={"transaction_id": transaction_id, "period_key": period_key},
        )

    @staticmethod
    def recurring_failed(
        family_id: str,
        rule_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_FAILED,
            severity=AuditSeverity.ERROR,
            family_id=family_id,
            entity_type="recurring_rule",
            entity_id=rule_id,
            description="Recurring charge could not be processed",
            error_message=error_message,
        )

    @staticmethod
    def goal_movement(
        family_id: str,
        goal_id: str,
        amount: int,
        actor_profile_id: str,
        withdrawal: bool,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.GOAL_WITHDRAWAL
            if withdrawal
            else AuditEventType.GOAL_CONTRIBUTION
        )
        verb = "withdrawn from" if withdrawal else "contributed to"
        return AuditEvent(
            event_type=event_type,
            family_id=family_id,
            entity_type="goal",
            entity_id=goal_id,
            actor_profile_id=actor_profile_id,
            description=f"{amount} {verb} goal",
            details={"amount": amount},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        family_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            family_id=family_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
