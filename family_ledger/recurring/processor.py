"""
Recurring Charge Processor

Materializes one transaction per period for every active recurring rule.

DESIGN DECISION: Idempotence comes from a deterministic transaction id,
``rec-<rule_id>-<period_key>`` (period key ``YYYY-MM`` or ``YYYY``). The
transaction is written with a create-if-absent commit together with the
profile counter increment, so running the processor twice in a period, or
from two devices at once, charges the period exactly once.

A rule falls due on the anniversary of its start date within the period
(day clamped to the month length). Only the current period is processed;
periods missed while nobody ran the processor are not back-filled.

Errors are isolated per rule: a failing rule is logged and reported, the
remaining rules still run. Rules of a deleted profile are skipped.
"""

from datetime import date
from typing import Any, Optional

import structlog

from family_ledger.audit import AuditLogger
from family_ledger.dates import due_date_in_period, end_date_for, period_key
from family_ledger.errors import (
    AccessDeniedError,
    InputValidationError,
    NotFoundError,
    build_model,
    parse_amount,
)
from family_ledger.models.ledger import Frequency, RecurringRule, Transaction, TransactionType
from family_ledger.models.reports import RecurringRunReport
from family_ledger.repository import PROFILES, TRANSACTIONS, FamilyRepository, to_document
from family_ledger.services.storage import PreconditionFailedError
from family_ledger.session import Session

logger = structlog.get_logger(__name__)


def recurring_transaction_id(rule_id: str, key: str) -> str:
    return f"rec-{rule_id}-{key}"


def due_date(rule: RecurringRule, today: date) -> Optional[date]:
    """Due date of ``rule`` in the period containing ``today``, None if inactive."""
    if rule.start_date > today:
        return None
    due = due_date_in_period(rule.start_date, rule.frequency, today)
    if due < rule.start_date or due > today:
        return None
    if rule.end_date is not None and rule.end_date < due:
        return None
    return due


class RecurringProcessor:
    """Recurring rule CRUD plus the per-period materialization run."""

    def __init__(self, repository: FamilyRepository, audit: AuditLogger):
        self._repository = repository
        self._audit = audit

    async def check_and_process_recurring(
        self,
        family_id: str,
        today: Optional[date] = None,
    ) -> RecurringRunReport:
        """
        Create this period's transaction for every due rule.

        Args:
            family_id: Family to process
            today: Reference date (defaults to the current date)

        Returns:
            Report of created transaction ids, skipped rules and failures
        """
        today = today or date.today()
        report = RecurringRunReport()

        for doc in await self._repository.list_rule_documents(family_id):
            rule_id = doc.get("id", "?")
            try:
                rule = RecurringRule.model_validate(doc)
                created = await self._materialize(family_id, rule, today)
            except Exception as e:
                logger.exception("recurring_rule_failed", family_id=family_id, rule_id=rule_id)
                report.failed[rule_id] = str(e)
                await self._audit.log_recurring_failed(family_id, rule_id, str(e))
                continue

            if created is None:
                report.skipped.append(rule_id)
            else:
                report.created.append(created)

        return report

    async def _materialize(
        self,
        family_id: str,
        rule: RecurringRule,
        today: date,
    ) -> Optional[str]:
        due = due_date(rule, today)
        if due is None:
            return None

        key = period_key(rule.frequency, due)
        txn_id = recurring_transaction_id(rule.id, key)
        if await self._repository.get_transaction(family_id, txn_id) is not None:
            return None
        if await self._repository.get_profile(family_id, rule.profile_id) is None:
            logger.warning(
                "recurring_rule_orphaned", family_id=family_id, rule_id=rule.id,
                profile_id=rule.profile_id,
            )
            return None

        txn = Transaction(
            id=txn_id,
            profile_id=rule.profile_id,
            amount=rule.amount,
            type=rule.type,
            category=rule.category,
            category_icon=rule.category_icon,
            note=rule.name,
            date=due,
            recurring_rule_id=rule.id,
            period_key=key,
        )
        batch = self._repository.batch()
        batch.create(self._repository.path(family_id, TRANSACTIONS), txn.id, to_document(txn))
        batch.increment(
            self._repository.path(family_id, PROFILES),
            rule.profile_id,
            txn.counter_field,
            txn.amount,
        )
        try:
            await self._repository.commit(batch)
        except PreconditionFailedError:
            # Another run created it between our check and the commit
            return None

        await self._audit.log_recurring_materialized(family_id, rule.id, txn.id, key)
        return txn.id

    # -------------------------------------------------------------------------
    # Rule management
    # -------------------------------------------------------------------------

    def _check_owner(self, session: Session, rule: RecurringRule) -> None:
        if not session.is_admin and rule.profile_id != session.profile_id:
            raise AccessDeniedError("You can only manage your own recurring rules")

    async def add_rule(
        self,
        session: Session,
        name: str,
        amount: int,
        category: str,
        start_date: date,
        txn_type: TransactionType = TransactionType.EXPENSE,
        frequency: Frequency = Frequency.MONTHLY,
        end_date: Optional[date] = None,
        count: Optional[int] = None,
        category_icon: Optional[str] = None,
        profile_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> RecurringRule:
        """
        Create a rule and immediately process the family's rules.

        ``count`` (number of charges) takes precedence over ``end_date``.
        Without either, the rule runs forever.
        """
        profile_id = profile_id or session.profile_id
        if count is not None:
            try:
                end_date = end_date_for(start_date, count, frequency)
            except ValueError as e:
                raise InputValidationError(str(e), field="count") from e

        rule = build_model(
            RecurringRule,
            profile_id=profile_id,
            name=name,
            amount=parse_amount(amount),
            type=txn_type,
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            category=category,
            category_icon=category_icon,
        )
        self._check_owner(session, rule)
        await self._repository.require_profile(session.family_id, profile_id)
        await self._repository.save_rule(session.family_id, rule)
        await self.check_and_process_recurring(session.family_id, today)
        return rule

    async def update_rule(
        self,
        session: Session,
        rule_id: str,
        changes: dict[str, Any],
    ) -> RecurringRule:
        """Edit a rule. Already materialized transactions are left untouched."""
        rule = await self._repository.get_rule(session.family_id, rule_id)
        if rule is None:
            raise NotFoundError("recurring_rule", rule_id)
        self._check_owner(session, rule)

        data = rule.model_dump()
        data.update({k: v for k, v in changes.items() if k not in ("id", "profile_id")})
        if "amount" in changes:
            data["amount"] = parse_amount(changes["amount"])
        updated = build_model(RecurringRule, **data)
        await self._repository.save_rule(session.family_id, updated)
        return updated

    async def delete_rule(self, session: Session, rule_id: str) -> bool:
        rule = await self._repository.get_rule(session.family_id, rule_id)
        if rule is None:
            return False
        self._check_owner(session, rule)
        return await self._repository.delete_rule(session.family_id, rule_id)

    async def list_rules(self, session: Session) -> list[RecurringRule]:
        """Admins see every rule, others only their own."""
        rules = await self._repository.list_rules(session.family_id)
        if not session.is_admin:
            rules = [r for r in rules if r.profile_id == session.profile_id]
        rules.sort(key=lambda r: r.name.lower())
        return rules
