"""
Transaction Service

Saving, editing and deleting ledger entries while keeping the profile
counters (``spent``/``earned``) and goal balances consistent.

Every change is one batch commit: the transaction document plus the
counter increments it implies. Edits reverse the old effect and apply the
new one, so switching an entry from expense to income moves its amount
from ``spent`` to ``earned``.

Counters are a cache. ``reconcile_profile_counters`` recomputes them from
the transactions, which stay the source of truth.
"""

from collections import defaultdict
from datetime import date
from typing import Any, Optional

from family_ledger.audit import AuditLogger
from family_ledger.budget import BudgetValidator
from family_ledger.errors import (
    AccessDeniedError,
    BudgetExceededWarning,
    InputValidationError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    build_model,
    parse_amount,
    reject_transfer_markers,
)
from family_ledger.goals import goal_effect
from family_ledger.models.ledger import Profile, Transaction, TransactionType
from family_ledger.repository import GOALS, PROFILES, TRANSACTIONS, FamilyRepository, to_document
from family_ledger.services.storage import PreconditionFailedError, WriteBatch
from family_ledger.session import Session

EDITABLE_FIELDS = {"amount", "type", "category", "category_icon", "note", "date"}


def _entry_type(value: Any) -> TransactionType:
    """Type of a user-entered transaction; transfers are not user-entered."""
    try:
        txn_type = TransactionType(value or TransactionType.EXPENSE)
    except ValueError as e:
        raise InputValidationError(f"Unknown transaction type: {value}", field="type") from e
    if txn_type is TransactionType.TRANSFER:
        raise InputValidationError(
            "Transfers are created by granting money or approving requests", field="type"
        )
    return txn_type


def _counter_deltas(old: Optional[Transaction], new: Optional[Transaction]) -> dict[str, int]:
    """Counter changes for replacing ``old`` with ``new`` (either may be None)."""
    deltas: dict[str, int] = defaultdict(int)
    if old is not None and old.counter_field:
        deltas[old.counter_field] -= old.amount
    if new is not None and new.counter_field:
        deltas[new.counter_field] += new.amount
    return {field: delta for field, delta in deltas.items() if delta}


class TransactionService:
    """User-entered transactions with budget checks and counter upkeep."""

    def __init__(
        self,
        repository: FamilyRepository,
        validator: BudgetValidator,
        audit: AuditLogger,
    ):
        self._repository = repository
        self._validator = validator
        self._audit = audit

    def _check_access(self, session: Session, profile_id: str) -> None:
        if not session.is_admin and profile_id != session.profile_id:
            raise AccessDeniedError("You can only change your own transactions")

    async def _add_counters(
        self,
        batch: WriteBatch,
        family_id: str,
        profile_id: str,
        deltas: dict[str, int],
    ) -> None:
        if not deltas:
            return
        if await self._repository.get_profile(family_id, profile_id) is None:
            return  # Profile was deleted; its orphaned entries carry no counters
        profiles = self._repository.path(family_id, PROFILES)
        for field, delta in deltas.items():
            batch.increment(profiles, profile_id, field, delta)

    async def _add_goal_delta(self, batch: WriteBatch, family_id: str, goal_id: Optional[str], delta: int) -> None:
        """Apply ``delta`` to a goal balance, refusing to take it below zero."""
        if not goal_id or delta == 0:
            return
        if await self._repository.get_goal(family_id, goal_id) is None:
            return  # Goal was deleted; its history stays in the ledger
        goals = self._repository.path(family_id, GOALS)
        if delta < 0:
            batch.require_at_least(goals, goal_id, "current_amount", -delta)
        batch.increment(goals, goal_id, "current_amount", delta)

    async def _commit(self, batch: WriteBatch, amount: int) -> None:
        try:
            await self._repository.commit(batch)
        except PreconditionFailedError as e:
            if e.field == "current_amount":
                raise InsufficientFundsError(amount, e.actual or 0) from e
            raise InvalidStateError("The transaction changed while saving, please retry") from e

    # -------------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------------

    async def save_transaction(
        self,
        session: Session,
        draft: dict[str, Any],
        force: bool = False,
    ) -> Transaction:
        """
        Validate and save a user-entered transaction.

        Args:
            session: Acting family/profile
            draft: amount, category, and optionally type, note, date,
                category_icon, profile_id (defaults to the acting profile)
            force: Save even if the budget check asks for confirmation

        Raises:
            InputValidationError: Bad amount, missing category, unknown profile
            AccessDeniedError: A non-admin saving for another profile
            BudgetExceededWarning: WARNING/CRITICAL budget check without force

        Returns:
            The saved transaction
        """
        profile_id = draft.get("profile_id") or session.profile_id
        self._check_access(session, profile_id)

        amount = parse_amount(draft.get("amount"))
        category = (draft.get("category") or "").strip()
        if not category:
            raise InputValidationError("Category is required", field="category")
        txn_type = _entry_type(draft.get("type"))
        if await self._repository.get_profile(session.family_id, profile_id) is None:
            raise InputValidationError(f"Unknown profile: {profile_id}", field="profile_id")

        txn = build_model(
            Transaction,
            profile_id=profile_id,
            amount=amount,
            type=txn_type,
            category=category,
            category_icon=draft.get("category_icon"),
            note=draft.get("note") or "",
            date=draft.get("date") or date.today(),
        )
        reject_transfer_markers(txn.category, txn.note)

        if txn.type is TransactionType.EXPENSE:
            check = await self._validator.validate(session.family_id, profile_id, amount)
            if check.needs_confirmation:
                await self._audit.log_budget_warning(session.family_id, profile_id, check, force)
                if not force:
                    raise BudgetExceededWarning(check)

        batch = self._repository.batch()
        batch.create(self._repository.path(session.family_id, TRANSACTIONS), txn.id, to_document(txn))
        await self._add_counters(batch, session.family_id, profile_id, _counter_deltas(None, txn))
        await self._commit(batch, amount)

        await self._audit.log_transaction_saved(
            family_id=session.family_id,
            transaction_id=txn.id,
            profile_id=profile_id,
            amount=amount,
            txn_type=txn.type.value,
            actor_profile_id=session.profile_id,
        )
        return txn

    # -------------------------------------------------------------------------
    # Edit / delete
    # -------------------------------------------------------------------------

    async def _load(self, session: Session, transaction_id: str) -> Transaction:
        txn = await self._repository.get_transaction(session.family_id, transaction_id)
        if txn is None:
            raise NotFoundError("transaction", transaction_id)
        self._check_access(session, txn.profile_id)
        return txn

    async def update_transaction(
        self,
        session: Session,
        transaction_id: str,
        changes: dict[str, Any],
    ) -> Transaction:
        """
        Edit amount, type, category, note or date of an entry.

        The old effect on counters (and on the goal, for goal-tagged
        entries) is reversed and the new one applied in the same commit.

        Raises:
            InvalidStateError: The entry is a transfer leg
            InsufficientFundsError: The edit would take a goal below zero
        """
        old = await self._load(session, transaction_id)
        if old.counter_field is None:
            raise InvalidStateError("Transfer entries cannot be edited")

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InputValidationError(
                f"Cannot change: {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )
        data = old.model_dump()
        data.update(changes)
        if "amount" in changes:
            data["amount"] = parse_amount(changes["amount"])
        data["type"] = _entry_type(data.get("type"))
        new = build_model(Transaction, **data)
        reject_transfer_markers(new.category, new.note)

        batch = self._repository.batch()
        batch.set(self._repository.path(session.family_id, TRANSACTIONS), new.id, to_document(new))
        await self._add_counters(batch, session.family_id, old.profile_id, _counter_deltas(old, new))
        await self._add_goal_delta(
            batch, session.family_id, old.goal_id, goal_effect(new) - goal_effect(old)
        )
        await self._commit(batch, new.amount)

        await self._audit.log_transaction_updated(
            session.family_id, new.id, old.amount, new.amount, session.profile_id
        )
        return new

    async def delete_transaction(self, session: Session, transaction_id: str) -> bool:
        """
        Delete an entry and reverse its effect.

        Deleting a transfer leg removes both legs (admins only).
        """
        txn = await self._load(session, transaction_id)
        transactions = self._repository.path(session.family_id, TRANSACTIONS)
        batch = self._repository.batch()

        if txn.counter_field is None:
            if not session.is_admin:
                raise AccessDeniedError("Only Owner/Partner can remove transfers")
            batch.delete(transactions, txn.id)
            if txn.linked_transfer_id:
                batch.delete(transactions, txn.linked_transfer_id)
        else:
            batch.delete(transactions, txn.id)
            await self._add_counters(batch, session.family_id, txn.profile_id, _counter_deltas(txn, None))
            await self._add_goal_delta(batch, session.family_id, txn.goal_id, -goal_effect(txn))

        await self._commit(batch, txn.amount)
        await self._audit.log_transaction_deleted(
            session.family_id, txn.id, txn.amount, session.profile_id
        )
        return True

    # -------------------------------------------------------------------------
    # Queries and maintenance
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        family_id: str,
        profile_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[Transaction]:
        """Transactions of a family, optionally one profile and a date range; newest first."""
        return await self._repository.list_transactions(family_id, profile_id, start, end)

    async def reconcile_profile_counters(self, family_id: str, profile_id: str) -> Profile:
        """
        Recompute ``spent``/``earned`` from the profile's transactions.

        Corrections are applied as increments so concurrent saves are kept.
        """
        profile = await self._repository.require_profile(family_id, profile_id)
        transactions = await self._repository.list_transactions(family_id, profile_id=profile_id)

        totals = {"spent": 0, "earned": 0}
        for txn in transactions:
            if txn.counter_field:
                totals[txn.counter_field] += txn.amount

        drift = {
            "spent": totals["spent"] - profile.spent,
            "earned": totals["earned"] - profile.earned,
        }
        if any(drift.values()):
            batch = self._repository.batch()
            await self._add_counters(
                batch, family_id, profile_id, {k: v for k, v in drift.items() if v}
            )
            await self._repository.commit(batch)
            await self._audit.log_counters_reconciled(
                family_id, profile_id, drift["spent"], drift["earned"]
            )

        return profile.model_copy(update=totals)
