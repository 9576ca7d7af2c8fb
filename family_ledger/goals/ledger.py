"""
Goal Contribution Ledger

A goal is an earmarked sub-balance funded from a profile's spendable
money. Every movement is mirrored in the main ledger:

    contribute  goal.current_amount += amount, expense transaction tagged goal_id
    withdraw    goal.current_amount -= amount, income transaction tagged goal_id

DESIGN DECISION: The balance check for a withdrawal is a store
precondition (``current_amount >= amount``) evaluated inside the same
commit that decrements the balance. Two concurrent withdrawals can never
drive a goal negative; the loser gets InsufficientFundsError.

Non-admin profiles ask for withdrawals through a GoalWithdrawRequest that
an Owner/Partner approves (performing the withdrawal) or rejects.
"""

from datetime import date
from typing import Any, Optional

from family_ledger.audit import AuditLogger
from family_ledger.errors import (
    AccessDeniedError,
    InputValidationError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    build_model,
    parse_amount,
    reject_transfer_markers,
)
from family_ledger.models.ledger import (
    Goal,
    GoalWithdrawRequest,
    RequestStatus,
    Role,
    Transaction,
    TransactionType,
    utc_now,
)
from family_ledger.permissions import require
from family_ledger.repository import (
    GOAL_REQUESTS,
    GOALS,
    PROFILES,
    TRANSACTIONS,
    FamilyRepository,
    to_document,
)
from family_ledger.services.storage import PreconditionFailedError, WriteBatch
from family_ledger.session import Session

SAVINGS_CATEGORY = "Savings"


def goal_effect(txn: Transaction) -> int:
    """Change a goal-tagged transaction made to its goal's balance."""
    if txn.goal_id is None:
        return 0
    if txn.type is TransactionType.INCOME:
        return -txn.amount
    return txn.amount


class GoalLedger:
    """Goal CRUD, contributions, withdrawals and withdrawal requests."""

    def __init__(self, repository: FamilyRepository, audit: AuditLogger):
        self._repository = repository
        self._audit = audit

    # -------------------------------------------------------------------------
    # Money movements
    # -------------------------------------------------------------------------

    def _movement(
        self,
        family_id: str,
        goal: Goal,
        amount: int,
        note: str,
        by_profile_id: str,
        withdrawal: bool,
        on: Optional[date],
    ) -> tuple[WriteBatch, Transaction]:
        """Batch moving ``amount`` into or out of ``goal``."""
        txn_type = TransactionType.INCOME if withdrawal else TransactionType.EXPENSE
        default_note = f"Withdraw from {goal.name}" if withdrawal else f"Deposit to {goal.name}"
        note = (note or "").strip() or default_note
        reject_transfer_markers(SAVINGS_CATEGORY, note)
        txn = Transaction(
            profile_id=by_profile_id,
            amount=amount,
            type=txn_type,
            category=SAVINGS_CATEGORY,
            category_icon=goal.icon,
            note=note,
            date=on or date.today(),
            goal_id=goal.id,
        )

        goals = self._repository.path(family_id, GOALS)
        batch = self._repository.batch()
        if withdrawal:
            batch.require_at_least(goals, goal.id, "current_amount", amount)
        batch.increment(goals, goal.id, "current_amount", -amount if withdrawal else amount)
        batch.create(self._repository.path(family_id, TRANSACTIONS), txn.id, to_document(txn))
        batch.increment(
            self._repository.path(family_id, PROFILES),
            by_profile_id,
            txn.counter_field,
            amount,
        )
        return batch, txn

    async def _commit_movement(
        self,
        family_id: str,
        goal: Goal,
        amount: int,
        by_profile_id: str,
        batch: WriteBatch,
        withdrawal: bool,
    ) -> None:
        try:
            await self._repository.commit(batch)
        except PreconditionFailedError as e:
            if e.field == "current_amount":
                raise InsufficientFundsError(amount, e.actual or 0) from e
            raise InvalidStateError("This request has already been handled") from e

        await self._audit.log_goal_movement(
            family_id=family_id,
            goal_id=goal.id,
            amount=amount,
            actor_profile_id=by_profile_id,
            withdrawal=withdrawal,
        )

    async def _prepare(
        self, family_id: str, goal_id: str, amount: Any, by_profile_id: str
    ) -> tuple[Goal, int]:
        amount = parse_amount(amount)
        goal = await self._repository.require_goal(family_id, goal_id)
        if await self._repository.get_profile(family_id, by_profile_id) is None:
            raise InputValidationError(f"Unknown profile: {by_profile_id}", field="by_profile_id")
        return goal, amount

    async def contribute(
        self,
        family_id: str,
        goal_id: str,
        amount: int,
        note: str,
        by_profile_id: str,
        on: Optional[date] = None,
    ) -> Transaction:
        """
        Move money from the profile's ledger into the goal.

        Returns:
            The expense transaction posted for the profile
        """
        goal, amount = await self._prepare(family_id, goal_id, amount, by_profile_id)
        batch, txn = self._movement(family_id, goal, amount, note, by_profile_id, False, on)
        await self._commit_movement(family_id, goal, amount, by_profile_id, batch, False)
        return txn

    async def withdraw(
        self,
        family_id: str,
        goal_id: str,
        amount: int,
        note: str,
        by_profile_id: str,
        on: Optional[date] = None,
    ) -> Transaction:
        """
        Move money out of the goal back into the profile's ledger.

        Raises:
            InsufficientFundsError: If ``amount`` exceeds the goal balance;
                the balance is left unchanged

        Returns:
            The income transaction posted for the profile
        """
        goal, amount = await self._prepare(family_id, goal_id, amount, by_profile_id)
        if amount > goal.current_amount:
            raise InsufficientFundsError(amount, goal.current_amount)
        batch, txn = self._movement(family_id, goal, amount, note, by_profile_id, True, on)
        await self._commit_movement(family_id, goal, amount, by_profile_id, batch, True)
        return txn

    # -------------------------------------------------------------------------
    # Goal management
    # -------------------------------------------------------------------------

    def _check_manage(self, session: Session, goal: Goal) -> None:
        if not session.is_admin and goal.owner_id != session.profile_id:
            raise AccessDeniedError("Only the goal owner can change this goal")

    async def create_goal(
        self,
        session: Session,
        name: str,
        target_amount: int,
        icon: str = "🎯",
        shared_with: Optional[list[str]] = None,
    ) -> Goal:
        goal = build_model(
            Goal,
            owner_id=session.profile_id,
            name=name,
            icon=icon,
            target_amount=parse_amount(target_amount, field="target_amount"),
            shared_with=shared_with or [],
        )
        await self._repository.save_goal(session.family_id, goal)
        return goal

    async def update_goal(self, session: Session, goal_id: str, changes: dict[str, Any]) -> Goal:
        """Edit name, icon, target or sharing. The balance only moves through the ledger."""
        goal = await self._repository.require_goal(session.family_id, goal_id)
        self._check_manage(session, goal)

        allowed = {"name", "icon", "target_amount", "shared_with"}
        unknown = set(changes) - allowed
        if unknown:
            raise InputValidationError(
                f"Cannot change: {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )
        data = goal.model_dump()
        data.update(changes)
        if "target_amount" in changes:
            data["target_amount"] = parse_amount(changes["target_amount"], field="target_amount")
        updated = build_model(Goal, **data)
        # Balance is left out so a concurrent contribution is not overwritten
        fields = {k: v for k, v in to_document(updated).items() if k != "current_amount"}
        await self._repository.update_goal(session.family_id, goal_id, fields)
        return updated

    async def delete_goal(self, session: Session, goal_id: str) -> bool:
        """Delete a goal; its tagged transactions stay in the ledger."""
        goal = await self._repository.get_goal(session.family_id, goal_id)
        if goal is None:
            return False
        self._check_manage(session, goal)
        return await self._repository.delete_goal(session.family_id, goal_id)

    async def list_goals(self, session: Session) -> list[Goal]:
        """Goals the acting profile owns or that are shared with it (Owner sees all)."""
        goals = await self._repository.list_goals(session.family_id)
        if session.role is not Role.OWNER:
            goals = [g for g in goals if g.is_visible_to(session.profile)]
        goals.sort(key=lambda g: g.created_at)
        return goals

    # -------------------------------------------------------------------------
    # Withdrawal requests
    # -------------------------------------------------------------------------

    async def request_withdrawal(
        self,
        session: Session,
        goal_id: str,
        amount: int,
        note: str = "",
    ) -> GoalWithdrawRequest:
        amount = parse_amount(amount)
        reject_transfer_markers(SAVINGS_CATEGORY, note)
        goal = await self._repository.require_goal(session.family_id, goal_id)
        if not goal.is_visible_to(session.profile) and not session.is_admin:
            raise AccessDeniedError("This goal is not shared with you")
        if amount > goal.current_amount:
            raise InsufficientFundsError(amount, goal.current_amount)

        request = GoalWithdrawRequest(
            goal_id=goal.id,
            goal_name=goal.name,
            created_by_profile_id=session.profile_id,
            created_by_name=session.profile.name,
            amount=amount,
            note=note,
        )
        await self._repository.save_goal_request(session.family_id, request)
        return request

    async def _pending_request(self, family_id: str, request_id: str) -> GoalWithdrawRequest:
        request = await self._repository.get_goal_request(family_id, request_id)
        if request is None:
            raise NotFoundError("goal_withdraw_request", request_id)
        if request.status.is_terminal:
            raise InvalidStateError(f"Request {request_id} is already {request.status.value}")
        return request

    async def approve_withdrawal(self, session: Session, request_id: str) -> Transaction:
        """
        Approve a goal withdrawal request; the money goes to the requester.

        Raises:
            AccessDeniedError: If the acting profile is not Owner or Partner
            InsufficientFundsError: If the goal no longer holds enough
            InvalidStateError: If the request is not PENDING
        """
        require(session.role, "manage_requests")
        request = await self._pending_request(session.family_id, request_id)
        goal, amount = await self._prepare(
            session.family_id, request.goal_id, request.amount, request.created_by_profile_id
        )
        if amount > goal.current_amount:
            raise InsufficientFundsError(amount, goal.current_amount)

        batch, txn = self._movement(
            session.family_id, goal, amount, request.note,
            request.created_by_profile_id, True, None,
        )
        requests = self._repository.path(session.family_id, GOAL_REQUESTS)
        batch.require(requests, request.id, "status", RequestStatus.PENDING.value)
        batch.update(requests, request.id, {
            "status": RequestStatus.APPROVED.value,
            "resolved_by": session.profile_id,
            "resolved_at": utc_now().isoformat(),
        })
        await self._commit_movement(
            session.family_id, goal, amount, request.created_by_profile_id, batch, True
        )
        return txn

    async def reject_withdrawal(
        self,
        session: Session,
        request_id: str,
        reason: Optional[str] = None,
    ) -> GoalWithdrawRequest:
        require(session.role, "manage_requests")
        request = await self._pending_request(session.family_id, request_id)

        resolved_at = utc_now()
        rejection_reason = (reason or "").strip() or None
        requests = self._repository.path(session.family_id, GOAL_REQUESTS)
        batch = self._repository.batch()
        batch.require(requests, request.id, "status", RequestStatus.PENDING.value)
        batch.update(requests, request.id, {
            "status": RequestStatus.REJECTED.value,
            "resolved_by": session.profile_id,
            "rejection_reason": rejection_reason,
            "resolved_at": resolved_at.isoformat(),
        })
        try:
            await self._repository.commit(batch)
        except PreconditionFailedError as e:
            raise InvalidStateError(f"Request {request_id} has already been resolved") from e

        return request.model_copy(update={
            "status": RequestStatus.REJECTED,
            "resolved_by": session.profile_id,
            "rejection_reason": rejection_reason,
            "resolved_at": resolved_at,
        })

    async def list_withdrawal_requests(
        self,
        session: Session,
        status: Optional[RequestStatus] = None,
    ) -> list[GoalWithdrawRequest]:
        """Admins see every request, others only their own; newest first."""
        requests = await self._repository.list_goal_requests(session.family_id)
        if not session.is_admin:
            requests = [r for r in requests if r.created_by_profile_id == session.profile_id]
        if status is not None:
            requests = [r for r in requests if r.status is status]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests
