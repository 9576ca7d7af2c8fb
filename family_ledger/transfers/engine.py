"""
Transfer / Settlement Engine and Request Lifecycle

A transfer moves money between two profiles of the same family. It is
written as two ``transfer``-typed legs in a single batch commit:

    debit   on the sender    transfer_direction=given     (expense side)
    credit  on the receiver  transfer_direction=received  (income side)

The legs point at each other through ``linked_transfer_id``. Transfers
never touch the profiles' spent/earned counters; they are internal
movements, not spending.

DESIGN DECISION: When a transfer settles a money request, the request's
status change rides in the same batch, guarded by a compare-and-swap on
``status == PENDING``. Two admins approving the same request at once
produce exactly one pair of legs; the loser gets InvalidStateError and
nothing is written.

Request states:

    PENDING ──approve──> APPROVED   (terminal, transfer executed)
       └──────reject───> REJECTED   (terminal, optional reason)
"""

from datetime import date
from typing import Optional

from family_ledger.audit import AuditLogger
from family_ledger.errors import (
    InputValidationError,
    InvalidStateError,
    NotFoundError,
    build_model,
    parse_amount,
)
from family_ledger.models.ledger import (
    MoneyRequest,
    RequestStatus,
    Transaction,
    TransactionType,
    TransferDirection,
    new_id,
    utc_now,
)
from family_ledger.models.reports import TransferResult
from family_ledger.permissions import require
from family_ledger.repository import (
    REQUESTS,
    TRANSACTIONS,
    FamilyRepository,
    to_document,
)
from family_ledger.services.storage import PreconditionFailedError
from family_ledger.session import Session

PRESENT_CATEGORY = "Present"
PRESENT_ICON = "🎁"
DEFAULT_REJECTION_REASON = "Admin Rejected"


class TransferEngine:
    """Writes both legs of a transfer atomically."""

    def __init__(self, repository: FamilyRepository, audit: AuditLogger):
        self._repository = repository
        self._audit = audit

    async def process_transfer(
        self,
        family_id: str,
        from_profile_id: str,
        to_profile_id: str,
        amount: int,
        category: str = PRESENT_CATEGORY,
        reason: str = "",
        linked_request_id: Optional[str] = None,
        category_icon: Optional[str] = PRESENT_ICON,
        approved_by: Optional[str] = None,
        on: Optional[date] = None,
    ) -> TransferResult:
        """
        Settle a transfer between two profiles.

        Args:
            family_id: The family both profiles belong to
            from_profile_id: Sender (gets the "given" leg)
            to_profile_id: Receiver (gets the "received" leg)
            amount: Positive amount in minor units
            category: Category name stored on both legs
            reason: Note stored on both legs
            linked_request_id: Request this transfer settles, if any
            approved_by: Admin recorded on the settled request
            on: Transaction date (defaults to today)

        Raises:
            InputValidationError: Bad amount, same or unknown profiles
            InvalidStateError: The linked request is no longer PENDING
            InfrastructureError: The store failed; nothing was written
        """
        amount = parse_amount(amount)
        if from_profile_id == to_profile_id:
            raise InputValidationError("Cannot transfer to the same profile", field="to_profile_id")
        if not category or not category.strip():
            raise InputValidationError("Category is required", field="category")

        for field, profile_id in (("from_profile_id", from_profile_id), ("to_profile_id", to_profile_id)):
            if await self._repository.get_profile(family_id, profile_id) is None:
                raise InputValidationError(f"Unknown profile: {profile_id}", field=field)

        on = on or date.today()
        debit_id, credit_id = new_id(), new_id()
        legs = {}
        for leg_id, other_id, profile_id, direction in (
            (debit_id, credit_id, from_profile_id, TransferDirection.GIVEN),
            (credit_id, debit_id, to_profile_id, TransferDirection.RECEIVED),
        ):
            legs[direction] = Transaction(
                id=leg_id,
                profile_id=profile_id,
                amount=amount,
                type=TransactionType.TRANSFER,
                category=category,
                category_icon=category_icon,
                note=reason,
                date=on,
                transfer_direction=direction,
                is_transfer=True,
                linked_transfer_id=other_id,
                linked_request_id=linked_request_id,
            )
        debit = legs[TransferDirection.GIVEN]
        credit = legs[TransferDirection.RECEIVED]

        transactions = self._repository.path(family_id, TRANSACTIONS)
        batch = self._repository.batch()
        batch.create(transactions, debit.id, to_document(debit))
        batch.create(transactions, credit.id, to_document(credit))

        if linked_request_id:
            requests = self._repository.path(family_id, REQUESTS)
            batch.require(requests, linked_request_id, "status", RequestStatus.PENDING.value)
            batch.update(requests, linked_request_id, {
                "status": RequestStatus.APPROVED.value,
                "approved_by": approved_by or from_profile_id,
                "linked_transfer_ids": [debit.id, credit.id],
                "resolved_at": utc_now().isoformat(),
            })

        try:
            await self._repository.commit(batch)
        except PreconditionFailedError as e:
            raise InvalidStateError(
                f"Request {linked_request_id} has already been resolved"
            ) from e

        await self._audit.log_transfer_settled(
            family_id=family_id,
            from_profile_id=from_profile_id,
            to_profile_id=to_profile_id,
            amount=amount,
            transaction_ids=[debit.id, credit.id],
            request_id=linked_request_id,
        )
        return TransferResult(debit=debit, credit=credit, request_id=linked_request_id)

    async def grant(
        self,
        session: Session,
        to_profile_id: str,
        amount: int,
        reason: str,
    ) -> TransferResult:
        """
        Admin sends money directly to another profile (no request).

        Raises:
            AccessDeniedError: If the acting profile is not Owner or Partner
        """
        require(session.role, "grant_money")
        if not reason or not reason.strip():
            raise InputValidationError("Reason is required", field="reason")
        return await self.process_transfer(
            family_id=session.family_id,
            from_profile_id=session.profile_id,
            to_profile_id=to_profile_id,
            amount=amount,
            category=PRESENT_CATEGORY,
            reason=reason.strip(),
            category_icon=PRESENT_ICON,
        )


class RequestService:
    """Money request lifecycle: create, approve (settle), reject, list."""

    def __init__(
        self,
        repository: FamilyRepository,
        engine: TransferEngine,
        audit: AuditLogger,
    ):
        self._repository = repository
        self._engine = engine
        self._audit = audit

    async def create_request(
        self,
        session: Session,
        amount: int,
        reason: str,
        category: str = "Allowance",
        category_icon: Optional[str] = "💰",
    ) -> MoneyRequest:
        """Any profile may ask for money."""
        request = build_model(
            MoneyRequest,
            created_by_profile_id=session.profile_id,
            created_by_name=session.profile.name,
            amount=parse_amount(amount),
            reason=reason,
            category=category,
            category_icon=category_icon,
        )
        await self._repository.save_request(session.family_id, request)
        await self._audit.log_request_created(
            session.family_id, request.id, request.amount, session.profile_id
        )
        return request

    async def _pending(self, family_id: str, request_id: str) -> MoneyRequest:
        request = await self._repository.get_request(family_id, request_id)
        if request is None:
            raise NotFoundError("request", request_id)
        if request.status.is_terminal:
            raise InvalidStateError(
                f"Request {request_id} is already {request.status.value}"
            )
        return request

    async def approve_request(self, session: Session, request_id: str) -> TransferResult:
        """
        Approve a pending request and settle it from the acting admin.

        Raises:
            AccessDeniedError: If the acting profile is not Owner or Partner
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not PENDING (including a
                concurrent approval that won the race)
        """
        require(session.role, "manage_requests")
        request = await self._pending(session.family_id, request_id)

        result = await self._engine.process_transfer(
            family_id=session.family_id,
            from_profile_id=session.profile_id,
            to_profile_id=request.created_by_profile_id,
            amount=request.amount,
            category=PRESENT_CATEGORY,
            reason=f"Request: {request.reason}",
            linked_request_id=request.id,
            category_icon=PRESENT_ICON,
            approved_by=session.profile_id,
        )
        await self._audit.log_request_approved(
            session.family_id,
            request.id,
            session.profile_id,
            [result.debit.id, result.credit.id],
        )
        return result

    async def reject_request(
        self,
        session: Session,
        request_id: str,
        reason: Optional[str] = None,
    ) -> MoneyRequest:
        """
        Reject a pending request. No money moves.

        Raises:
            AccessDeniedError: If the acting profile is not Owner or Partner
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not PENDING
        """
        require(session.role, "manage_requests")
        request = await self._pending(session.family_id, request_id)

        resolved_at = utc_now()
        rejection_reason = (reason or "").strip() or DEFAULT_REJECTION_REASON
        changes = {
            "status": RequestStatus.REJECTED.value,
            "rejected_by": session.profile_id,
            "rejection_reason": rejection_reason,
            "resolved_at": resolved_at.isoformat(),
        }
        path = self._repository.path(session.family_id, REQUESTS)
        batch = self._repository.batch()
        batch.require(path, request.id, "status", RequestStatus.PENDING.value)
        batch.update(path, request.id, changes)
        try:
            await self._repository.commit(batch)
        except PreconditionFailedError as e:
            raise InvalidStateError(f"Request {request_id} has already been resolved") from e

        await self._audit.log_request_rejected(
            session.family_id, request.id, session.profile_id, rejection_reason
        )
        return request.model_copy(update={
            "status": RequestStatus.REJECTED,
            "rejected_by": session.profile_id,
            "rejection_reason": rejection_reason,
            "resolved_at": resolved_at,
        })

    async def list_requests(
        self,
        session: Session,
        status: Optional[RequestStatus] = None,
    ) -> list[MoneyRequest]:
        """Admins see every request, others only their own; newest first."""
        requests = await self._repository.list_requests(session.family_id)
        if not session.is_admin:
            requests = [r for r in requests if r.created_by_profile_id == session.profile_id]
        if status is not None:
            requests = [r for r in requests if r.status is status]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests
