"""Tests for the transfer engine and the money request lifecycle."""

import asyncio

import pytest

from family_ledger.errors import (
    AccessDeniedError,
    InfrastructureError,
    InputValidationError,
    InvalidStateError,
    NotFoundError,
)
from family_ledger.models.ledger import RequestStatus, TransactionType, TransferDirection
from family_ledger.models.reports import TransferResult
from family_ledger.reports import aggregate


async def transfer_legs(components, family_id):
    transactions = await components.repository.list_transactions(family_id)
    return [t for t in transactions if t.type is TransactionType.TRANSFER]


class TestTransferEngine:
    """Tests for process_transfer and grant."""

    async def test_writes_two_linked_legs(self, components, family):
        """Test the debit and credit legs point at each other."""
        result = await components.transfers.process_transfer(
            family, "dad", "child", 50_000, reason="Pocket money"
        )
        debit, credit = result.debit, result.credit
        assert debit.profile_id == "dad"
        assert credit.profile_id == "child"
        assert debit.transfer_direction is TransferDirection.GIVEN
        assert credit.transfer_direction is TransferDirection.RECEIVED
        assert debit.linked_transfer_id == credit.id
        assert credit.linked_transfer_id == debit.id
        assert debit.category == credit.category == "Present"
        assert len(await transfer_legs(components, family)) == 2

    async def test_counters_untouched(self, components, family):
        """Test that transfers are not spending or income."""
        await components.transfers.process_transfer(family, "dad", "child", 50_000)
        dad = await components.repository.require_profile(family, "dad")
        child = await components.repository.require_profile(family, "child")
        assert (dad.spent, dad.earned) == (0, 0)
        assert (child.spent, child.earned) == (0, 0)

    async def test_legs_cancel_out_in_family_totals(self, components, family):
        """Test that a transfer adds nothing to family income or expense."""
        await components.transfers.process_transfer(family, "dad", "mom", 10_000)
        summary = aggregate(await components.repository.list_transactions(family))
        assert (summary.income, summary.expense, summary.net) == (0, 0, 0)
        assert summary.given == summary.received == 10_000

    @pytest.mark.parametrize("amount", [0, -5, "abc", None])
    async def test_bad_amount_rejected(self, components, family, amount):
        """Test that invalid amounts write nothing."""
        with pytest.raises(InputValidationError):
            await components.transfers.process_transfer(family, "dad", "child", amount)
        assert await transfer_legs(components, family) == []

    async def test_same_profile_rejected(self, components, family):
        """Test that a profile cannot pay itself."""
        with pytest.raises(InputValidationError):
            await components.transfers.process_transfer(family, "dad", "dad", 100)

    async def test_unknown_profile_rejected(self, components, family):
        """Test that both ends must exist."""
        with pytest.raises(InputValidationError):
            await components.transfers.process_transfer(family, "dad", "ghost", 100)

    async def test_storage_failure_leaves_no_partial_state(self, components, family, store):
        """Test that a failed commit writes neither leg."""
        store.fail_commit = True
        with pytest.raises(InfrastructureError):
            await components.transfers.process_transfer(family, "dad", "child", 100)
        store.fail_commit = False
        assert await transfer_legs(components, family) == []

    async def test_grant_requires_admin(self, components, kid):
        """Test that a Child cannot grant money."""
        with pytest.raises(AccessDeniedError):
            await components.transfers.grant(kid, "dad", 100, "Gift")

    async def test_grant_requires_reason(self, components, mom):
        """Test that a grant needs a reason."""
        with pytest.raises(InputValidationError):
            await components.transfers.grant(mom, "child", 100, "  ")


class TestRequestLifecycle:
    """Tests for create, approve and reject."""

    async def test_approve_settles_request(self, components, kid, dad, family):
        """Test that approving writes one transfer pair and links it."""
        request = await components.requests.create_request(kid, 30_000, "School trip")
        assert request.status is RequestStatus.PENDING

        result = await components.requests.approve_request(dad, request.id)
        stored = await components.repository.get_request(family, request.id)

        assert stored.status is RequestStatus.APPROVED
        assert stored.approved_by == "dad"
        assert stored.linked_transfer_ids == [result.debit.id, result.credit.id]
        assert result.credit.profile_id == "child"
        assert result.debit.note == "Request: School trip"
        assert result.credit.linked_request_id == request.id

    async def test_double_approval_creates_one_pair(self, components, kid, dad, mom, family, store):
        """Test that when both approvals pass the pending check, the status guard settles once."""
        request = await components.requests.create_request(kid, 30_000, "Books")
        store.yield_before_commit = True
        store.commit_attempts = 0

        outcomes = await asyncio.gather(
            components.requests.approve_request(dad, request.id),
            components.requests.approve_request(mom, request.id),
            return_exceptions=True,
        )

        settled = [o for o in outcomes if isinstance(o, TransferResult)]
        refused = [o for o in outcomes if isinstance(o, InvalidStateError)]
        assert len(settled) == 1
        assert store.commit_attempts == 2
        assert len(refused) == 1
        assert len(await transfer_legs(components, family)) == 2
        stored = await components.repository.get_request(family, request.id)
        assert stored.status is RequestStatus.APPROVED

    async def test_settling_twice_through_engine_is_refused(self, components, kid, family):
        """Test the status guard inside the transfer commit."""
        request = await components.requests.create_request(kid, 5_000, "Snack")
        await components.transfers.process_transfer(
            family, "dad", "child", 5_000, linked_request_id=request.id
        )
        with pytest.raises(InvalidStateError):
            await components.transfers.process_transfer(
                family, "mom", "child", 5_000, linked_request_id=request.id
            )
        assert len(await transfer_legs(components, family)) == 2

    async def test_reject_with_default_reason(self, components, kid, mom, family):
        """Test rejecting without a reason."""
        request = await components.requests.create_request(kid, 5_000, "Toy")
        rejected = await components.requests.reject_request(mom, request.id)
        stored = await components.repository.get_request(family, request.id)

        assert rejected.status is RequestStatus.REJECTED
        assert stored.status is RequestStatus.REJECTED
        assert stored.rejection_reason == "Admin Rejected"
        assert stored.rejected_by == "mom"
        assert await transfer_legs(components, family) == []

    async def test_cannot_approve_rejected_request(self, components, kid, dad):
        """Test that terminal states are final."""
        request = await components.requests.create_request(kid, 5_000, "Toy")
        await components.requests.reject_request(dad, request.id, "Not now")
        with pytest.raises(InvalidStateError):
            await components.requests.approve_request(dad, request.id)

    async def test_child_cannot_approve(self, components, kid):
        """Test that only Owner/Partner resolve requests."""
        request = await components.requests.create_request(kid, 5_000, "Toy")
        with pytest.raises(AccessDeniedError):
            await components.requests.approve_request(kid, request.id)

    async def test_unknown_request(self, components, dad):
        """Test approving a request that does not exist."""
        with pytest.raises(NotFoundError):
            await components.requests.approve_request(dad, "missing")

    async def test_list_requests_scoped_by_role(self, components, kid, mom, dad):
        """Test that admins see all requests and others only their own."""
        await components.requests.create_request(kid, 1_000, "A")
        await components.requests.create_request(mom, 2_000, "B")

        assert len(await components.requests.list_requests(dad)) == 2
        mine = await components.requests.list_requests(kid)
        assert [r.reason for r in mine] == ["A"]
        pending = await components.requests.list_requests(dad, RequestStatus.PENDING)
        assert len(pending) == 2
