"""
Tests for Family Ledger

Test strategy:
1. Unit tests for individual components (models, validators, aggregator)
2. Service tests against the in-memory document store
3. No real storage backends in tests
"""

import pytest
from datetime import date

from pydantic import ValidationError

from family_ledger.models.ledger import (
    Category,
    Goal,
    MoneyRequest,
    Profile,
    RecurringRule,
    RequestStatus,
    Role,
    Transaction,
    TransactionType,
    TransferDirection,
)
from family_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from family_ledger.models.reports import BudgetCheck, BudgetStatus


class TestProfileModel:
    """Tests for the Profile model."""

    def test_role_is_parsed_case_insensitively(self):
        """Test that stored role strings in any case map to Role."""
        profile = Profile(id="mom", name="Mom", role=" partner ")
        assert profile.role is Role.PARTNER
        assert profile.is_admin

    def test_child_is_not_admin(self):
        """Test that Child and Basic profiles are not administrators."""
        assert not Profile(id="kid", name="Kid", role="Child").is_admin
        assert not Profile(id="guest", name="Guest", role="Basic").is_admin

    def test_unknown_role_rejected(self):
        """Test that an unknown role fails validation."""
        with pytest.raises(ValidationError):
            Profile(id="x", name="X", role="Grandma")

    def test_pin_must_be_four_digits(self):
        """Test the optional PIN format."""
        assert Profile(id="dad", name="Dad", pin="1234").pin == "1234"
        with pytest.raises(ValidationError):
            Profile(id="dad", name="Dad", pin="12a4")

    def test_counters_default_to_zero(self):
        """Test that a fresh profile has no spent or earned amount."""
        profile = Profile(id="dad", name="Dad")
        assert profile.spent == 0
        assert profile.earned == 0
        assert profile.limit == 0


class TestTransactionModel:
    """Tests for the Transaction model."""

    def test_amount_must_be_positive(self):
        """Test that zero and negative amounts are rejected."""
        for amount in (0, -100):
            with pytest.raises(ValidationError):
                Transaction(profile_id="dad", amount=amount, category="Food", date=date(2024, 1, 1))

    def test_missing_type_defaults_to_expense(self):
        """Test that legacy documents without a type read as expenses."""
        txn = Transaction.model_validate({
            "profile_id": "dad", "amount": 10, "category": "Food",
            "date": "2024-01-01", "type": None,
        })
        assert txn.type is TransactionType.EXPENSE

    def test_counter_field(self):
        """Test which profile counter each kind of entry feeds."""
        base = dict(profile_id="dad", amount=10, category="Food", date=date(2024, 1, 1))
        assert Transaction(**base).counter_field == "spent"
        assert Transaction(**base, type=TransactionType.INCOME).counter_field == "earned"
        assert Transaction(**base, type=TransactionType.TRANSFER).counter_field is None
        leg = Transaction(**base, transfer_direction=TransferDirection.GIVEN)
        assert leg.counter_field is None

    def test_legacy_transfer_markers_feed_no_counter(self):
        """Test that records marked as transfers by category or note stay out of counters."""
        base = dict(profile_id="kid", amount=10, date=date(2024, 1, 1))
        assert Transaction(**base, category="Present").counter_field is None
        assert Transaction(**base, category="Granted", type=TransactionType.INCOME).counter_field is None
        assert Transaction(**base, category="Food", note="Snack (Granted)").counter_field is None
        assert Transaction(**base, category="Food", is_transfer=True).counter_field is None

    def test_recurring_rule_rejects_transfer_markers(self):
        """Test that a rule cannot materialize transfer lookalikes."""
        with pytest.raises(ValidationError):
            RecurringRule(
                profile_id="dad", name="Pocket money", amount=100, category="Present",
                start_date=date(2024, 5, 1),
            )

    def test_classification_of_transfer_legs(self):
        """Test that a received leg counts as income for its owner."""
        base = dict(profile_id="kid", amount=10, category="Present", date=date(2024, 1, 1))
        received = Transaction(**base, type=TransactionType.TRANSFER, transfer_direction=TransferDirection.RECEIVED)
        given = Transaction(**base, type=TransactionType.TRANSFER, transfer_direction=TransferDirection.GIVEN)
        assert received.classification == "income"
        assert given.classification == "expense"

    def test_round_trip_through_json_document(self):
        """Test that a stored document validates back to the same transaction."""
        txn = Transaction(profile_id="dad", amount=25_000, category="Food", date=date(2024, 2, 29))
        restored = Transaction.model_validate(txn.model_dump(mode="json"))
        assert restored == txn


class TestCategoryVisibility:
    """Tests for category visibility rules."""

    def setup_method(self):
        self.owner = Profile(id="dad", name="Dad", role=Role.OWNER)
        self.kid = Profile(id="kid", name="Kid", role=Role.CHILD)
        self.mom = Profile(id="mom", name="Mom", role=Role.PARTNER)

    def test_owner_sees_everything(self):
        """Test that the Owner sees private categories of others."""
        private = Category(name="Toys", owner_id="kid", shared_with=[])
        assert private.is_visible_to(self.owner)

    def test_system_category_visible_to_all(self):
        """Test that categories without an owner are visible."""
        assert Category(name="Food").is_visible_to(self.kid)

    def test_shared_with_list_wins_over_legacy_flag(self):
        """Test that an explicit shared_with list overrides is_shared."""
        category = Category(name="Golf", owner_id="dad", shared_with=["mom"], is_shared=True)
        assert category.is_visible_to(self.mom)
        assert not category.is_visible_to(self.kid)

    def test_shared_with_all(self):
        """Test the literal 'ALL' sharing marker."""
        assert Category(name="Trips", owner_id="mom", shared_with=["ALL"]).is_visible_to(self.kid)

    def test_legacy_private_category_hidden(self):
        """Test that a legacy unshared category is visible only to its owner."""
        category = Category(name="Hobby", owner_id="mom")
        assert category.is_visible_to(self.mom)
        assert not category.is_visible_to(self.kid)


class TestOtherModels:
    """Tests for requests, recurring rules and goals."""

    def test_request_status_terminal(self):
        """Test that only PENDING is non-terminal."""
        assert not RequestStatus.PENDING.is_terminal
        assert RequestStatus.APPROVED.is_terminal
        assert RequestStatus.REJECTED.is_terminal

    def test_request_requires_reason(self):
        """Test that an empty reason is rejected."""
        with pytest.raises(ValidationError):
            MoneyRequest(created_by_profile_id="kid", amount=100, reason="  ")

    def test_recurring_rule_end_before_start_rejected(self):
        """Test the recurring rule date range check."""
        with pytest.raises(ValidationError):
            RecurringRule(
                profile_id="dad", name="Netflix", amount=100, category="Entertainment",
                start_date=date(2024, 5, 1), end_date=date(2024, 4, 1),
            )

    def test_recurring_rule_cannot_be_transfer(self):
        """Test that recurring rules only create income or expenses."""
        with pytest.raises(ValidationError):
            RecurringRule(
                profile_id="dad", name="Allowance", amount=100, category="Present",
                start_date=date(2024, 5, 1), type=TransactionType.TRANSFER,
            )

    def test_goal_progress_is_capped(self):
        """Test that progress never exceeds 1.0."""
        goal = Goal(owner_id="dad", name="Bike", target_amount=100, current_amount=150)
        assert goal.progress == 1.0

    def test_goal_balance_cannot_be_negative(self):
        """Test the goal balance lower bound."""
        with pytest.raises(ValidationError):
            Goal(owner_id="dad", name="Bike", target_amount=100, current_amount=-1)


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            description="Test event",
        )
        assert event.event_type == AuditEventType.TRANSACTION_SAVED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to a log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.REQUEST_APPROVED,
            family_id="family-1",
            description="Test",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "request_approved"
        assert log_dict["family_id"] == "family-1"

    def test_builder_budget_warning_is_warning_severity(self):
        """Test that budget warnings are logged at warning severity."""
        event = AuditEventBuilder.budget_warning(
            family_id="family-1",
            profile_id="kid",
            status="CRITICAL",
            usage_percent=101,
            forced=True,
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.details["forced"] is True
        assert "101%" in event.description

    def test_builder_recurring_failed_carries_error(self):
        """Test that a failed recurring rule records the error text."""
        event = AuditEventBuilder.recurring_failed("family-1", "rule-1", "boom")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "boom"
        assert event.entity_id == "rule-1"


class TestBudgetCheck:
    """Tests for the BudgetCheck result model."""

    def test_needs_confirmation(self):
        """Test that only WARNING and CRITICAL ask the user."""
        assert not BudgetCheck(status=BudgetStatus.ALLOWED, message="ok").needs_confirmation
        assert BudgetCheck(status=BudgetStatus.WARNING, message="w").needs_confirmation
        assert BudgetCheck(status=BudgetStatus.CRITICAL, message="c").needs_confirmation
