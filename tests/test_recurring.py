"""Tests for the recurring charge processor."""

from datetime import date

import pytest

from family_ledger.errors import AccessDeniedError, InputValidationError
from family_ledger.models.ledger import Frequency, TransactionType
from family_ledger.recurring import recurring_transaction_id
from family_ledger.recurring.processor import due_date
from family_ledger.repository import RECURRING
from family_ledger.models.ledger import RecurringRule


def rule(**overrides) -> RecurringRule:
    data = dict(
        profile_id="dad", name="Netflix", amount=260_000, category="Entertainment",
        start_date=date(2024, 1, 31),
    )
    data.update(overrides)
    return RecurringRule(**data)


class TestDueDate:
    """Tests for due date computation."""

    def test_monthly_clamps_to_month_end(self):
        """Test that a rule on the 31st falls due on 29 Feb in a leap year."""
        assert due_date(rule(), date(2024, 2, 29)) == date(2024, 2, 29)

    def test_not_due_yet_this_month(self):
        """Test that nothing is due before the anniversary day."""
        assert due_date(rule(start_date=date(2024, 1, 20)), date(2024, 3, 10)) is None

    def test_future_start(self):
        """Test that a rule starting later is inactive."""
        assert due_date(rule(start_date=date(2025, 1, 1)), date(2024, 6, 1)) is None

    def test_after_end_date(self):
        """Test that a rule past its end date is inactive."""
        expired = rule(start_date=date(2024, 1, 5), end_date=date(2024, 2, 5))
        assert due_date(expired, date(2024, 3, 10)) is None
        assert due_date(expired, date(2024, 2, 10)) == date(2024, 2, 5)

    def test_yearly_anniversary(self):
        """Test a yearly rule falls due on its anniversary."""
        yearly = rule(start_date=date(2020, 4, 15), frequency=Frequency.YEARLY)
        assert due_date(yearly, date(2024, 4, 14)) is None
        assert due_date(yearly, date(2024, 12, 1)) == date(2024, 4, 15)


class TestProcessing:
    """Tests for check_and_process_recurring."""

    async def test_materializes_once_per_period(self, components, dad, family):
        """Test that running twice in a period charges once."""
        today = date(2024, 3, 31)
        added = await components.recurring.add_rule(
            dad, "Netflix", 260_000, "Entertainment", date(2024, 1, 31), today=today
        )
        again = await components.recurring.check_and_process_recurring(family, today)

        txn_id = recurring_transaction_id(added.id, "2024-03")
        assert again.created == []
        assert added.id in again.skipped
        txn = await components.repository.get_transaction(family, txn_id)
        assert txn.date == date(2024, 3, 31)
        assert txn.note == "Netflix"
        assert txn.recurring_rule_id == added.id
        profile = await components.repository.require_profile(family, "dad")
        assert profile.spent == 260_000

    async def test_income_rule_feeds_earned(self, components, dad, family):
        """Test that income rules increase the earned counter."""
        await components.recurring.add_rule(
            dad, "Salary", 20_000_000, "Salary", date(2024, 1, 1),
            txn_type=TransactionType.INCOME, today=date(2024, 3, 2),
        )
        profile = await components.repository.require_profile(family, "dad")
        assert profile.earned == 20_000_000
        assert profile.spent == 0

    async def test_new_period_creates_new_charge(self, components, dad, family):
        """Test that the next month gets its own transaction."""
        added = await components.recurring.add_rule(
            dad, "Gym", 500_000, "Entertainment", date(2024, 1, 10), today=date(2024, 2, 10)
        )
        report = await components.recurring.check_and_process_recurring(family, date(2024, 3, 15))
        assert report.created == [recurring_transaction_id(added.id, "2024-03")]

    async def test_malformed_rule_does_not_stop_others(self, components, dad, family):
        """Test per-rule error isolation."""
        await components.repository.store.set(
            components.repository.path(family, RECURRING), "broken", {"name": "No amount"}
        )
        good = await components.recurring.add_rule(
            dad, "Spotify", 59_000, "Entertainment", date(2024, 1, 1), today=date(2023, 12, 1)
        )

        report = await components.recurring.check_and_process_recurring(family, date(2024, 1, 2))
        assert "broken" in report.failed
        assert report.created == [recurring_transaction_id(good.id, "2024-01")]

    async def test_count_sets_end_date(self, components, dad, family):
        """Test a rule limited to two charges."""
        added = await components.recurring.add_rule(
            dad, "Course", 100_000, "Entertainment", date(2024, 1, 15),
            count=2, today=date(2024, 1, 1),
        )
        assert added.end_date == date(2024, 2, 15)
        report = await components.recurring.check_and_process_recurring(family, date(2024, 3, 20))
        assert report.created == []

    async def test_deleted_profile_rule_is_skipped(self, components, dad, kid, family):
        """Test that a rule of a deleted profile is skipped rather than failing each run."""
        comics = await components.recurring.add_rule(
            kid, "Comics", 10_000, "Shopping", date(2024, 1, 1), today=date(2023, 12, 1)
        )
        await components.family.delete_profile(dad, "child")

        report = await components.recurring.check_and_process_recurring(family, date(2024, 1, 5))
        assert report.failed == {}
        assert comics.id in report.skipped
        assert await components.repository.list_transactions(family) == []

    async def test_transfer_marker_rule_rejected(self, components, dad):
        """Test that rules cannot use the categories reserved for transfers."""
        with pytest.raises(InputValidationError):
            await components.recurring.add_rule(
                dad, "Allowance", 100_000, "Granted", date(2024, 1, 15)
            )

    async def test_invalid_count(self, components, dad):
        """Test that a non-positive duration is rejected."""
        with pytest.raises(InputValidationError):
            await components.recurring.add_rule(
                dad, "Course", 100_000, "Entertainment", date(2024, 1, 15), count=0
            )


class TestRuleManagement:
    """Tests for rule CRUD and ownership."""

    async def test_child_cannot_add_rule_for_others(self, components, kid):
        """Test that non-admins only manage their own rules."""
        with pytest.raises(AccessDeniedError):
            await components.recurring.add_rule(
                kid, "Netflix", 100, "Entertainment", date(2024, 1, 1), profile_id="dad"
            )

    async def test_list_rules_scoped(self, components, dad, kid):
        """Test that children only see their own rules."""
        today = date(2023, 1, 1)
        await components.recurring.add_rule(dad, "Rent", 100, "Utilities", date(2024, 1, 1), today=today)
        await components.recurring.add_rule(kid, "Comics", 10, "Shopping", date(2024, 1, 1), today=today)

        assert [r.name for r in await components.recurring.list_rules(dad)] == ["Comics", "Rent"]
        assert [r.name for r in await components.recurring.list_rules(kid)] == ["Comics"]

    async def test_update_and_delete(self, components, dad):
        """Test editing the amount and deleting a rule."""
        added = await components.recurring.add_rule(
            dad, "Rent", 100, "Utilities", date(2024, 1, 1), today=date(2023, 1, 1)
        )
        updated = await components.recurring.update_rule(dad, added.id, {"amount": "250"})
        assert updated.amount == 250
        assert await components.recurring.delete_rule(dad, added.id) is True
        assert await components.recurring.list_rules(dad) == []
