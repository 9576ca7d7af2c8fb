"""Tests for the budget validator."""

import pytest

from family_ledger.budget import evaluate
from family_ledger.budget.validator import usage_percent
from family_ledger.models.reports import BudgetStatus


class TestEvaluate:
    """Tests for the pure evaluate function."""

    def test_warning_at_95_percent(self):
        """Test 750k spent + 200k on a 1M limit."""
        check = evaluate(spent=750_000, limit=1_000_000, proposed_amount=200_000)
        assert check.status is BudgetStatus.WARNING
        assert check.usage_percent == 95
        assert check.message == "Warning: Budget usage will be 95%"

    def test_critical_at_101_percent(self):
        """Test 750k spent + 260k on a 1M limit."""
        check = evaluate(spent=750_000, limit=1_000_000, proposed_amount=260_000)
        assert check.status is BudgetStatus.CRITICAL
        assert check.usage_percent == 101
        assert check.message == "Critical: This exceeds the budget! (101%)"

    def test_allowed_below_warning(self):
        """Test a small expense well within the budget."""
        check = evaluate(spent=100_000, limit=1_000_000, proposed_amount=50_000)
        assert check.status is BudgetStatus.ALLOWED
        assert check.usage_percent == 15
        assert check.message == "Transaction within budget."

    def test_exact_thresholds_are_inclusive(self):
        """Test that exactly 70% warns and exactly 100% is critical."""
        assert evaluate(0, 1_000, 700).status is BudgetStatus.WARNING
        assert evaluate(0, 1_000, 699).status is BudgetStatus.ALLOWED
        assert evaluate(0, 1_000, 1_000).status is BudgetStatus.CRITICAL

    @pytest.mark.parametrize("limit", [None, 0, -5])
    def test_no_limit(self, limit):
        """Test that a missing or non-positive limit is always allowed."""
        check = evaluate(spent=10**12, limit=limit, proposed_amount=1)
        assert check.status is BudgetStatus.ALLOWED
        assert check.message == "No budget limit."
        assert check.usage_percent is None

    def test_custom_thresholds(self):
        """Test thresholds other than the defaults."""
        check = evaluate(0, 100, 50, warning_threshold=0.5, critical_threshold=0.9)
        assert check.status is BudgetStatus.WARNING
        assert evaluate(0, 100, 90, warning_threshold=0.5, critical_threshold=0.9).status is BudgetStatus.CRITICAL

    def test_usage_percent_rounds_half_up(self):
        """Test rounding of the displayed percentage."""
        assert usage_percent(1, 200) == 1      # 0.5% -> 1
        assert usage_percent(1, 3) == 33
        assert usage_percent(2, 3) == 67


class TestBudgetValidator:
    """Tests for BudgetValidator against stored profiles."""

    async def test_uses_profile_counters(self, components, family):
        """Test the validator reads spent and limit from the profile."""
        await components.repository.update_profile(
            family, "mom", {"limit": 1_000_000, "spent": 750_000}
        )
        check = await components.budget.validate(family, "mom", 200_000)
        assert check.status is BudgetStatus.WARNING
        assert check.usage_percent == 95

    async def test_missing_profile_is_allowed(self, components, family):
        """Test that an unknown profile does not block."""
        check = await components.budget.validate(family, "ghost", 1_000)
        assert check.status is BudgetStatus.ALLOWED
        assert check.message == "Profile not found."

    async def test_fails_open_on_storage_error(self, components, family, store):
        """Test that a storage failure skips validation instead of raising."""
        store.fail_get = True
        check = await components.budget.validate(family, "mom", 10**9)
        assert check.status is BudgetStatus.ALLOWED
        assert check.message == "Validation skipped."

    async def test_validation_writes_nothing(self, components, family):
        """Test that validating leaves the profile untouched."""
        before = await components.repository.require_profile(family, "child")
        await components.budget.validate(family, "child", 400_000)
        after = await components.repository.require_profile(family, "child")
        assert before == after
