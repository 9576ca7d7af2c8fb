"""Tests for permissions, error parsing and user messages."""

import pytest

from family_ledger.errors import (
    AccessDeniedError,
    BudgetExceededWarning,
    InfrastructureError,
    InputValidationError,
    InsufficientFundsError,
    build_model,
    parse_amount,
)
from family_ledger.messages import is_input_problem, user_message
from family_ledger.models.ledger import Goal, Role
from family_ledger.models.reports import BudgetCheck, BudgetStatus
from family_ledger.permissions import (
    can_edit_budget,
    can_manage_requests,
    can_view_account_dashboard,
    can_view_profile,
    require,
)


class TestPermissions:
    """Tests for role permissions."""

    def test_admin_roles(self):
        """Test Owner and Partner manage requests and see the family dashboard."""
        for role in (Role.OWNER, Role.PARTNER):
            assert can_view_account_dashboard(role)
            assert can_manage_requests(role)
        for role in (Role.BASIC, Role.CHILD):
            assert not can_view_account_dashboard(role)
            assert not can_manage_requests(role)

    def test_only_owner_edits_budget(self):
        """Test that budget limits belong to the Owner."""
        assert can_edit_budget(Role.OWNER)
        assert not can_edit_budget(Role.PARTNER)

    def test_view_profile(self):
        """Test that non-admins only see themselves."""
        assert can_view_profile(Role.PARTNER, "kid", "mom")
        assert can_view_profile(Role.CHILD, "kid", "kid")
        assert not can_view_profile(Role.CHILD, "dad", "kid")

    def test_require_raises(self):
        """Test the guard helper."""
        require(Role.OWNER, "manage_profiles")
        with pytest.raises(AccessDeniedError):
            require(Role.PARTNER, "manage_profiles")


class TestParseAmount:
    """Tests for amount parsing."""

    @pytest.mark.parametrize("raw,expected", [
        (1500, 1500),
        ("1.500.000", 1_500_000),
        ("1,500,000 đ", 1_500_000),
        (250.0, 250),
    ])
    def test_valid(self, raw, expected):
        """Test accepted amount formats."""
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["", "abc", 0, -1, 2.5, None, True, [100]])
    def test_invalid(self, raw):
        """Test rejected amounts."""
        with pytest.raises(InputValidationError):
            parse_amount(raw)

    def test_field_name_reported(self):
        """Test the failing field is carried on the error."""
        with pytest.raises(InputValidationError) as exc:
            parse_amount("x", field="target_amount")
        assert exc.value.field == "target_amount"

    def test_build_model_wraps_validation(self):
        """Test that pydantic errors become InputValidationError."""
        with pytest.raises(InputValidationError) as exc:
            build_model(Goal, owner_id="dad", name="", target_amount=10)
        assert exc.value.field == "name"


class TestUserMessages:
    """Tests for translated user messages."""

    def test_validation_detail_shown(self):
        """Test input problems keep their detail."""
        message = user_message(InputValidationError("Amount must be a number"), "en")
        assert message == "Please check your input: Amount must be a number"

    def test_infrastructure_hides_storage_text(self):
        """Test raw storage errors never reach the user."""
        error = InfrastructureError("gspread APIError 429 quota")
        for language in ("en", "vi"):
            assert "gspread" not in user_message(error, language)
        assert "Nothing was changed" in user_message(error, "en")

    def test_vietnamese(self):
        """Test the Vietnamese translation."""
        assert user_message(AccessDeniedError("no"), "vi") == "Bạn không có quyền thực hiện thao tác này."

    def test_unknown_language_falls_back(self):
        """Test an unsupported language uses English."""
        assert user_message(InsufficientFundsError(10, 5), "fr") == "Not enough money in this goal."

    def test_budget_warning_uses_check_message(self):
        """Test the budget confirmation text."""
        check = BudgetCheck(status=BudgetStatus.WARNING, message="Warning: Budget usage will be 95%")
        assert user_message(BudgetExceededWarning(check)) == "Warning: Budget usage will be 95%"

    def test_unexpected_error(self):
        """Test a non-ledger exception."""
        assert user_message(RuntimeError("boom")) == "Something went wrong. Please try again."

    def test_is_input_problem(self):
        """Test the user-fixable classification."""
        assert is_input_problem(InputValidationError("x"))
        assert is_input_problem(InsufficientFundsError(2, 1))
        assert not is_input_problem(InfrastructureError("x"))
        assert not is_input_problem(ValueError("x"))
