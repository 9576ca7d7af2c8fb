"""
Ledger Error Taxonomy

Every failure surfaced by a ledger service is one of these. The ``code``
is stable and drives the translated user message (see messages.py), so the
caller can tell "your input was invalid" apart from "the system could not
complete this" without showing raw storage errors.
"""

import re
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from family_ledger.models.ledger import TRANSFER_CATEGORIES, TRANSFER_NOTE_MARKER
from family_ledger.models.reports import BudgetCheck

ModelT = TypeVar("ModelT", bound=BaseModel)


class LedgerError(Exception):
    """Base exception for ledger operations."""

    code = "ledger_error"
    user_facing = True

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class InputValidationError(LedgerError):
    """Bad user input (non-numeric amount, empty required field). Nothing was written."""

    code = "validation"


class AccessDeniedError(LedgerError):
    """The acting profile's role lacks permission for this action."""

    code = "access_denied"


class InsufficientFundsError(LedgerError):
    """A goal withdrawal exceeds the goal balance."""

    code = "insufficient_funds"

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Requested {requested} but only {available} is available",
            field="amount",
        )


class NotFoundError(LedgerError):
    """A referenced profile, transaction, request or goal does not exist."""

    code = "not_found"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class InvalidStateError(LedgerError):
    """Transition from a terminal or unexpected state (e.g. settling twice)."""

    code = "invalid_state"


class BudgetExceededWarning(LedgerError):
    """
    Saving would push the profile to WARNING or CRITICAL budget usage.

    Raised only when the caller did not pass ``force=True``; carries the
    budget check so the caller can offer a "save anyway" path.
    """

    code = "budget_exceeded"

    def __init__(self, check: BudgetCheck):
        self.check = check
        super().__init__(check.message, field="amount")


class InfrastructureError(LedgerError):
    """The store could not complete the operation. State is unchanged."""

    code = "infrastructure"
    user_facing = False


def parse_amount(value: Any, field: str = "amount") -> int:
    """
    Coerce user input to a positive integer amount in minor units.

    Strings keep only their digits ("1.500.000 đ" -> 1500000).

    Raises:
        InputValidationError: If the value is not a positive whole amount
    """
    if isinstance(value, bool):
        raise InputValidationError("Amount must be a number", field=field)
    if isinstance(value, str):
        digits = re.sub(r"[^0-9]", "", value)
        if not digits:
            raise InputValidationError("Amount must be a number", field=field)
        value = int(digits)
    elif isinstance(value, float):
        if not value.is_integer():
            raise InputValidationError("Amount must be a whole number", field=field)
        value = int(value)
    elif not isinstance(value, int):
        raise InputValidationError("Amount must be a number", field=field)

    if value <= 0:
        raise InputValidationError("Amount must be greater than zero", field=field)
    return value


def build_model(model: Type[ModelT], **data: Any) -> ModelT:
    """Construct a model from user input, reporting the first problem as InputValidationError."""
    try:
        return model(**data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise InputValidationError(first.get("msg", "Invalid input"), field=field) from e


def reject_transfer_markers(category: str, note: Optional[str]) -> None:
    """Refuse user-entered income/expense that would read back as a transfer."""
    if category in TRANSFER_CATEGORIES:
        raise InputValidationError(f"'{category}' is reserved for transfers", field="category")
    if TRANSFER_NOTE_MARKER in (note or ""):
        raise InputValidationError(f"Notes cannot contain {TRANSFER_NOTE_MARKER}", field="note")
