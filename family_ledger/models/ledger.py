"""
Core Data Models for Family Ledger

These models define the strict schemas for every document stored for a
family: profiles, transactions, categories, money requests, recurring
rules and savings goals.

All monetary amounts are integers in currency minor units. Documents are
persisted with ``model_dump(mode="json")`` and read back with
``model_validate``, so the stored shape is exactly these schemas.
"""

import datetime as dt
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utc_now() -> dt.datetime:
    """Current UTC timestamp (timezone aware)."""
    return dt.datetime.now(dt.timezone.utc)


def new_id() -> str:
    """Generate a document id."""
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Role(str, Enum):
    """
    Profile role within a family.

    Owner and Partner are administrative roles. Basic and Child profiles
    may only spend within their own budget and create requests.
    """
    OWNER = "Owner"
    PARTNER = "Partner"
    BASIC = "Basic"
    CHILD = "Child"

    @property
    def is_admin(self) -> bool:
        return self in (Role.OWNER, Role.PARTNER)

    @classmethod
    def parse(cls, value: str) -> "Role":
        """Case-insensitive lookup ("owner", " Partner ")."""
        normalized = value.strip().lower()
        for role in cls:
            if role.value.lower() == normalized:
                return role
        raise ValueError(f"Unknown role: {value}")


class TransactionType(str, Enum):
    """Transaction type as stored."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransferDirection(str, Enum):
    """Direction of an internal transfer leg, set when the leg is created."""
    GIVEN = "given"
    RECEIVED = "received"
    NONE = "none"


class CategoryType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


class RequestStatus(str, Enum):
    """
    Request lifecycle status.

    PENDING is the only non-terminal state.
    """
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


class Frequency(str, Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


# =============================================================================
# FAMILY & PROFILES
# =============================================================================

class Family(BaseModel):
    """Family root document (the tenant)."""

    id: str
    owner_email: Optional[str] = None
    total_limit: int = Field(
        default=30_000_000,
        ge=0,
        description="Family-wide monthly budget"
    )
    currency: Optional[str] = Field(default=None, pattern="^(VND|USD)$")
    language: Optional[str] = Field(default=None, pattern="^(en|vi)$")
    created_at: dt.datetime = Field(default_factory=utc_now)


class Profile(BaseModel):
    """
    One family member's identity and budget record.

    ``spent`` and ``earned`` are running counters maintained with atomic
    increments. They can drift; transactions remain the source of truth.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=50)
    role: Role = Role.BASIC
    limit: int = Field(
        default=0,
        ge=0,
        description="Monthly budget ceiling (0 = no limit)"
    )
    spent: int = 0
    earned: int = 0
    pin: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}$",
        description="Optional 4-digit profile PIN"
    )
    avatar_id: Optional[str] = None

    @field_validator('role', mode='before')
    @classmethod
    def normalize_role(cls, v):
        if isinstance(v, str):
            return Role.parse(v)
        return v

    @property
    def is_admin(self) -> bool:
        return self.role.is_admin


# =============================================================================
# TRANSACTIONS
# =============================================================================

# Conventions older clients used to mark transfers instead of structured fields
TRANSFER_CATEGORIES = ("Granted", "Present")
TRANSFER_NOTE_MARKER = "(Granted)"


def has_transfer_marker(category: str, note: Optional[str]) -> bool:
    return category in TRANSFER_CATEGORIES or TRANSFER_NOTE_MARKER in (note or "")


class Transaction(BaseModel):
    """
    A single ledger entry.

    Transfer legs carry ``transfer_direction`` and ``linked_transfer_id``.
    Older documents may lack them; the aggregator falls back to note and
    category heuristics for those.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    profile_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0, description="Amount in minor units")
    type: TransactionType = TransactionType.EXPENSE
    category: str = Field(..., min_length=1, max_length=100)
    category_icon: Optional[str] = None
    note: str = Field(default="", max_length=1000)
    date: dt.date
    created_at: dt.datetime = Field(default_factory=utc_now)

    # Structured transfer data
    transfer_direction: TransferDirection = TransferDirection.NONE
    is_transfer: bool = False
    linked_transfer_id: Optional[str] = None
    linked_request_id: Optional[str] = None

    # Origin tags
    goal_id: Optional[str] = None
    recurring_rule_id: Optional[str] = None
    period_key: Optional[str] = None

    @field_validator('type', mode='before')
    @classmethod
    def default_type(cls, v):
        # Legacy documents may store no type at all
        return v or TransactionType.EXPENSE

    @property
    def classification(self) -> str:
        """'income' or 'expense' from the owning profile's point of view."""
        if self.transfer_direction is TransferDirection.RECEIVED:
            return "income"
        if self.transfer_direction is TransferDirection.GIVEN:
            return "expense"
        if self.type is TransactionType.INCOME:
            return "income"
        return "expense"

    @property
    def is_internal_transfer(self) -> bool:
        """Money moved between profiles rather than earned or spent outside."""
        return (
            self.transfer_direction is not TransferDirection.NONE
            or self.is_transfer
            or self.type is TransactionType.TRANSFER
            or has_transfer_marker(self.category, self.note)
        )

    @property
    def counter_field(self) -> Optional[str]:
        """Profile counter this entry feeds, None for transfers of any vintage."""
        if self.is_internal_transfer:
            return None
        if self.type is TransactionType.INCOME:
            return "earned"
        return "spent"


# =============================================================================
# CATEGORIES
# =============================================================================

class Category(BaseModel):
    """
    Spending or income category.

    ``owner_id`` None marks a system category. ``shared_with`` holds
    profile ids or the literal 'ALL'; when absent, the legacy
    ``is_shared`` flag applies.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=50)
    icon: str = "🏷️"
    type: CategoryType = CategoryType.EXPENSE
    owner_id: Optional[str] = None
    shared_with: Optional[list[str]] = None
    is_shared: bool = False
    created_at: dt.datetime = Field(default_factory=utc_now)

    def is_visible_to(self, profile: Profile) -> bool:
        """Set-membership visibility check."""
        if profile.role is Role.OWNER:
            return True

        is_mine = self.owner_id == profile.id

        if self.shared_with is not None:
            return (
                is_mine
                or "ALL" in self.shared_with
                or profile.id in self.shared_with
            )

        is_system = self.owner_id is None
        return is_mine or is_system or self.is_shared


# =============================================================================
# MONEY REQUESTS
# =============================================================================

class MoneyRequest(BaseModel):
    """A profile asking an administrator for money."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    created_by_profile_id: str = Field(..., min_length=1)
    created_by_name: str = ""
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=500)
    category: str = "Allowance"
    category_icon: Optional[str] = "💰"
    status: RequestStatus = RequestStatus.PENDING

    approved_by: Optional[str] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    linked_transfer_ids: list[str] = Field(default_factory=list)

    created_at: dt.datetime = Field(default_factory=utc_now)
    resolved_at: Optional[dt.datetime] = None


# =============================================================================
# RECURRING RULES
# =============================================================================

class RecurringRule(BaseModel):
    """Template that materializes one transaction per period."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    profile_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    amount: int = Field(..., gt=0)
    type: TransactionType = TransactionType.EXPENSE
    frequency: Frequency = Frequency.MONTHLY
    start_date: dt.date
    end_date: Optional[dt.date] = Field(
        default=None,
        description="Last day a charge may fall due (None = forever)"
    )
    category: str = Field(..., min_length=1)
    category_icon: Optional[str] = None

    @model_validator(mode='after')
    def validate_rule(self) -> 'RecurringRule':
        if self.type is TransactionType.TRANSFER:
            raise ValueError("Recurring rules cannot create transfers")
        if has_transfer_marker(self.category, self.name):
            raise ValueError("Category and name cannot use the transfer markers")
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


# =============================================================================
# GOALS
# =============================================================================

class Goal(BaseModel):
    """An earmarked sub-balance funded from the main ledger."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = "🎯"
    target_amount: int = Field(..., gt=0)
    current_amount: int = Field(default=0, ge=0)
    shared_with: list[str] = Field(default_factory=list)
    created_at: dt.datetime = Field(default_factory=utc_now)

    @property
    def progress(self) -> float:
        """Fraction of the target reached (capped at 1.0)."""
        return min(1.0, self.current_amount / self.target_amount)

    def is_visible_to(self, profile: Profile) -> bool:
        return (
            self.owner_id == profile.id
            or "ALL" in self.shared_with
            or profile.id in self.shared_with
        )


class GoalWithdrawRequest(BaseModel):
    """A non-admin profile asking to take money out of a goal."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    goal_id: str
    goal_name: str = ""
    created_by_profile_id: str
    created_by_name: str = ""
    amount: int = Field(..., gt=0)
    note: str = ""
    status: RequestStatus = RequestStatus.PENDING
    resolved_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utc_now)
    resolved_at: Optional[dt.datetime] = None
