"""
Family, Profile and Category Management

Onboarding seeds a new family with a root document, three default
profiles and the default categories. Seeding is idempotent: an existing
family or a non-empty category collection is left as is.

Profile deletion removes only the profile document. Its transactions stay
in the ledger as orphans so family-wide history and totals do not change.
"""

import re
from typing import Any, Optional

import structlog

from family_ledger.errors import (
    AccessDeniedError,
    InputValidationError,
    NotFoundError,
    build_model,
    parse_amount,
)
from family_ledger.models.ledger import Category, CategoryType, Family, Profile, Role
from family_ledger.permissions import require
from family_ledger.repository import FamilyRepository
from family_ledger.session import Session

logger = structlog.get_logger(__name__)

DEFAULT_TOTAL_LIMIT = 30_000_000

DEFAULT_PROFILES = (
    {"id": "dad", "name": "Dad", "role": Role.OWNER, "limit": 20_000_000},
    {"id": "mom", "name": "Mom", "role": Role.PARTNER, "limit": 3_000_000},
    {"id": "child", "name": "Kid", "role": Role.CHILD, "limit": 500_000},
)

DEFAULT_CATEGORIES = (
    ("food", "Food", "🍔", CategoryType.EXPENSE),
    ("transport", "Transport", "🚕", CategoryType.EXPENSE),
    ("utilities", "Utilities", "💡", CategoryType.EXPENSE),
    ("entertainment", "Entertainment", "🎬", CategoryType.EXPENSE),
    ("shopping", "Shopping", "🛍️", CategoryType.EXPENSE),
    ("salary", "Salary", "💰", CategoryType.INCOME),
    ("bonus", "Bonus", "🎁", CategoryType.INCOME),
    ("investment", "Investment", "📈", CategoryType.INCOME),
)

PROFILE_FIELDS = {"name", "role", "limit", "pin", "avatar_id"}
CATEGORY_FIELDS = {"name", "icon", "type", "shared_with", "is_shared"}


def profile_id_for(name: str) -> str:
    """Profile id derived from a display name ("Big Sis" -> "bigsis")."""
    return re.sub(r"\s+", "", name).lower()


class FamilyService:
    """Family root, profile and category operations."""

    def __init__(self, repository: FamilyRepository):
        self._repository = repository

    # -------------------------------------------------------------------------
    # Onboarding
    # -------------------------------------------------------------------------

    async def initialize_family(self, family_id: str, owner_email: Optional[str] = None) -> bool:
        """
        Create the family root and default profiles.

        Returns:
            True if the family was created, False if it already existed
        """
        if await self._repository.get_family(family_id) is not None:
            return False

        logger.info("initializing_family", family_id=family_id)
        await self._repository.save_family(
            Family(id=family_id, owner_email=owner_email, total_limit=DEFAULT_TOTAL_LIMIT)
        )
        for data in DEFAULT_PROFILES:
            await self._repository.save_profile(family_id, Profile(**data))
        return True

    async def initialize_categories(self, family_id: str) -> bool:
        """Seed the default categories if the family has none yet."""
        if await self._repository.list_categories(family_id):
            return False

        logger.info("seeding_categories", family_id=family_id)
        for category_id, name, icon, category_type in DEFAULT_CATEGORIES:
            await self._repository.save_category(family_id, Category(
                id=category_id,
                name=name,
                icon=icon,
                type=category_type,
                is_shared=True,
            ))
        return True

    async def update_family_settings(
        self,
        session: Session,
        currency: Optional[str] = None,
        language: Optional[str] = None,
        total_limit: Optional[int] = None,
    ) -> Family:
        """Change family-wide display settings or budget (Owner only)."""
        require(session.role, "edit_budget")
        family = await self._repository.get_family(session.family_id)
        if family is None:
            raise NotFoundError("family", session.family_id)

        changes: dict[str, Any] = {}
        if currency is not None:
            changes["currency"] = currency
        if language is not None:
            changes["language"] = language
        if total_limit is not None:
            changes["total_limit"] = parse_amount(total_limit, field="total_limit")
        updated = build_model(Family, **{**family.model_dump(), **changes})
        if changes:
            await self._repository.update_family(session.family_id, changes)
        return updated

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    async def list_profiles(self, family_id: str) -> list[Profile]:
        return await self._repository.list_profiles(family_id)

    async def add_profile(
        self,
        session: Session,
        name: str,
        role: Role = Role.BASIC,
        limit: int = 0,
        pin: Optional[str] = None,
        avatar_id: Optional[str] = None,
    ) -> Profile:
        """
        Add a family member (Owner only).

        The id comes from the name; a clash gets a numeric suffix
        ("kid", "kid2", ...).
        """
        require(session.role, "manage_profiles")
        base_id = profile_id_for(name or "")
        if not base_id:
            raise InputValidationError("Name is required", field="name")

        taken = {p.id for p in await self._repository.list_profiles(session.family_id)}
        profile_id, suffix = base_id, 2
        while profile_id in taken:
            profile_id = f"{base_id}{suffix}"
            suffix += 1

        profile = build_model(
            Profile,
            id=profile_id,
            name=name,
            role=role,
            limit=limit,
            pin=pin,
            avatar_id=avatar_id,
        )
        await self._repository.save_profile(session.family_id, profile)
        return profile

    async def update_profile(
        self,
        session: Session,
        profile_id: str,
        changes: dict[str, Any],
    ) -> Profile:
        """
        Edit a profile.

        Members may edit their own name, PIN and avatar. Role and budget
        limit changes need the Owner.
        """
        profile = await self._repository.require_profile(session.family_id, profile_id)
        if profile_id != session.profile_id:
            require(session.role, "manage_profiles")
        if {"limit", "role"} & set(changes):
            require(session.role, "edit_budget")

        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise InputValidationError(
                f"Cannot change: {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )
        updated = build_model(Profile, **{**profile.model_dump(), **changes})
        fields = updated.model_dump(mode="json", include=set(changes))
        await self._repository.update_profile(session.family_id, profile_id, fields)
        return updated

    async def delete_profile(self, session: Session, profile_id: str) -> bool:
        """Delete a profile (Owner only). Its transactions are kept."""
        require(session.role, "manage_profiles")
        if profile_id == session.profile_id:
            raise InputValidationError("You cannot delete the active profile", field="profile_id")
        deleted = await self._repository.delete_profile(session.family_id, profile_id)
        if deleted:
            logger.info("profile_deleted", family_id=session.family_id, profile_id=profile_id)
        return deleted

    async def verify_pin(self, family_id: str, profile_id: str, pin: str) -> bool:
        """True if ``pin`` unlocks the profile; profiles without a PIN always unlock."""
        profile = await self._repository.require_profile(family_id, profile_id)
        if profile.pin is None:
            return True
        return (pin or "").strip() == profile.pin

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def add_category(
        self,
        session: Session,
        name: str,
        icon: str = "🏷️",
        category_type: CategoryType = CategoryType.EXPENSE,
        shared_with: Optional[list[str]] = None,
    ) -> Category:
        """Create a category owned by the acting profile."""
        category = build_model(
            Category,
            name=name,
            icon=icon,
            type=category_type,
            owner_id=session.profile_id,
            shared_with=shared_with,
        )
        await self._repository.save_category(session.family_id, category)
        return category

    async def _owned_category(self, session: Session, category_id: str) -> Category:
        category = await self._repository.get_category(session.family_id, category_id)
        if category is None:
            raise NotFoundError("category", category_id)
        if category.owner_id != session.profile_id and session.role is not Role.OWNER:
            raise AccessDeniedError("Only the category owner can change this category")
        return category

    async def update_category(
        self,
        session: Session,
        category_id: str,
        changes: dict[str, Any],
    ) -> Category:
        category = await self._owned_category(session, category_id)
        unknown = set(changes) - CATEGORY_FIELDS
        if unknown:
            raise InputValidationError(
                f"Cannot change: {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )
        updated = build_model(Category, **{**category.model_dump(), **changes})
        await self._repository.save_category(session.family_id, updated)
        return updated

    async def delete_category(self, session: Session, category_id: str) -> bool:
        """Delete a category. Transactions keep the category name they were saved with."""
        await self._owned_category(session, category_id)
        return await self._repository.delete_category(session.family_id, category_id)

    async def visible_categories(
        self,
        session: Session,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        """Categories the acting profile may pick, sorted by name."""
        categories = [
            c for c in await self._repository.list_categories(session.family_id)
            if c.is_visible_to(session.profile)
        ]
        if category_type is not None:
            categories = [c for c in categories if c.type is category_type]
        categories.sort(key=lambda c: c.name.lower())
        return categories
