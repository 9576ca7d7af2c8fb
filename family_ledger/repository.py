"""
Family Repository

Typed, family-scoped data access over a ``DocumentStore``.

Layout:
    families/<family_id>                 family root document
    families/<family_id>/profiles
    families/<family_id>/transactions
    families/<family_id>/categories
    families/<family_id>/requests
    families/<family_id>/recurring
    families/<family_id>/goals
    families/<family_id>/goal_requests

DESIGN DECISION: The store has no server-side queries, so every listing
is a whole-collection fetch plus a client-side filter. That strategy is
kept here, behind method signatures that an indexed store could serve
directly.

Storage failures leave this module as ``InfrastructureError`` (raw storage
text is logged, never shown). ``PreconditionFailedError`` from a batch
commit is re-raised untouched so services can map it to a domain error.
"""

from contextlib import contextmanager
from datetime import date
from typing import Iterator, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel

from family_ledger.errors import InfrastructureError, NotFoundError
from family_ledger.models.ledger import (
    Category,
    Family,
    Goal,
    GoalWithdrawRequest,
    MoneyRequest,
    Profile,
    RecurringRule,
    Transaction,
)
from family_ledger.services.storage.interface import (
    DocumentNotFoundError,
    DocumentStore,
    PreconditionFailedError,
    StorageError,
    WriteBatch,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

FAMILIES = "families"
PROFILES = "profiles"
TRANSACTIONS = "transactions"
CATEGORIES = "categories"
REQUESTS = "requests"
RECURRING = "recurring"
GOALS = "goals"
GOAL_REQUESTS = "goal_requests"


def collection_path(family_id: str, name: str) -> str:
    return f"{FAMILIES}/{family_id}/{name}"


def to_document(model: BaseModel) -> dict:
    return model.model_dump(mode="json")


@contextmanager
def translate_storage_errors(action: str) -> Iterator[None]:
    """Map storage exceptions onto the ledger error taxonomy."""
    try:
        yield
    except PreconditionFailedError:
        raise
    except DocumentNotFoundError as e:
        raise NotFoundError("document", str(e)) from e
    except StorageError as e:
        logger.error("storage_failed", action=action, error=str(e))
        raise InfrastructureError(f"Could not {action}") from e


class FamilyRepository:
    """All reads and writes of one store, scoped by family id."""

    def __init__(self, store: DocumentStore):
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    def path(self, family_id: str, name: str) -> str:
        return collection_path(family_id, name)

    # -------------------------------------------------------------------------
    # Generic helpers
    # -------------------------------------------------------------------------

    async def _get(self, model: Type[ModelT], collection: str, doc_id: str) -> Optional[ModelT]:
        with translate_storage_errors(f"read {collection}"):
            doc = await self._store.get(collection, doc_id)
        return model.model_validate(doc) if doc is not None else None

    async def _list(self, model: Type[ModelT], collection: str) -> list[ModelT]:
        with translate_storage_errors(f"list {collection}"):
            docs = await self._store.list(collection)
        return [model.model_validate(doc) for doc in docs]

    async def _set(self, collection: str, doc_id: str, model: BaseModel) -> None:
        with translate_storage_errors(f"write {collection}"):
            await self._store.set(collection, doc_id, to_document(model))

    async def _delete(self, collection: str, doc_id: str) -> bool:
        with translate_storage_errors(f"delete from {collection}"):
            return await self._store.delete(collection, doc_id)

    def batch(self) -> WriteBatch:
        return self._store.batch()

    async def commit(self, batch: WriteBatch) -> None:
        """Commit a batch. PreconditionFailedError propagates as is."""
        with translate_storage_errors("commit changes"):
            await self._store.commit(batch)

    # -------------------------------------------------------------------------
    # Family root
    # -------------------------------------------------------------------------

    async def get_family(self, family_id: str) -> Optional[Family]:
        return await self._get(Family, FAMILIES, family_id)

    async def save_family(self, family: Family) -> None:
        await self._set(FAMILIES, family.id, family)

    async def update_family(self, family_id: str, changes: dict) -> None:
        with translate_storage_errors("update family"):
            await self._store.update(FAMILIES, family_id, changes)

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    async def get_profile(self, family_id: str, profile_id: str) -> Optional[Profile]:
        return await self._get(Profile, self.path(family_id, PROFILES), profile_id)

    async def require_profile(self, family_id: str, profile_id: str) -> Profile:
        profile = await self.get_profile(family_id, profile_id)
        if profile is None:
            raise NotFoundError("profile", profile_id)
        return profile

    async def list_profiles(self, family_id: str) -> list[Profile]:
        return await self._list(Profile, self.path(family_id, PROFILES))

    async def save_profile(self, family_id: str, profile: Profile) -> None:
        await self._set(self.path(family_id, PROFILES), profile.id, profile)

    async def update_profile(self, family_id: str, profile_id: str, changes: dict) -> None:
        with translate_storage_errors("update profile"):
            await self._store.update(self.path(family_id, PROFILES), profile_id, changes)

    async def delete_profile(self, family_id: str, profile_id: str) -> bool:
        return await self._delete(self.path(family_id, PROFILES), profile_id)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def get_transaction(self, family_id: str, transaction_id: str) -> Optional[Transaction]:
        return await self._get(Transaction, self.path(family_id, TRANSACTIONS), transaction_id)

    async def list_transactions(
        self,
        family_id: str,
        profile_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[Transaction]:
        """Transactions filtered client-side, newest first."""
        transactions = await self._list(Transaction, self.path(family_id, TRANSACTIONS))
        if profile_id:
            transactions = [t for t in transactions if t.profile_id == profile_id]
        if start:
            transactions = [t for t in transactions if t.date >= start]
        if end:
            transactions = [t for t in transactions if t.date <= end]
        transactions.sort(key=lambda t: (t.date, t.created_at), reverse=True)
        return transactions

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def list_categories(self, family_id: str) -> list[Category]:
        return await self._list(Category, self.path(family_id, CATEGORIES))

    async def get_category(self, family_id: str, category_id: str) -> Optional[Category]:
        return await self._get(Category, self.path(family_id, CATEGORIES), category_id)

    async def save_category(self, family_id: str, category: Category) -> None:
        await self._set(self.path(family_id, CATEGORIES), category.id, category)

    async def delete_category(self, family_id: str, category_id: str) -> bool:
        return await self._delete(self.path(family_id, CATEGORIES), category_id)

    # -------------------------------------------------------------------------
    # Money requests
    # -------------------------------------------------------------------------

    async def get_request(self, family_id: str, request_id: str) -> Optional[MoneyRequest]:
        return await self._get(MoneyRequest, self.path(family_id, REQUESTS), request_id)

    async def list_requests(self, family_id: str) -> list[MoneyRequest]:
        return await self._list(MoneyRequest, self.path(family_id, REQUESTS))

    async def save_request(self, family_id: str, request: MoneyRequest) -> None:
        await self._set(self.path(family_id, REQUESTS), request.id, request)

    # -------------------------------------------------------------------------
    # Recurring rules
    # -------------------------------------------------------------------------

    async def get_rule(self, family_id: str, rule_id: str) -> Optional[RecurringRule]:
        return await self._get(RecurringRule, self.path(family_id, RECURRING), rule_id)

    async def list_rules(self, family_id: str) -> list[RecurringRule]:
        return await self._list(RecurringRule, self.path(family_id, RECURRING))

    async def list_rule_documents(self, family_id: str) -> list[dict]:
        """Raw rule documents, so one malformed rule cannot hide the others."""
        with translate_storage_errors("list recurring rules"):
            return await self._store.list(self.path(family_id, RECURRING))

    async def save_rule(self, family_id: str, rule: RecurringRule) -> None:
        await self._set(self.path(family_id, RECURRING), rule.id, rule)

    async def delete_rule(self, family_id: str, rule_id: str) -> bool:
        return await self._delete(self.path(family_id, RECURRING), rule_id)

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    async def get_goal(self, family_id: str, goal_id: str) -> Optional[Goal]:
        return await self._get(Goal, self.path(family_id, GOALS), goal_id)

    async def require_goal(self, family_id: str, goal_id: str) -> Goal:
        goal = await self.get_goal(family_id, goal_id)
        if goal is None:
            raise NotFoundError("goal", goal_id)
        return goal

    async def list_goals(self, family_id: str) -> list[Goal]:
        return await self._list(Goal, self.path(family_id, GOALS))

    async def save_goal(self, family_id: str, goal: Goal) -> None:
        await self._set(self.path(family_id, GOALS), goal.id, goal)

    async def update_goal(self, family_id: str, goal_id: str, changes: dict) -> None:
        with translate_storage_errors("update goal"):
            await self._store.update(self.path(family_id, GOALS), goal_id, changes)

    async def delete_goal(self, family_id: str, goal_id: str) -> bool:
        return await self._delete(self.path(family_id, GOALS), goal_id)

    async def get_goal_request(
        self, family_id: str, request_id: str
    ) -> Optional[GoalWithdrawRequest]:
        return await self._get(
            GoalWithdrawRequest, self.path(family_id, GOAL_REQUESTS), request_id
        )

    async def list_goal_requests(self, family_id: str) -> list[GoalWithdrawRequest]:
        return await self._list(GoalWithdrawRequest, self.path(family_id, GOAL_REQUESTS))

    async def save_goal_request(self, family_id: str, request: GoalWithdrawRequest) -> None:
        await self._set(self.path(family_id, GOAL_REQUESTS), request.id, request)
