"""
Shared fixtures for Family Ledger tests.

Every test runs against the in-memory document store; nothing touches the
network or Google Sheets.
"""

import asyncio
from datetime import date
from typing import Optional

import pytest

from family_ledger.config import LedgerSettings
from family_ledger.models.ledger import Transaction, TransactionType, TransferDirection
from family_ledger.orchestrator import AppComponents, create_app_components
from family_ledger.services.preferences import LocalPreferences
from family_ledger.services.storage import InMemoryDocumentStore, StorageError, WriteBatch
from family_ledger.session import Session

FAMILY_ID = "family-1"


class FlakyStore(InMemoryDocumentStore):
    """In-memory store that can be told to fail reads or commits, or to yield before committing."""

    def __init__(self):
        super().__init__()
        self.fail_get = False
        self.fail_commit = False
        self.yield_before_commit = False
        self.commit_attempts = 0

    async def get(self, collection, doc_id):
        if self.fail_get:
            raise StorageError("backend unavailable")
        return await super().get(collection, doc_id)

    async def commit(self, batch: WriteBatch) -> None:
        self.commit_attempts += 1
        if self.yield_before_commit:
            await asyncio.sleep(0)
        if self.fail_commit:
            raise StorageError("write quota exceeded")
        await super().commit(batch)


def make_txn(
    amount: int,
    txn_type: TransactionType = TransactionType.EXPENSE,
    category: str = "Food",
    note: str = "",
    on: date = date(2024, 3, 10),
    profile_id: str = "dad",
    direction: TransferDirection = TransferDirection.NONE,
) -> Transaction:
    return Transaction(
        profile_id=profile_id,
        amount=amount,
        type=txn_type,
        category=category,
        note=note,
        date=on,
        transfer_direction=direction,
    )


@pytest.fixture
def settings(tmp_path) -> LedgerSettings:
    return LedgerSettings(
        warning_threshold=0.7,
        critical_threshold=1.0,
        account_warning_threshold=0.8,
        store_backend="memory",
        preferences_path=str(tmp_path / "preferences.json"),
    )


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def components(settings, store, tmp_path) -> AppComponents:
    return create_app_components(
        settings=settings,
        store=store,
        preferences=LocalPreferences(tmp_path / "preferences.json"),
    )


@pytest.fixture
def repository(components):
    return components.repository


@pytest.fixture
async def family(components) -> str:
    """A family seeded with dad (Owner), mom (Partner) and child (Child)."""
    await components.family.initialize_family(FAMILY_ID, "owner@example.com")
    await components.family.initialize_categories(FAMILY_ID)
    return FAMILY_ID


async def session_for(components: AppComponents, profile_id: str, user_id: Optional[str] = None) -> Session:
    profile = await components.repository.require_profile(FAMILY_ID, profile_id)
    return Session(family_id=FAMILY_ID, profile=profile, user_id=user_id)


@pytest.fixture
async def dad(components, family) -> Session:
    return await session_for(components, "dad")


@pytest.fixture
async def mom(components, family) -> Session:
    return await session_for(components, "mom")


@pytest.fixture
async def kid(components, family) -> Session:
    return await session_for(components, "child")
