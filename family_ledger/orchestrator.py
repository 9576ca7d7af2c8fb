"""
Main Orchestrator for Family Ledger

This module wires the components together and defines the sign-in flow:

    sign in → seed family (once) → seed categories (once)
            → materialize recurring charges → sync display settings
            → restore the last active profile

DESIGN DECISION: Every service receives its collaborators explicitly
(repository, settings, audit logger). ``create_app_components`` is the
only place that decides which store backend runs, so tests pass an
in-memory store and production reads ``LEDGER_STORE_BACKEND``.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from family_ledger.audit import AuditLogger, configure_logging
from family_ledger.budget import BudgetValidator
from family_ledger.config import LedgerSettings, get_settings
from family_ledger.errors import AccessDeniedError, InfrastructureError, NotFoundError
from family_ledger.family import FamilyService
from family_ledger.goals import GoalLedger
from family_ledger.models.ledger import Profile
from family_ledger.models.reports import RecurringRunReport
from family_ledger.recurring import RecurringProcessor
from family_ledger.reports import DashboardService
from family_ledger.repository import FamilyRepository
from family_ledger.services.preferences import (
    DisplaySettings,
    LocalPreferences,
    sync_display_settings,
)
from family_ledger.services.storage import (
    AuditStorageInterface,
    DocumentAuditStorage,
    DocumentStore,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
)
from family_ledger.session import Session
from family_ledger.transactions import TransactionService
from family_ledger.transfers import RequestService, TransferEngine

logger = structlog.get_logger(__name__)

LAST_PROFILE_KEY = "last_profile_id"


@dataclass
class AppComponents:
    """Every service of one running app, sharing a store and audit logger."""

    settings: LedgerSettings
    store: DocumentStore
    repository: FamilyRepository
    audit: AuditLogger
    preferences: LocalPreferences
    budget: BudgetValidator
    dashboards: DashboardService
    transactions: TransactionService
    transfers: TransferEngine
    requests: RequestService
    recurring: RecurringProcessor
    goals: GoalLedger
    family: FamilyService


@dataclass
class SignInResult:
    """State the app needs right after sign-in."""

    family_id: str
    created: bool
    profiles: list[Profile]
    display: DisplaySettings
    recurring: RecurringRunReport
    session: Optional[Session] = None
    warnings: list[str] = field(default_factory=list)


def create_store(settings: LedgerSettings) -> DocumentStore:
    """Build the configured document store backend."""
    if settings.store_backend == "google_sheets":
        return GoogleSheetsDocumentStore(GoogleSheetsClient())
    return InMemoryDocumentStore()


def create_audit_storage(store: DocumentStore) -> AuditStorageInterface:
    """Sheets-backed families log to the shared audit worksheet; others beside their documents."""
    if isinstance(store, GoogleSheetsDocumentStore):
        return GoogleSheetsAuditStorage(store.client)
    return DocumentAuditStorage(store)


def create_app_components(
    settings: Optional[LedgerSettings] = None,
    store: Optional[DocumentStore] = None,
    preferences: Optional[LocalPreferences] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Ledger settings (defaults to ``get_settings().ledger``)
        store: Document store (defaults to the configured backend)
        preferences: Local preferences (defaults to the configured file)

    Returns:
        AppComponents with every service wired to the same store
    """
    settings = settings or get_settings().ledger
    configure_logging(settings.debug_mode)
    store = store or create_store(settings)
    preferences = preferences or LocalPreferences(settings.resolved_preferences_path)

    repository = FamilyRepository(store)
    audit = AuditLogger(create_audit_storage(store))
    budget = BudgetValidator(repository, settings)
    transfers = TransferEngine(repository, audit)

    return AppComponents(
        settings=settings,
        store=store,
        repository=repository,
        audit=audit,
        preferences=preferences,
        budget=budget,
        dashboards=DashboardService(repository, settings),
        transactions=TransactionService(repository, budget, audit),
        transfers=transfers,
        requests=RequestService(repository, transfers, audit),
        recurring=RecurringProcessor(repository, audit),
        goals=GoalLedger(repository, audit),
        family=FamilyService(repository),
    )


class SignInFlow:
    """
    Orchestrates what happens when a family account signs in.

    Seeding and recurring materialization are idempotent, so the flow is
    safe to run on every app start and from several devices.
    """

    def __init__(self, components: AppComponents):
        self._c = components

    async def sign_in(
        self,
        family_id: str,
        owner_email: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> SignInResult:
        log = logger.bind(family_id=family_id)
        created = await self._c.family.initialize_family(family_id, owner_email)
        await self._c.family.initialize_categories(family_id)
        if created:
            log.info("family_created")

        warnings = []
        try:
            report = await self._c.recurring.check_and_process_recurring(family_id)
        except InfrastructureError as e:
            # Sign-in goes ahead; the next sign-in picks the charges up
            log.error("recurring_run_failed", error=str(e))
            await self._c.audit.log_error("recurring_run_failed", str(e), family_id=family_id)
            report = RecurringRunReport()
            warnings.append("Recurring charges could not be processed")
        warnings.extend(f"Recurring rule {rule_id} failed" for rule_id in report.failed)

        family = await self._c.repository.get_family(family_id)
        display = sync_display_settings(self._c.preferences, family, self._c.settings)
        profiles = await self._c.family.list_profiles(family_id)

        session = None
        last_id = self._c.preferences.get(LAST_PROFILE_KEY)
        found = next((p for p in profiles if p.id == last_id), None)
        if found is not None:
            log.info("profile_restored", profile_id=found.id)
            session = Session(family_id=family_id, profile=found, user_id=user_id)

        return SignInResult(
            family_id=family_id,
            created=created,
            profiles=profiles,
            display=display,
            recurring=report,
            session=session,
            warnings=warnings,
        )

    async def select_profile(
        self,
        family_id: str,
        profile_id: str,
        pin: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Session:
        """
        Switch the acting profile after checking its PIN.

        Raises:
            NotFoundError: If the profile does not exist
            AccessDeniedError: If the PIN does not match
        """
        if not await self._c.family.verify_pin(family_id, profile_id, pin or ""):
            raise AccessDeniedError("Incorrect PIN")
        profile = await self._c.repository.get_profile(family_id, profile_id)
        if profile is None:
            raise NotFoundError("profile", profile_id)
        self._c.preferences.set(LAST_PROFILE_KEY, profile.id)
        return Session(family_id=family_id, profile=profile, user_id=user_id)
