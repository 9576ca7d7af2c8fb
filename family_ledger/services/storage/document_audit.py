"""
Audit storage on top of any DocumentStore.

Events are written to ``families/<family_id>/audit``; events with no family
(startup errors) go to the top-level ``audit`` collection.
"""

from typing import Optional

from family_ledger.models.audit import AuditEvent
from family_ledger.services.storage.interface import AuditStorageInterface, DocumentStore


def audit_collection(family_id: Optional[str]) -> str:
    if family_id:
        return f"families/{family_id}/audit"
    return "audit"


class DocumentAuditStorage(AuditStorageInterface):
    """Append-only audit log kept beside the family's documents."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def append_event(self, event: AuditEvent) -> bool:
        await self._store.set(
            audit_collection(event.family_id),
            event.event_id,
            event.model_dump(mode="json"),
        )
        return True

    async def _events(self, family_id: str) -> list[AuditEvent]:
        docs = await self._store.list(audit_collection(family_id))
        return [AuditEvent.model_validate(doc) for doc in docs]

    async def get_events_by_entity(
        self,
        family_id: str,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in await self._events(family_id)
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        family_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = await self._events(family_id)
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
