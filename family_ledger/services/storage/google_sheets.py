"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Family members can view the raw ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

Every collection lives in its own worksheet with the columns
``id | data_json | updated_at``. A document is one row; its fields are
JSON-serialized into ``data_json``.

TRADEOFFS:
- No native transactions. ``commit`` checks every precondition first, then
  applies writes one by one; if a write fails, the documents already
  written are restored from their snapshots (compensating rollback).
- No server-side queries (we filter in Python).
- ``increment`` is read-modify-write, guarded only by an in-process lock.
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional
from uuid import uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from family_ledger.config import GoogleSheetsSettings, get_settings
from family_ledger.models.audit import AuditEvent
from family_ledger.models.ledger import utc_now
from family_ledger.services.storage.interface import (
    AuditStorageInterface,
    Document,
    DocumentNotFoundError,
    DocumentStore,
    StorageConnectionError,
    StorageError,
    WriteBatch,
    apply_write,
    check_precondition,
)

DOCUMENT_COLUMNS = ["id", "data_json", "updated_at"]

# Column mappings for the audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "family_id",
    "entity_type",
    "entity_id",
    "actor_profile_id",
    "description",
    "details_json",
    "error_message",
]

_api_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def sheet_title(collection: str) -> str:
    """Worksheet title for a collection path ('/' is not allowed in titles)."""
    return collection.replace("/", ".")[:100]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._sheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @_api_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with a header row."""
        if title in self._sheets:
            return self._sheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        self._sheets[title] = sheet
        return sheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        return self.get_sheet(sheet_title(collection), DOCUMENT_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsDocumentStore(DocumentStore):
    """
    Google Sheets implementation of the document store.

    gspread is synchronous; calls run inline like the rest of the app's
    Sheets access. Writes are serialized by an asyncio.Lock.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._lock = asyncio.Lock()

    @property
    def client(self) -> GoogleSheetsClient:
        return self._client

    # -------------------------------------------------------------------------
    # Row helpers (the only places that hit the network)
    # -------------------------------------------------------------------------

    @_api_retry
    def _fetch_rows(self, collection: str) -> list[list[str]]:
        sheet = self._client.get_collection_sheet(collection)
        return sheet.get_all_values()[1:]  # Skip header

    @_api_retry
    def _append_row(self, collection: str, row: list[str]) -> None:
        sheet = self._client.get_collection_sheet(collection)
        sheet.append_row(row, value_input_option="RAW")

    @_api_retry
    def _update_row(self, collection: str, row_number: int, row: list[str]) -> None:
        sheet = self._client.get_collection_sheet(collection)
        sheet.update(
            values=[row],
            range_name=f"A{row_number}:C{row_number}",
            value_input_option="RAW",
        )

    @_api_retry
    def _delete_row(self, collection: str, row_number: int) -> None:
        sheet = self._client.get_collection_sheet(collection)
        sheet.delete_rows(row_number)

    @staticmethod
    def _doc_to_row(doc_id: str, data: Document) -> list[str]:
        return [
            doc_id,
            json.dumps({**data, "id": doc_id}, ensure_ascii=False, default=str),
            utc_now().isoformat(),
        ]

    @staticmethod
    def _row_to_doc(row: list[str]) -> Document:
        data = json.loads(row[1]) if len(row) > 1 and row[1] else {}
        data["id"] = row[0]
        return data

    def _find(self, collection: str, doc_id: str) -> tuple[Optional[int], Optional[Document]]:
        """Locate a document. Returns (sheet row number, document)."""
        for idx, row in enumerate(self._fetch_rows(collection), start=2):  # Row 1 is header
            if row and row[0] == doc_id:
                return idx, self._row_to_doc(row)
        return None, None

    def _write(self, collection: str, doc_id: str, doc: Optional[Document]) -> None:
        """Upsert or remove one document."""
        row_number, _ = self._find(collection, doc_id)
        if doc is None:
            if row_number is not None:
                self._delete_row(collection, row_number)
        elif row_number is None:
            self._append_row(collection, self._doc_to_row(doc_id, doc))
        else:
            self._update_row(collection, row_number, self._doc_to_row(doc_id, doc))

    # -------------------------------------------------------------------------
    # DocumentStore
    # -------------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            _, doc = self._find(collection, doc_id)
            return doc
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get {collection}/{doc_id}: {e}") from e

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        async with self._lock:
            try:
                self._write(collection, doc_id, data)
            except StorageError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to set {collection}/{doc_id}: {e}") from e

    async def update(self, collection: str, doc_id: str, data: Document) -> None:
        async with self._lock:
            try:
                row_number, current = self._find(collection, doc_id)
                if row_number is None:
                    raise DocumentNotFoundError(f"{collection}/{doc_id}")
                self._update_row(
                    collection, row_number, self._doc_to_row(doc_id, {**current, **data})
                )
            except StorageError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to update {collection}/{doc_id}: {e}") from e

    async def add(self, collection: str, data: Document) -> str:
        doc_id = data.get("id") or uuid4().hex
        await self.set(collection, doc_id, data)
        return doc_id

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            try:
                row_number, _ = self._find(collection, doc_id)
                if row_number is None:
                    return False
                self._delete_row(collection, row_number)
                return True
            except StorageError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to delete {collection}/{doc_id}: {e}") from e

    async def list(self, collection: str) -> list[Document]:
        try:
            return [
                self._row_to_doc(row)
                for row in self._fetch_rows(collection)
                if row and row[0]  # Skip empty rows
            ]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {collection}: {e}") from e

    async def increment(self, collection: str, doc_id: str, field: str, delta: int) -> None:
        async with self._lock:
            try:
                row_number, current = self._find(collection, doc_id)
                if row_number is None:
                    raise DocumentNotFoundError(f"{collection}/{doc_id}")
                current[field] = (current.get(field) or 0) + delta
                self._update_row(collection, row_number, self._doc_to_row(doc_id, current))
            except StorageError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to increment {collection}/{doc_id}: {e}") from e

    async def commit(self, batch: WriteBatch) -> None:
        async with self._lock:
            try:
                for op in batch.preconditions:
                    _, current = self._find(op.collection, op.doc_id)
                    check_precondition(op, current)

                # Compute final states and snapshots before touching the sheet
                snapshots: dict[tuple[str, str], Optional[Document]] = {}
                staged: dict[tuple[str, str], Optional[Document]] = {}
                for op in batch.writes:
                    key = (op.collection, op.doc_id)
                    if key not in staged:
                        _, current = self._find(op.collection, op.doc_id)
                        snapshots[key] = current
                        staged[key] = current
                    staged[key] = apply_write(op, staged[key])
            except StorageError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to prepare batch: {e}") from e

            written: list[tuple[str, str]] = []
            try:
                for (collection, doc_id), doc in staged.items():
                    self._write(collection, doc_id, doc)
                    written.append((collection, doc_id))
            except Exception as e:
                self._rollback(written, snapshots)
                raise StorageError(f"Batch commit failed and was rolled back: {e}") from e

    def _rollback(
        self,
        written: list[tuple[str, str]],
        snapshots: dict[tuple[str, str], Optional[Document]],
    ) -> None:
        for collection, doc_id in reversed(written):
            self._write(collection, doc_id, snapshots[(collection, doc_id)])


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _event_to_row(self, event: AuditEvent) -> list:
        """Convert an AuditEvent to a spreadsheet row."""
        return [
            event.event_id,
            event.timestamp.isoformat(),
            event.event_type.value,
            event.severity.value,
            event.family_id or "",
            event.entity_type or "",
            event.entity_id or "",
            event.actor_profile_id or "",
            event.description,
            json.dumps(event.details, default=str) if event.details else "",
            event.error_message or "",
        ]

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=safe_get(0),
            timestamp=safe_get(1),
            event_type=safe_get(2),
            severity=safe_get(3),
            family_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            actor_profile_id=safe_get(7) or None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
        )

    @_api_retry
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(self._event_to_row(event), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}") from e

    def _family_events(self, family_id: str) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        return [
            self._row_to_event(row)
            for row in sheet.get_all_values()[1:]
            if len(row) > 4 and row[4] == family_id
        ]

    async def get_events_by_entity(
        self,
        family_id: str,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._family_events(family_id)
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        family_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._family_events(family_id)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
