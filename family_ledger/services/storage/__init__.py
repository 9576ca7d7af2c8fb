"""
Storage Services Package

Provides the abstract document store interface and its implementations.
The in-memory store backs tests and local runs; Google Sheets is the
hosted backend. Business logic only sees ``DocumentStore``.
"""

from family_ledger.services.storage.interface import (
    AuditStorageInterface,
    Document,
    DocumentNotFoundError,
    DocumentStore,
    PreconditionFailedError,
    StorageConnectionError,
    StorageError,
    WriteBatch,
)
from family_ledger.services.storage.memory import InMemoryDocumentStore
from family_ledger.services.storage.document_audit import DocumentAuditStorage
from family_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "Document",
    "DocumentStore",
    "WriteBatch",
    # Exceptions
    "DocumentNotFoundError",
    "PreconditionFailedError",
    "StorageConnectionError",
    "StorageError",
    # Implementations
    "DocumentAuditStorage",
    "InMemoryDocumentStore",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
]
