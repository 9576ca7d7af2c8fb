"""Services package: document storage and local preferences."""

from family_ledger.services.preferences import (
    DisplaySettings,
    LocalPreferences,
)
from family_ledger.services.storage import (
    DocumentStore,
    InMemoryDocumentStore,
    StorageError,
)

__all__ = [
    "DisplaySettings",
    "LocalPreferences",
    "DocumentStore",
    "InMemoryDocumentStore",
    "StorageError",
]
