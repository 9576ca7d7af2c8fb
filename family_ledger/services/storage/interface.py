"""
Abstract Document Store Interface

DESIGN DECISION: The ledger talks to a generic async document store.
This allows us to:
1. Swap Google Sheets for a hosted document database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from the storage implementation

Documents are plain dicts grouped in collections addressed by a path
string such as ``families/<family_id>/transactions``. Filtering happens
client-side after a whole-collection fetch; no server-side queries are
assumed.

Multi-document changes go through ``WriteBatch``: a list of writes plus
preconditions that the store checks and applies as one unit.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from family_ledger.models.audit import AuditEvent

Document = dict[str, Any]


@dataclass
class WriteOp:
    """One write or precondition inside a batch."""

    kind: str  # set | create | update | increment | delete | require_eq | require_gte
    collection: str
    doc_id: str
    data: Optional[Document] = None
    field: Optional[str] = None
    value: Any = None


@dataclass
class WriteBatch:
    """
    Group of writes committed atomically by ``DocumentStore.commit``.

    Preconditions are checked before any write is applied. If one fails,
    nothing is written and ``PreconditionFailedError`` is raised.
    """

    ops: list[WriteOp] = field(default_factory=list)

    def set(self, collection: str, doc_id: str, data: Document) -> "WriteBatch":
        self.ops.append(WriteOp("set", collection, doc_id, data=dict(data)))
        return self

    def create(self, collection: str, doc_id: str, data: Document) -> "WriteBatch":
        """Write a new document; the batch fails if the id already exists."""
        self.ops.append(WriteOp("create", collection, doc_id, data=dict(data)))
        return self

    def update(self, collection: str, doc_id: str, data: Document) -> "WriteBatch":
        self.ops.append(WriteOp("update", collection, doc_id, data=dict(data)))
        return self

    def increment(self, collection: str, doc_id: str, field: str, delta: int) -> "WriteBatch":
        self.ops.append(WriteOp("increment", collection, doc_id, field=field, value=delta))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self.ops.append(WriteOp("delete", collection, doc_id))
        return self

    def require(self, collection: str, doc_id: str, field: str, equals: Any) -> "WriteBatch":
        """Compare-and-swap guard: ``doc[field] == equals`` at commit time."""
        self.ops.append(WriteOp("require_eq", collection, doc_id, field=field, value=equals))
        return self

    def require_at_least(
        self, collection: str, doc_id: str, field: str, minimum: int
    ) -> "WriteBatch":
        """Guard: ``doc[field] >= minimum`` at commit time."""
        self.ops.append(WriteOp("require_gte", collection, doc_id, field=field, value=minimum))
        return self

    @property
    def preconditions(self) -> list[WriteOp]:
        return [op for op in self.ops if op.kind.startswith("require")]

    @property
    def writes(self) -> list[WriteOp]:
        return [op for op in self.ops if not op.kind.startswith("require")]


def check_precondition(op: WriteOp, current: Optional[Document]) -> None:
    """
    Evaluate one precondition against the current document.

    Raises:
        DocumentNotFoundError: If the guarded document does not exist
        PreconditionFailedError: If the guard does not hold
    """
    if current is None:
        raise DocumentNotFoundError(f"{op.collection}/{op.doc_id}")

    actual = current.get(op.field)
    if op.kind == "require_eq" and actual != op.value:
        raise PreconditionFailedError(
            f"{op.collection}/{op.doc_id}: {op.field} is {actual!r}, expected {op.value!r}",
            field=op.field,
            actual=actual,
        )
    if op.kind == "require_gte" and (actual or 0) < op.value:
        raise PreconditionFailedError(
            f"{op.collection}/{op.doc_id}: {op.field} is {actual!r}, needs at least {op.value!r}",
            field=op.field,
            actual=actual,
        )


def apply_write(op: WriteOp, current: Optional[Document]) -> Optional[Document]:
    """
    Compute the new state of a document after one write.

    Returns None when the document should not exist afterwards.
    """
    if op.kind == "set":
        return {**op.data, "id": op.doc_id}
    if op.kind == "create":
        if current is not None:
            raise PreconditionFailedError(
                f"{op.collection}/{op.doc_id} already exists", field="id", actual=op.doc_id
            )
        return {**op.data, "id": op.doc_id}
    if op.kind == "update":
        if current is None:
            raise DocumentNotFoundError(f"{op.collection}/{op.doc_id}")
        return {**current, **op.data}
    if op.kind == "increment":
        if current is None:
            raise DocumentNotFoundError(f"{op.collection}/{op.doc_id}")
        return {**current, op.field: (current.get(op.field) or 0) + op.value}
    if op.kind == "delete":
        return None
    raise ValueError(f"Unknown write kind: {op.kind}")


class DocumentStore(ABC):
    """
    Abstract interface for document storage operations.

    Any storage implementation (in-memory, Google Sheets, a hosted
    document database) must implement these methods.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """
        Retrieve a document by id.

        Returns:
            The document (including its "id" key) if found, None otherwise

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        """Create or overwrite a document."""
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: Document) -> None:
        """
        Merge fields into an existing document.

        Raises:
            DocumentNotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def add(self, collection: str, data: Document) -> str:
        """
        Insert a document with a generated id.

        Returns:
            The new document id
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted
        """
        pass

    @abstractmethod
    async def list(self, collection: str) -> list[Document]:
        """Fetch every document of a collection (no server-side filtering)."""
        pass

    @abstractmethod
    async def increment(self, collection: str, doc_id: str, field: str, delta: int) -> None:
        """
        Atomically add ``delta`` to a numeric field (missing fields count as 0).

        Raises:
            DocumentNotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        """
        Check the batch preconditions and apply all of its writes as one unit.

        Raises:
            PreconditionFailedError: If a guard does not hold (nothing written)
            DocumentNotFoundError: If an update/increment targets a missing document
            StorageError: If the write fails (nothing left partially written)
        """
        pass

    async def query(
        self,
        collection: str,
        predicate: Callable[[Document], bool],
    ) -> list[Document]:
        """Whole-collection fetch followed by a client-side filter."""
        return [doc for doc in await self.list(collection) if predicate(doc)]

    def batch(self) -> WriteBatch:
        return WriteBatch()


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DocumentNotFoundError(StorageError):
    """Document not found in storage."""
    pass


class PreconditionFailedError(StorageError):
    """A batch guard did not hold; nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None, actual: Any = None):
        self.field = field
        self.actual = actual
        super().__init__(message)


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        family_id: str,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for one entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        family_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events of a family, newest first."""
        pass
