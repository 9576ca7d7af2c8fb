"""
In-Memory Document Store

Used for tests and local runs without Google credentials. All writes,
increments and batch commits are serialized by one asyncio.Lock, so a batch
is applied atomically with respect to every other store call.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Optional
from uuid import uuid4

from family_ledger.services.storage.interface import (
    Document,
    DocumentNotFoundError,
    DocumentStore,
    WriteBatch,
    apply_write,
    check_precondition,
)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store; documents are deep-copied in and out."""

    def __init__(self):
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = asyncio.Lock()

    def _collection(self, collection: str) -> dict[str, Document]:
        return self._collections.setdefault(collection, {})

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        async with self._lock:
            self._collection(collection)[doc_id] = {**copy.deepcopy(data), "id": doc_id}

    async def update(self, collection: str, doc_id: str, data: Document) -> None:
        async with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise DocumentNotFoundError(f"{collection}/{doc_id}")
            docs[doc_id].update(copy.deepcopy(data))

    async def add(self, collection: str, data: Document) -> str:
        doc_id = data.get("id") or uuid4().hex
        await self.set(collection, doc_id, data)
        return doc_id

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            return self._collection(collection).pop(doc_id, None) is not None

    async def list(self, collection: str) -> list[Document]:
        return [copy.deepcopy(doc) for doc in self._collection(collection).values()]

    async def increment(self, collection: str, doc_id: str, field: str, delta: int) -> None:
        async with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None:
                raise DocumentNotFoundError(f"{collection}/{doc_id}")
            doc[field] = (doc.get(field) or 0) + delta

    async def commit(self, batch: WriteBatch) -> None:
        async with self._lock:
            for op in batch.preconditions:
                check_precondition(op, self._collection(op.collection).get(op.doc_id))

            # Stage every write on a scratch view first; the live dicts are
            # only touched once the whole batch has been applied cleanly.
            staged: dict[tuple[str, str], Optional[Document]] = {}
            for op in batch.writes:
                key = (op.collection, op.doc_id)
                if key in staged:
                    current = staged[key]
                else:
                    current = copy.deepcopy(self._collection(op.collection).get(op.doc_id))
                staged[key] = apply_write(op, current)

            for (collection, doc_id), doc in staged.items():
                if doc is None:
                    self._collection(collection).pop(doc_id, None)
                else:
                    self._collection(collection)[doc_id] = copy.deepcopy(doc)
