"""
In-Memory Record Store

Used by tests and local development. Documents are copied on the way in
and on the way out so callers can never mutate stored state by accident.
"""

import copy
from typing import Optional
from uuid import UUID

from vault.services.storage.interface import (
    Document,
    DuplicateError,
    FieldFilter,
    NotFoundError,
    RecordStoreInterface,
)


class InMemoryRecordStore(RecordStoreInterface):
    """Dictionary-backed implementation of the record store."""

    def __init__(self):
        self._collections: dict[str, dict[str, Document]] = {}

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    async def create(self, collection: str, record_id: UUID, document: Document) -> bool:
        docs = self._collection(collection)
        key = str(record_id)
        if key in docs:
            raise DuplicateError(f"{collection}/{key} already exists")
        docs[key] = copy.deepcopy(document)
        return True

    async def get(self, collection: str, record_id: UUID) -> Optional[Document]:
        document = self._collection(collection).get(str(record_id))
        return copy.deepcopy(document) if document is not None else None

    async def update(self, collection: str, record_id: UUID, document: Document) -> bool:
        docs = self._collection(collection)
        key = str(record_id)
        if key not in docs:
            raise NotFoundError(f"{collection}/{key} not found")
        docs[key] = copy.deepcopy(document)
        return True

    async def delete(self, collection: str, record_id: UUID) -> bool:
        return self._collection(collection).pop(str(record_id), None) is not None

    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
    ) -> list[Document]:
        filters = filters or []
        return [
            copy.deepcopy(document)
            for document in self._collection(collection).values()
            if all(f.matches(document) for f in filters)
        ]

    def count(self, collection: str) -> int:
        return len(self._collection(collection))
