"""
Storage Services Package

Provides the abstract record store interface and concrete implementations.
Google Sheets is the remote backend; the in-memory store serves tests and
local development. The adapter translates stored documents to models.
"""

from vault.services.storage.interface import (
    Collection,
    ConnectionError,
    Document,
    DuplicateError,
    FieldFilter,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
    UNREADABLE_KEY,
)
from vault.services.storage.adapter import (
    RecordDecodeError,
    decode,
    decode_many,
    encode,
    legacy_filters,
    upgrade_document,
)
from vault.services.storage.memory import InMemoryRecordStore
from vault.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    # Interface
    "Collection",
    "Document",
    "FieldFilter",
    "RecordStoreInterface",
    "UNREADABLE_KEY",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Adapter
    "RecordDecodeError",
    "decode",
    "decode_many",
    "encode",
    "legacy_filters",
    "upgrade_document",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "InMemoryRecordStore",
]
