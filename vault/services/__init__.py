"""
Services package.

Record services live in `vault.services.records`. They are not re-exported
here because the audit logger they use depends on the storage package.
"""

from vault.services.storage import (
    Collection,
    ConnectionError,
    DuplicateError,
    FieldFilter,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    NotFoundError,
    RecordDecodeError,
    RecordStoreInterface,
    StorageError,
)

__all__ = [
    # Storage services
    "Collection",
    "ConnectionError",
    "DuplicateError",
    "FieldFilter",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "InMemoryRecordStore",
    "NotFoundError",
    "RecordDecodeError",
    "RecordStoreInterface",
    "StorageError",
]
