"""
Google Sheets Record Store

DESIGN DECISION: Google Sheets doubles as a small document store:
1. One worksheet per collection
2. One document per row, stored as JSON next to its id
3. No database setup required, and users can inspect their data directly

TRADEOFFS:
- Every query reads the whole worksheet and filters rows in Python
- Writes are not atomic across collections; a split and its shares are
  written one after another
- Fine for one household, not for thousands of records a month

Services only see `RecordStoreInterface`, so another document store can
replace this one without touching them.
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vault.config import GoogleSheetsSettings, get_settings
from vault.services.storage.interface import (
    ConnectionError,
    Document,
    DuplicateError,
    FieldFilter,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
    UNREADABLE_KEY,
)


logger = structlog.get_logger("vault.storage")


# Column layout shared by every collection worksheet
RECORD_COLUMNS = [
    "id",
    "document_json",
    "updated_at",
]


class GoogleSheetsClient:
    """
    Thin gspread wrapper that owns the connection.

    The spreadsheet and its worksheets are opened lazily and kept for reuse.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Authorize with the service account file from settings.

        Raises:
            ConnectionError: Missing credentials or any auth failure
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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Open the spreadsheet named by `spreadsheet_id`."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        if collection in self._worksheets:
            return self._worksheets[collection]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(collection)
        except gspread.WorksheetNotFound:
            # Collection never written before
            sheet = spreadsheet.add_worksheet(
                title=collection,
                rows=self._settings.worksheet_rows,
                cols=len(RECORD_COLUMNS),
            )
            sheet.append_row(RECORD_COLUMNS)

        self._worksheets[collection] = sheet
        return sheet


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the record store.

    Documents are JSON-serialized into a single cell. A row whose cell
    does not hold a JSON object is read back as an `UNREADABLE_KEY`
    placeholder carrying its id, so the adapter reports it as malformed.
    Rows without an id are ignored.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _document_to_row(self, record_id: UUID, document: Document) -> list:
        return [
            str(record_id),
            json.dumps(document, default=str),
            datetime.utcnow().isoformat(),
        ]

    def _row_to_document(self, row: list) -> Document:
        if len(row) < 2 or not row[1]:
            return self._unreadable(row[0], "empty document cell")
        try:
            document = json.loads(row[1])
        except json.JSONDecodeError as e:
            return self._unreadable(row[0], f"invalid JSON: {e.msg}")
        if not isinstance(document, dict):
            return self._unreadable(row[0], "document is not a JSON object")
        return document

    def _unreadable(self, record_id: str, reason: str) -> Document:
        logger.warning("unreadable_row", record_id=record_id, reason=reason)
        return {"id": record_id, UNREADABLE_KEY: reason}

    def _find_row(self, all_rows: list[list], record_id: UUID) -> Optional[int]:
        """Return the 1-based sheet row index of a record, header excluded."""
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
            if row and row[0] == str(record_id):
                return idx
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type((DuplicateError, NotFoundError)),
        reraise=True,
    )
    async def create(self, collection: str, record_id: UUID, document: Document) -> bool:
        try:
            sheet = self._client.get_collection_sheet(collection)
            if self._find_row(sheet.get_all_values(), record_id) is not None:
                raise DuplicateError(f"{collection}/{record_id} already exists")
            sheet.append_row(
                self._document_to_row(record_id, document),
                value_input_option="RAW",
            )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create {collection}/{record_id}: {e}")

    async def get(self, collection: str, record_id: UUID) -> Optional[Document]:
        try:
            sheet = self._client.get_collection_sheet(collection)
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(record_id):
                    return self._row_to_document(row)
            return None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get {collection}/{record_id}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type((DuplicateError, NotFoundError)),
        reraise=True,
    )
    async def update(self, collection: str, record_id: UUID, document: Document) -> bool:
        try:
            sheet = self._client.get_collection_sheet(collection)
            idx = self._find_row(sheet.get_all_values(), record_id)
            if idx is None:
                raise NotFoundError(f"{collection}/{record_id} not found")

            new_row = self._document_to_row(record_id, document)
            sheet.update(
                range_name=f"A{idx}:C{idx}",
                values=[new_row],
                value_input_option="RAW",
            )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection}/{record_id}: {e}")

    async def delete(self, collection: str, record_id: UUID) -> bool:
        try:
            sheet = self._client.get_collection_sheet(collection)
            idx = self._find_row(sheet.get_all_values(), record_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {collection}/{record_id}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
    ) -> list[Document]:
        filters = filters or []
        try:
            sheet = self._client.get_collection_sheet(collection)
            documents = []
            for row in sheet.get_all_values()[1:]:  # Skip header
                if not row or not row[0]:
                    continue
                document = self._row_to_document(row)
                if UNREADABLE_KEY in document or all(f.matches(document) for f in filters):
                    documents.append(document)
            return documents
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to query {collection}: {e}")
