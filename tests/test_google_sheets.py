"""
Tests for the Google Sheets record store.

The gspread worksheet is replaced with an in-process fake, so no
credentials or network are needed.
"""

import asyncio
import json
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from vault.models.records import Category, Income
from vault.services.records import CategoryService, IncomeService
from vault.services.storage import (
    UNREADABLE_KEY,
    Collection,
    DuplicateError,
    FieldFilter,
    GoogleSheetsRecordStore,
    NotFoundError,
)
from vault.services.storage.google_sheets import RECORD_COLUMNS


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the record store."""

    def __init__(self):
        self.rows = [list(RECORD_COLUMNS)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(cell) for cell in row])

    def update(self, range_name, values, value_input_option=None):
        idx = int(range_name.split(":")[0][1:])
        self.rows[idx - 1] = [str(cell) for cell in values[0]]

    def delete_rows(self, idx):
        del self.rows[idx - 1]


class FakeSheetsClient:
    def __init__(self):
        self.sheets = {}

    def get_collection_sheet(self, collection):
        return self.sheets.setdefault(collection, FakeWorksheet())


def make_store():
    client = FakeSheetsClient()
    return client, GoogleSheetsRecordStore(client)


class TestGoogleSheetsRecordStore:
    """Tests for GoogleSheetsRecordStore against a fake worksheet."""

    def test_create_writes_json_row(self):
        client, store = make_store()
        record_id = uuid4()
        asyncio.run(store.create("expenses", record_id, {"id": str(record_id), "amount": "5"}))

        row = client.sheets["expenses"].rows[1]
        assert row[0] == str(record_id)
        assert json.loads(row[1]) == {"id": str(record_id), "amount": "5"}

    def test_crud(self):
        async def scenario():
            _, store = make_store()
            record_id = uuid4()
            await store.create("expenses", record_id, {"amount": "5"})
            await store.update("expenses", record_id, {"amount": "7"})
            fetched = await store.get("expenses", record_id)
            deleted = await store.delete("expenses", record_id)
            missing = await store.get("expenses", record_id)
            return fetched, deleted, missing

        fetched, deleted, missing = asyncio.run(scenario())
        assert fetched == {"amount": "7"}
        assert deleted is True
        assert missing is None

    def test_duplicate_and_missing(self):
        """Test that duplicate and missing records fail without retrying."""
        async def scenario():
            _, store = make_store()
            record_id = uuid4()
            await store.create("users", record_id, {})
            with pytest.raises(DuplicateError):
                await store.create("users", record_id, {})
            with pytest.raises(NotFoundError):
                await store.update("users", uuid4(), {})
            assert await store.delete("users", uuid4()) is False

        asyncio.run(scenario())

    def test_unreadable_rows_are_reported(self):
        """Test that a row with a broken JSON cell surfaces as a malformed record."""
        me = uuid4()
        broken_id = uuid4()

        async def scenario():
            client, store = make_store()
            service = IncomeService(store)
            await service.create(Income(user_id=me, amount=Decimal("50"),
                                        occurred_at=datetime(2024, 3, 1)))
            sheet = client.get_collection_sheet(Collection.INCOMES)
            sheet.rows.append([str(broken_id), "{not json", ""])
            sheet.rows.append([])
            documents = await store.query(Collection.INCOMES, [
                FieldFilter(field="amount", op=">", value=Decimal("10")),
            ])
            return documents, await service.for_user(me)

        documents, (incomes, diagnostics) = asyncio.run(scenario())
        placeholders = [d for d in documents if UNREADABLE_KEY in d]
        assert len(documents) == 2
        assert placeholders[0]["id"] == str(broken_id)
        assert [income.amount for income in incomes] == [Decimal("50")]
        assert diagnostics.malformed_count == 1
        assert diagnostics.issues[0].record_id == broken_id

    def test_record_service_on_sheets(self):
        async def scenario():
            _, store = make_store()
            service = CategoryService(store)
            category = await service.create(Category(name="Utilities", is_fixed_expense_category=True))
            return category, await service.get(category.id)

        created, fetched = asyncio.run(scenario())
        assert fetched == created
