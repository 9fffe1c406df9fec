"""
Tests for the record store layer.

Covers the in-memory store, field filters and the versioned adapter that
reads documents written by older clients. No network calls.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from vault.models.records import (
    Category,
    Friendship,
    ParticipantStatus,
    SplitExpense,
    SplitParticipant,
    Transaction,
)
from vault.models.results import DiagnosticKind
from vault.services.storage import (
    Collection,
    DuplicateError,
    FieldFilter,
    InMemoryRecordStore,
    NotFoundError,
    RecordDecodeError,
    decode,
    decode_many,
    encode,
    legacy_filters,
    upgrade_document,
)


class TestFieldFilter:
    """Tests for FieldFilter matching."""

    def test_rejects_unknown_operator(self):
        with pytest.raises(ValueError):
            FieldFilter(field="amount", op="~=", value=1)

    def test_uuid_equality_ignores_encoding(self):
        user_id = uuid4()
        f = FieldFilter(field="user_id", op="==", value=user_id)
        assert f.matches({"user_id": str(user_id)})
        assert f.matches({"user_id": user_id})
        assert not f.matches({"user_id": str(uuid4())})

    def test_absent_field_only_matches_not_equal(self):
        """Test that a missing status is unequal to Paid and equal to nothing."""
        assert FieldFilter(field="status", op="!=", value="Paid").matches({})
        assert not FieldFilter(field="status", op="==", value="Paid").matches({})
        assert FieldFilter(field="status", op="!=", value="Paid").matches({"status": None})

    def test_in_operator(self):
        ids = [uuid4(), uuid4()]
        f = FieldFilter(field="id", op="in", value=ids)
        assert f.matches({"id": str(ids[1])})
        assert not f.matches({"id": str(uuid4())})

    def test_datetime_range_parses_stored_strings(self):
        f = FieldFilter(field="occurred_at", op=">=", value=datetime(2024, 1, 1))
        assert f.matches({"occurred_at": "2024-01-01T00:00:00"})
        assert not f.matches({"occurred_at": "2023-12-31T23:59:59"})
        assert not f.matches({"occurred_at": "not a date"})

    def test_naive_vs_aware_does_not_match(self):
        f = FieldFilter(field="occurred_at", op="<", value=datetime(2024, 1, 1))
        assert not f.matches({"occurred_at": datetime(2023, 1, 1, tzinfo=timezone.utc)})

    def test_decimal_range(self):
        f = FieldFilter(field="amount", op=">", value=Decimal("10"))
        assert f.matches({"amount": "10.01"})
        assert not f.matches({"amount": "9.99"})


class TestInMemoryRecordStore:
    """Tests for InMemoryRecordStore CRUD and queries."""

    def test_crud(self):
        async def scenario():
            store = InMemoryRecordStore()
            record_id = uuid4()

            assert await store.create(Collection.EXPENSES, record_id, {"id": str(record_id), "amount": "5"})
            assert (await store.get(Collection.EXPENSES, record_id))["amount"] == "5"

            await store.update(Collection.EXPENSES, record_id, {"id": str(record_id), "amount": "6"})
            assert (await store.get(Collection.EXPENSES, record_id))["amount"] == "6"

            assert await store.delete(Collection.EXPENSES, record_id)
            assert not await store.delete(Collection.EXPENSES, record_id)
            assert await store.get(Collection.EXPENSES, record_id) is None

        asyncio.run(scenario())

    def test_duplicate_create_raises(self):
        async def scenario():
            store = InMemoryRecordStore()
            record_id = uuid4()
            await store.create(Collection.USERS, record_id, {})
            with pytest.raises(DuplicateError):
                await store.create(Collection.USERS, record_id, {})

        asyncio.run(scenario())

    def test_update_missing_raises(self):
        with pytest.raises(NotFoundError):
            asyncio.run(InMemoryRecordStore().update(Collection.USERS, uuid4(), {}))

    def test_documents_are_copied(self):
        """Test that callers can't mutate stored documents."""
        async def scenario():
            store = InMemoryRecordStore()
            record_id = uuid4()
            document = {"tags": ["a"]}
            await store.create(Collection.EXPENSES, record_id, document)
            document["tags"].append("b")

            fetched = await store.get(Collection.EXPENSES, record_id)
            fetched["tags"].append("c")
            return await store.get(Collection.EXPENSES, record_id)

        assert asyncio.run(scenario()) == {"tags": ["a"]}

    def test_query_applies_every_filter(self):
        async def scenario():
            store = InMemoryRecordStore()
            user_id = uuid4()
            for amount, owner in [("5", user_id), ("50", user_id), ("500", uuid4())]:
                record_id = uuid4()
                await store.create(Collection.EXPENSES, record_id, {
                    "id": str(record_id), "user_id": str(owner), "amount": amount,
                })
            return await store.query(Collection.EXPENSES, [
                FieldFilter(field="user_id", op="==", value=user_id),
                FieldFilter(field="amount", op=">=", value=Decimal("10")),
            ])

        results = asyncio.run(scenario())
        assert [doc["amount"] for doc in results] == ["50"]


class TestAdapter:
    """Tests for reading current and legacy documents."""

    def test_encode_then_decode(self):
        transaction = Transaction(
            user_id=uuid4(),
            category_id=uuid4(),
            amount=Decimal("12.34"),
            occurred_at=datetime(2024, 1, 5, 10, 30),
            title="Lunch",
        )
        document = encode(transaction)

        assert document["schema_version"] == 2
        assert document["amount"] == "12.34"
        assert decode(Transaction, document, "transaction") == transaction

    def test_legacy_transaction(self):
        """Test camelCase keys, native UUIDs and timestamp maps from old clients."""
        user_id = uuid4()
        category_id = uuid4()
        document = {
            "id": str(uuid4()),
            "userID": user_id,
            "categoryID": {"uuidString": str(category_id)},
            "amount": 42.5,
            "transactionDate": {"seconds": 1704067200, "nanoseconds": 0},
        }
        transaction = decode(Transaction, document, "transaction")

        assert transaction.user_id == user_id
        assert transaction.category_id == category_id
        assert transaction.amount == Decimal("42.5")
        assert transaction.occurred_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_upgrade_leaves_current_documents_alone(self):
        document = {"schema_version": 2, "user_id": "abc", "userID": "ignored"}
        assert upgrade_document(document) == {"user_id": "abc", "userID": "ignored"}

    @pytest.mark.parametrize("raw,expected", [
        (None, ParticipantStatus.PENDING),
        ("", ParticipantStatus.PENDING),
        ("paid", ParticipantStatus.PAID),
        ("PAID", ParticipantStatus.PAID),
        (" Accepted ", ParticipantStatus.ACCEPTED),
        ("Declined", ParticipantStatus.DECLINED),
    ])
    def test_participant_status_is_lenient(self, raw, expected):
        document = {
            "id": str(uuid4()),
            "splitID": str(uuid4()),
            "userID": str(uuid4()),
            "amountDue": "10",
            "status": raw,
        }
        assert decode(SplitParticipant, document, "split_participant").status == expected

    def test_missing_participant_status_is_pending(self):
        document = {
            "id": str(uuid4()),
            "splitID": str(uuid4()),
            "userID": str(uuid4()),
            "amountDue": "10",
        }
        assert decode(SplitParticipant, document, "split_participant").status == ParticipantStatus.PENDING

    def test_unknown_participant_status_is_malformed(self):
        document = {
            "id": str(uuid4()),
            "split_expense_id": str(uuid4()),
            "user_id": str(uuid4()),
            "amount_due": "10",
            "status": "Maybe",
            "schema_version": 2,
        }
        with pytest.raises(RecordDecodeError):
            decode(SplitParticipant, document, "split_participant")

    def test_legacy_split_expense_without_creator(self):
        payer = uuid4()
        document = {
            "id": str(uuid4()),
            "totalAmount": "90",
            "payerID": str(payer),
            "creationDate": {"seconds": 1704067200},
        }
        expense = decode(SplitExpense, document, "split_expense")
        assert expense.creator_id == payer
        assert expense.payer_id == payer

    def test_decode_many_skips_bad_documents(self):
        good = encode(Category(name="Groceries"))
        bad_id = uuid4()
        bad = {"id": str(bad_id), "name": "", "schema_version": 2}
        garbage = {"id": "not-a-uuid", "schema_version": 2}

        categories, diagnostics = decode_many(Category, [good, bad, garbage], "category")

        assert [c.name for c in categories] == ["Groceries"]
        assert diagnostics.malformed_count == 2
        assert diagnostics.issues[0].kind == DiagnosticKind.MALFORMED_RECORD
        assert diagnostics.issues[0].record_id == bad_id
        assert diagnostics.issues[1].record_id is None

    def test_friendship_with_same_user_is_malformed(self):
        user_id = str(uuid4())
        document = {
            "id": str(uuid4()),
            "user1ID": user_id,
            "user2ID": user_id,
            "actionUserID": user_id,
        }
        with pytest.raises(RecordDecodeError):
            decode(Friendship, document, "friendship")

    def test_legacy_filters(self):
        user_id = uuid4()
        filters = [
            FieldFilter(field="user_id", op="==", value=user_id),
            FieldFilter(field="amount", op=">", value=Decimal("1")),
        ]
        legacy = legacy_filters(filters)
        assert [f.field for f in legacy] == ["userID", "amount"]
        assert legacy_filters([FieldFilter(field="amount", op=">", value=1)]) is None
        assert isinstance(legacy[0].value, UUID)
