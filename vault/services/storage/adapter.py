"""
Versioned Record Adapter

Converts between stored documents and typed models at the storage boundary.

Two document layouts exist in the wild:
- Version 1 (legacy mobile app): camelCase keys (`userID`, `transactionDate`,
  `splitID`...), UUIDs either as strings or native values, timestamps as
  `{seconds, nanoseconds}` maps, participant status as free text.
- Version 2 (current): snake_case keys matching the models, tagged with
  `schema_version: 2`.

DESIGN DECISION: Everything we write is version 2. Everything we read is
upgraded to version 2 before validation, so models never see legacy shapes.

DESIGN DECISION: A missing or null participant status is read as Pending.
Legacy rows predate the status field, and a share nobody has acted on is
exactly what Pending means. Status text is matched case-insensitively.
"""

from datetime import datetime, timezone
from typing import Any, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError

from vault.models.records import ParticipantStatus, SplitExpense, SplitParticipant
from vault.models.results import DiagnosticIssue, DiagnosticKind, Diagnostics
from vault.services.storage.interface import UNREADABLE_KEY, Document, FieldFilter


SCHEMA_VERSION = 2

ModelT = TypeVar("ModelT", bound=BaseModel)


# Version 1 key -> version 2 key
LEGACY_FIELD_NAMES = {
    "userID": "user_id",
    "categoryID": "category_id",
    "transactionDate": "occurred_at",
    "dueDate": "due_date",
    "categoryName": "name",
    "fixedExpense": "is_fixed_expense_category",
    "totalAmount": "total_amount",
    "creatorID": "creator_id",
    "payerID": "payer_id",
    "creationDate": "created_at",
    "expenseDescription": "description",
    "splitID": "split_expense_id",
    "amountDue": "amount_due",
    "user1ID": "user1_id",
    "user2ID": "user2_id",
    "actionUserID": "action_user_id",
    "goalName": "name",
    "targetAmount": "target_amount",
    "currentAmount": "current_amount",
    "targetDate": "target_date",
    "budgetAmount": "amount",
    "startDate": "start_date",
    "endDate": "end_date",
    "fullName": "full_name",
    "paidAmount": "paid_amount",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "vendorName": "name",
    "usageCount": "usage_count",
}

# Version 2 key -> version 1 key, for fields we filter on
LEGACY_QUERY_FIELDS = {
    new: old for old, new in LEGACY_FIELD_NAMES.items()
    if new not in {"name", "amount", "created_at"}
}


class RecordDecodeError(ValueError):
    """A stored document could not be turned into a model."""

    def __init__(self, record_type: str, record_id: Optional[str], reason: str):
        super().__init__(f"Cannot decode {record_type} {record_id or '<no id>'}: {reason}")
        self.record_type = record_type
        self.record_id = record_id
        self.reason = reason


def upgrade_document(document: Document) -> Document:
    """Return a version 2 copy of a stored document."""
    if document.get("schema_version") == SCHEMA_VERSION:
        upgraded = dict(document)
    else:
        upgraded = {}
        for key, value in document.items():
            upgraded[LEGACY_FIELD_NAMES.get(key, key)] = value

    upgraded.pop("schema_version", None)
    return {key: _normalize_value(value) for key, value in upgraded.items()}


def _normalize_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        # Firestore timestamp map
        if set(value) >= {"seconds"} and set(value) <= {"seconds", "nanoseconds"}:
            seconds = value["seconds"] + value.get("nanoseconds", 0) / 1_000_000_000
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        # Native UUID encoded as a map by some clients
        if set(value) == {"uuidString"}:
            return value["uuidString"]
    return value


def decode(model_cls: type[ModelT], document: Document, record_type: str) -> ModelT:
    """
    Turn a stored document into a model.

    Raises:
        RecordDecodeError: If the document does not fit the model
    """
    if UNREADABLE_KEY in document:
        raise RecordDecodeError(record_type, _id_str(document.get("id")), document[UNREADABLE_KEY])

    data = upgrade_document(document)

    if model_cls is SplitParticipant:
        data["status"] = _parse_participant_status(data.get("status"), record_type, data.get("id"))
    elif model_cls is SplitExpense and not data.get("creator_id") and data.get("payer_id"):
        # Oldest split expenses only recorded the payer
        data["creator_id"] = data["payer_id"]

    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"]) or "<root>"
            for error in e.errors()
        )
        raise RecordDecodeError(record_type, _id_str(data.get("id")), f"invalid fields: {fields}")


def _parse_participant_status(raw: Any, record_type: str, record_id: Any) -> ParticipantStatus:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return ParticipantStatus.PENDING
    if isinstance(raw, ParticipantStatus):
        return raw
    text = str(raw).strip().lower()
    for status in ParticipantStatus:
        if status.value.lower() == text:
            return status
    raise RecordDecodeError(record_type, _id_str(record_id), f"unknown status {raw!r}")


def _id_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _id_or_none(value: Optional[str]) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def decode_many(
    model_cls: type[ModelT],
    documents: list[Document],
    record_type: str,
) -> tuple[list[ModelT], Diagnostics]:
    """
    Decode a batch of documents, skipping the ones that don't fit.

    Returns:
        (decoded models, diagnostics for every skipped document)
    """
    records = []
    issues = []
    for document in documents:
        try:
            records.append(decode(model_cls, document, record_type))
        except RecordDecodeError as e:
            issues.append(DiagnosticIssue(
                kind=DiagnosticKind.MALFORMED_RECORD,
                record_type=record_type,
                record_id=_id_or_none(e.record_id),
                message=e.reason,
            ))
    return records, Diagnostics(issues=issues)


def encode(record: BaseModel) -> Document:
    """Turn a model into a version 2 document."""
    document = record.model_dump(mode="json")
    document["schema_version"] = SCHEMA_VERSION
    return document


def legacy_filters(filters: list[FieldFilter]) -> Optional[list[FieldFilter]]:
    """
    The same filters spelled with version 1 field names.

    Returns None when no filtered field was renamed, in which case the
    original query already covers legacy documents.
    """
    if not any(f.field in LEGACY_QUERY_FIELDS for f in filters):
        return None
    return [
        FieldFilter(field=LEGACY_QUERY_FIELDS.get(f.field, f.field), op=f.op, value=f.value)
        for f in filters
    ]
