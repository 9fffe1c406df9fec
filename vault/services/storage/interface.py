"""
Abstract Record Store Interface

DESIGN DECISION: We define an abstract interface for the document store.
This allows us to:
1. Swap Google Sheets for Firestore or a real database later
2. Use in-memory storage for testing
3. Add caching layers transparently
4. Keep business logic decoupled from storage implementation

The interface is intentionally simple - named collections of JSON-compatible
documents keyed by UUID, plus a filtered query. Typed models are produced
by the storage adapter, not by the store.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator


Document = dict[str, Any]

# Set on a placeholder document standing in for a stored row that could not
# be read. Holds the reason; the adapter turns it into a decode error.
UNREADABLE_KEY = "_unreadable"


class Collection:
    """Names of the collections the application uses."""
    EXPENSES = "expenses"
    FIXED_EXPENSES = "fixed_expenses"
    INCOMES = "incomes"
    CATEGORIES = "categories"
    SPLIT_EXPENSES = "split_expenses"
    SPLIT_PARTICIPANTS = "split_participants"
    USERS = "users"
    FRIENDSHIPS = "friendships"
    SAVINGS_GOALS = "savings_goals"
    BUDGETS = "budgets"
    OUTSTANDING_PAYMENTS = "outstanding_payments"
    VENDORS = "vendors"
    AUDIT_EVENTS = "audit_events"

    ALL = (
        EXPENSES,
        FIXED_EXPENSES,
        INCOMES,
        CATEGORIES,
        SPLIT_EXPENSES,
        SPLIT_PARTICIPANTS,
        USERS,
        FRIENDSHIPS,
        SAVINGS_GOALS,
        BUDGETS,
        OUTSTANDING_PAYMENTS,
        VENDORS,
        AUDIT_EVENTS,
    )


_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in")


class FieldFilter(BaseModel):
    """
    A single `field op value` condition.

    Equality compares the string form of both sides, so a UUID filter
    matches documents that stored the id either as a string or natively.
    Ordering comparisons parse the stored value to the filter value's type.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    field: str
    op: str
    value: Any

    @field_validator('op')
    @classmethod
    def validate_op(cls, v: str) -> str:
        if v not in _OPERATORS:
            raise ValueError(f"Unsupported operator: {v}. Allowed: {_OPERATORS}")
        return v

    def matches(self, document: Document) -> bool:
        if self.field not in document or document[self.field] is None:
            # An absent field is unequal to everything and outside every range
            return self.op == "!="

        stored = document[self.field]

        if self.op == "==":
            return _as_key(stored) == _as_key(self.value)
        if self.op == "!=":
            return _as_key(stored) != _as_key(self.value)
        if self.op == "in":
            return _as_key(stored) in {_as_key(v) for v in self.value}

        left = _coerce_like(stored, self.value)
        if left is None:
            return False
        try:
            if self.op == "<":
                return left < self.value
            if self.op == "<=":
                return left <= self.value
            if self.op == ">":
                return left > self.value
            return left >= self.value
        except TypeError:
            # e.g. naive vs timezone-aware datetimes
            return False


def _as_key(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _coerce_like(stored: Any, reference: Any) -> Optional[Any]:
    """Parse a stored value into the type of the reference value."""
    try:
        if isinstance(reference, datetime):
            return stored if isinstance(stored, datetime) else datetime.fromisoformat(str(stored))
        if isinstance(reference, date):
            if isinstance(stored, datetime):
                return stored.date()
            return stored if isinstance(stored, date) else date.fromisoformat(str(stored))
        if isinstance(reference, (int, float, Decimal)) and not isinstance(reference, bool):
            return Decimal(str(stored))
    except (ValueError, InvalidOperation):
        return None
    return stored


class RecordStoreInterface(ABC):
    """
    Abstract interface for the document store.

    Any storage implementation (Google Sheets, Firestore, in-memory)
    must implement these methods.
    """

    @abstractmethod
    async def create(self, collection: str, record_id: UUID, document: Document) -> bool:
        """
        Store a new document.

        Returns:
            True if saved successfully

        Raises:
            DuplicateError: If a document with this id already exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get(self, collection: str, record_id: UUID) -> Optional[Document]:
        """
        Retrieve a document by its id.

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
    async def update(self, collection: str, record_id: UUID, document: Document) -> bool:
        """
        Replace an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, record_id: UUID) -> bool:
        """
        Delete a document by id.

        Returns:
            True if a document was deleted, False if none existed
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
    ) -> list[Document]:
        """
        List documents matching every filter.

        Args:
            collection: Collection name
            filters: Conditions combined with AND; None or [] returns all

        Returns:
            Matching documents, in no particular order. Unreadable rows come
            back as `UNREADABLE_KEY` placeholders whatever the filters, since
            their fields are unknown.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
