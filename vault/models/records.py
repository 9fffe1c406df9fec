"""
Record Models for Vault

These models describe the documents kept in the remote record store:
expenses, incomes, categories, split expenses and everything around them.

DESIGN DECISION: Money is always Decimal, never float.
Identifiers are native UUIDs once a document has passed the storage adapter,
whatever encoding the stored document used.

DESIGN DECISION: The models the engines consume (Transaction, Income,
SplitExpense, SplitParticipant) are lenient about amount sign, finiteness and
missing timestamps. A bad row must reach the engines so it can be reported
as a diagnostic, rather than failing the whole dashboard load.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ParticipantStatus(str, Enum):
    """
    Payment status of one participant's share in a split expense.

    Lifecycle:
        PENDING -> ACCEPTED | DECLINED | PAID
        ACCEPTED -> PAID
        PAID and DECLINED are terminal.
    """
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    DECLINED = "Declined"
    PAID = "Paid"

    @property
    def is_terminal(self) -> bool:
        return self in (ParticipantStatus.PAID, ParticipantStatus.DECLINED)

    @property
    def is_outstanding(self) -> bool:
        """Shares still owed: pending or accepted but not yet paid."""
        return self in (ParticipantStatus.PENDING, ParticipantStatus.ACCEPTED)

    def can_transition_to(self, target: "ParticipantStatus") -> bool:
        return target in _PARTICIPANT_TRANSITIONS[self]


_PARTICIPANT_TRANSITIONS = {
    ParticipantStatus.PENDING: frozenset({
        ParticipantStatus.ACCEPTED,
        ParticipantStatus.DECLINED,
        ParticipantStatus.PAID,
    }),
    ParticipantStatus.ACCEPTED: frozenset({ParticipantStatus.PAID}),
    ParticipantStatus.DECLINED: frozenset(),
    ParticipantStatus.PAID: frozenset(),
}


class FriendshipStatus(str, Enum):
    """Status of a friendship between two users."""
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    BLOCKED = "Blocked"
    DECLINED = "Declined"
    REMOVED = "Removed"


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A single expense.

    Variable and fixed (recurring) expenses share this model and are told
    apart by `is_fixed`. Fixed expenses live in their own collection and
    usually carry a due date.
    """
    model_config = ConfigDict(str_strip_whitespace=True, allow_inf_nan=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    user_id: UUID = Field(
        ...,
        description="Owner of the expense"
    )
    category_id: UUID = Field(
        ...,
        description="Category the expense is filed under"
    )
    amount: Decimal = Field(
        ...,
        description="Amount spent"
    )
    occurred_at: Optional[datetime] = Field(
        default=None,
        description="When the expense happened"
    )
    is_fixed: bool = Field(
        default=False,
        description="Fixed/recurring expense rather than a variable one"
    )
    title: str = Field(
        default="",
        max_length=200,
    )
    vendor: Optional[str] = Field(
        default=None,
        max_length=200,
    )
    due_date: Optional[date] = None


class Income(BaseModel):
    """A single income entry."""
    model_config = ConfigDict(str_strip_whitespace=True, allow_inf_nan=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    amount: Decimal = Field(
        ...,
        description="Amount received"
    )
    occurred_at: Optional[datetime] = Field(
        default=None,
        description="When the income was received"
    )
    source: str = Field(default="", max_length=200)
    description: str = Field(default="", max_length=500)


class Category(BaseModel):
    """
    Expense category.

    Categories are shared across users and only used for labeling and
    grouping. A category flagged as a fixed-expense category turns every
    expense filed under it into a fixed expense for dashboard purposes.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    is_fixed_expense_category: bool = Field(
        default=False,
        description="Expenses in this category are fixed costs"
    )


# =============================================================================
# SPLIT EXPENSES
# =============================================================================

class SplitExpense(BaseModel):
    """
    One shared cost event.

    The creator paid the full amount up front; every participant row
    records what someone owes back.
    """
    model_config = ConfigDict(str_strip_whitespace=True, allow_inf_nan=True)

    id: UUID = Field(default_factory=uuid4)
    total_amount: Decimal = Field(
        ...,
        description="Full amount of the shared cost"
    )
    creator_id: UUID = Field(
        ...,
        description="User who created (and paid for) the split"
    )
    payer_id: Optional[UUID] = Field(
        default=None,
        description="User who paid, when different from the creator"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    description: str = Field(default="", max_length=500)

    @model_validator(mode='after')
    def default_payer(self) -> 'SplitExpense':
        if self.payer_id is None:
            self.payer_id = self.creator_id
        return self


class SplitParticipant(BaseModel):
    """One person's share of a split expense."""
    model_config = ConfigDict(allow_inf_nan=True)

    id: UUID = Field(default_factory=uuid4)
    split_expense_id: UUID = Field(
        ...,
        description="Split expense this share belongs to"
    )
    user_id: UUID = Field(
        ...,
        description="User who owes this share"
    )
    amount_due: Decimal = Field(
        ...,
        description="Amount this participant owes"
    )
    status: ParticipantStatus = Field(
        default=ParticipantStatus.PENDING,
        description="Payment status of the share"
    )


# =============================================================================
# USERS, FRIENDS, GOALS
# =============================================================================

class User(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    email: str = Field(..., min_length=3, max_length=320)
    full_name: str = Field(default="", max_length=200)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Friendship(BaseModel):
    """
    A friendship between two users.

    The relation is symmetric: (user1, user2) and (user2, user1) describe
    the same friendship. `action_user_id` is whoever last changed it.
    """

    id: UUID = Field(default_factory=uuid4)
    user1_id: UUID
    user2_id: UUID
    status: FriendshipStatus = FriendshipStatus.PENDING
    action_user_id: UUID

    @model_validator(mode='after')
    def validate_distinct_users(self) -> 'Friendship':
        if self.user1_id == self.user2_id:
            raise ValueError("A user cannot befriend themselves")
        return self

    @property
    def pair(self) -> frozenset:
        return frozenset((self.user1_id, self.user2_id))

    def other_user(self, user_id: UUID) -> UUID:
        """Return the friend on the other side of the relation."""
        if user_id == self.user1_id:
            return self.user2_id
        if user_id == self.user2_id:
            return self.user1_id
        raise ValueError(f"User {user_id} is not part of friendship {self.id}")


class SavingsGoal(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    target_date: Optional[date] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def progress(self) -> Decimal:
        """Fraction of the target reached, capped at 1."""
        return min(self.current_amount / self.target_amount, Decimal("1"))

    @property
    def remaining(self) -> Decimal:
        return max(self.target_amount - self.current_amount, Decimal("0"))


class Budget(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    category_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0)
    start_date: date
    end_date: date

    @model_validator(mode='after')
    def validate_dates(self) -> 'Budget':
        if self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self

    def is_active_on(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class OutstandingPayment(BaseModel):
    """
    A large bill paid off in instalments, e.g. tuition or a repair.

    Fully paid once `paid_amount` reaches `total_amount`.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=200)
    total_amount: Decimal = Field(..., ge=0)
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0)
    due_date: Optional[date] = None
    category: str = Field(default="", max_length=200)
    notes: str = Field(default="", max_length=500)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_paid(self) -> bool:
        return self.paid_amount >= self.total_amount

    @property
    def remaining_amount(self) -> Decimal:
        return max(self.total_amount - self.paid_amount, Decimal("0"))

    @property
    def percentage_completed(self) -> Decimal:
        """Paid share of the total in percent, capped at 100."""
        if self.total_amount <= 0:
            return Decimal("0")
        return min(self.paid_amount / self.total_amount * 100, Decimal("100"))

    def is_overdue_on(self, day: date) -> bool:
        return not self.is_paid and self.due_date is not None and self.due_date < day

    def is_due_within(self, day: date, days: int) -> bool:
        """Unpaid and due after `day`, at most `days` days later."""
        if self.is_paid or self.due_date is None:
            return False
        return day < self.due_date <= day + timedelta(days=days)


class Vendor(BaseModel):
    """A merchant the user buys from."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    category_id: Optional[UUID] = None
    usage_count: int = Field(default=0, ge=0)
