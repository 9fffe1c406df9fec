"""
Record Services

One stateless service per collection. Each service turns typed models into
documents on the way into the record store and back on the way out, so
nothing above this layer ever sees a raw document.

DESIGN DECISION: No singletons. Every service takes the record store (and
optionally an audit logger) by injection. Two services sharing a store see
the same data; nothing is cached here.

DESIGN DECISION: Bulk reads never fail on a single bad document. Documents
that can't be decoded are skipped and returned as diagnostics alongside the
records that could be decoded. Single-record reads raise instead, because
the caller asked for that exact record.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Generic, Optional, Sequence, TypeVar
from uuid import UUID

from pydantic import BaseModel

from vault.audit import AuditLogger
from vault.models.records import (
    Budget,
    Category,
    Friendship,
    FriendshipStatus,
    Income,
    OutstandingPayment,
    ParticipantStatus,
    SavingsGoal,
    SplitExpense,
    SplitParticipant,
    Transaction,
    User,
    Vendor,
)
from vault.models.results import Diagnostics
from vault.services.storage import (
    Collection,
    FieldFilter,
    NotFoundError,
    RecordStoreInterface,
    decode,
    decode_many,
    encode,
    legacy_filters,
)
from vault.settlement import allocate_participants, unpaid_participants


ModelT = TypeVar("ModelT", bound=BaseModel)


class InvalidStatusTransitionError(ValueError):
    """A participant status change the lifecycle doesn't allow."""

    def __init__(self, participant_id: UUID, current: ParticipantStatus, target: ParticipantStatus):
        super().__init__(
            f"Participant {participant_id} cannot move from {current.value} to {target.value}"
        )
        self.participant_id = participant_id
        self.current = current
        self.target = target


# =============================================================================
# GENERIC SERVICE
# =============================================================================

class RecordService(Generic[ModelT]):
    """
    CRUD for one collection of one model type.

    Subclasses set `collection`, `model` and `record_type` and add the
    domain queries their screens need.
    """

    collection: str
    model: type[ModelT]
    record_type: str

    def __init__(
        self,
        store: RecordStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit = audit_logger

    async def create(self, record: ModelT) -> ModelT:
        """
        Store a new record.

        Raises:
            DuplicateError: If a record with the same id exists
        """
        await self._store.create(self.collection, record.id, encode(record))
        if self._audit:
            await self._audit.log_record_created(self.collection, record.id)
        return record

    async def get(self, record_id: UUID) -> Optional[ModelT]:
        """
        Fetch a record by id, or None if it doesn't exist.

        Raises:
            RecordDecodeError: If the stored document is malformed
        """
        document = await self._store.get(self.collection, record_id)
        if document is None:
            return None
        return decode(self.model, document, self.record_type)

    async def update(self, record: ModelT) -> ModelT:
        """
        Replace a stored record.

        Raises:
            NotFoundError: If the record doesn't exist
        """
        await self._store.update(self.collection, record.id, encode(record))
        if self._audit:
            await self._audit.log_record_updated(self.collection, record.id)
        return record

    async def delete(self, record_id: UUID) -> bool:
        deleted = await self._store.delete(self.collection, record_id)
        if deleted and self._audit:
            await self._audit.log_record_deleted(self.collection, record_id)
        return deleted

    async def query(
        self,
        filters: Optional[list[FieldFilter]] = None,
    ) -> tuple[list[ModelT], Diagnostics]:
        """
        Records matching every filter, with diagnostics for skipped documents.

        Filters use current field names. Legacy documents spell some fields
        differently, so a second query covers them when needed.
        """
        filters = filters or []
        documents = await self._store.query(self.collection, filters)

        legacy = legacy_filters(filters)
        if legacy is not None:
            seen = {str(document.get("id")) for document in documents}
            for document in await self._store.query(self.collection, legacy):
                if str(document.get("id")) not in seen:
                    documents.append(document)

        return decode_many(self.model, documents, self.record_type)

    async def list_all(self) -> tuple[list[ModelT], Diagnostics]:
        return await self.query()


class _UserOwnedService(RecordService[ModelT]):
    """Records that belong to exactly one user."""

    async def for_user(self, user_id: UUID) -> tuple[list[ModelT], Diagnostics]:
        return await self.query([FieldFilter(field="user_id", op="==", value=user_id)])


def _in_range(occurred_at: Optional[datetime], start: datetime, end: datetime) -> bool:
    if occurred_at is None:
        return True
    try:
        return start <= occurred_at <= end
    except TypeError:
        # Naive vs aware timestamps; let the engines report it
        return True


class _DatedRecordService(_UserOwnedService[ModelT]):
    """User-owned records carrying an `occurred_at` timestamp."""

    async def in_range(
        self,
        user_id: UUID,
        start: datetime,
        end: datetime,
    ) -> tuple[list[ModelT], Diagnostics]:
        """
        A user's records in `[start, end]`.

        Undated records are kept so the engines can report them. Legacy
        timestamps come in several encodings, so the window is applied after
        decoding rather than in the store query.
        """
        records, diagnostics = await self.for_user(user_id)
        return [r for r in records if _in_range(r.occurred_at, start, end)], diagnostics


# =============================================================================
# TRANSACTIONS AND INCOME
# =============================================================================

class ExpenseService(_DatedRecordService[Transaction]):
    collection = Collection.EXPENSES
    model = Transaction
    record_type = "transaction"

    async def for_category(
        self,
        user_id: UUID,
        category_id: UUID,
    ) -> tuple[list[Transaction], Diagnostics]:
        return await self.query([
            FieldFilter(field="user_id", op="==", value=user_id),
            FieldFilter(field="category_id", op="==", value=category_id),
        ])


class FixedExpenseService(_DatedRecordService[Transaction]):
    """Recurring costs. Everything stored here is flagged as fixed."""

    collection = Collection.FIXED_EXPENSES
    model = Transaction
    record_type = "fixed_expense"

    async def create(self, record: Transaction) -> Transaction:
        if not record.is_fixed:
            record = record.model_copy(update={"is_fixed": True})
        return await super().create(record)

    async def query(
        self,
        filters: Optional[list[FieldFilter]] = None,
    ) -> tuple[list[Transaction], Diagnostics]:
        records, diagnostics = await super().query(filters)
        # Legacy fixed expenses carry no flag; the collection implies it
        return [
            r if r.is_fixed else r.model_copy(update={"is_fixed": True})
            for r in records
        ], diagnostics

    async def due_between(
        self,
        user_id: UUID,
        start: date,
        end: date,
    ) -> list[Transaction]:
        """Fixed expenses with a due date in `[start, end]`, soonest first."""
        records, _ = await self.for_user(user_id)
        due = [r for r in records if r.due_date is not None and start <= r.due_date <= end]
        due.sort(key=lambda r: r.due_date)
        return due


class IncomeService(_DatedRecordService[Income]):
    collection = Collection.INCOMES
    model = Income
    record_type = "income"


class CategoryService(RecordService[Category]):
    """Categories are shared by all users."""

    collection = Collection.CATEGORIES
    model = Category
    record_type = "category"

    async def find_by_name(self, name: str) -> Optional[Category]:
        """Case-insensitive lookup by display name."""
        categories, _ = await self.list_all()
        wanted = name.strip().lower()
        for category in categories:
            if category.name.lower() == wanted:
                return category
        return None

    async def fixed_categories(self) -> list[Category]:
        categories, _ = await self.list_all()
        return [c for c in categories if c.is_fixed_expense_category]


# =============================================================================
# SPLIT EXPENSES
# =============================================================================

class SplitParticipantService(RecordService[SplitParticipant]):
    collection = Collection.SPLIT_PARTICIPANTS
    model = SplitParticipant
    record_type = "split_participant"

    async def for_expense(self, expense_id: UUID) -> tuple[list[SplitParticipant], Diagnostics]:
        return await self.query([
            FieldFilter(field="split_expense_id", op="==", value=expense_id),
        ])

    async def for_expenses(
        self,
        expense_ids: Sequence[UUID],
    ) -> tuple[list[SplitParticipant], Diagnostics]:
        if not expense_ids:
            return [], Diagnostics()
        return await self.query([
            FieldFilter(field="split_expense_id", op="in", value=list(expense_ids)),
        ])

    async def for_user(self, user_id: UUID) -> tuple[list[SplitParticipant], Diagnostics]:
        return await self.query([FieldFilter(field="user_id", op="==", value=user_id)])

    async def unpaid_for_expense(self, expense_id: UUID) -> tuple[SplitParticipant, ...]:
        participants, _ = await self.for_expense(expense_id)
        return unpaid_participants(expense_id, participants)

    async def update_status(
        self,
        participant_id: UUID,
        status: ParticipantStatus,
    ) -> SplitParticipant:
        """
        Move a participant's share along its lifecycle.

        Setting the status a row already has is a no-op.

        Raises:
            NotFoundError: If the participant doesn't exist
            InvalidStatusTransitionError: If the lifecycle forbids the move
        """
        participant = await self.get(participant_id)
        if participant is None:
            raise NotFoundError(f"{self.collection}/{participant_id} not found")

        current = participant.status
        if current == status:
            return participant
        if not current.can_transition_to(status):
            raise InvalidStatusTransitionError(participant_id, current, status)

        updated = await self.update(participant.model_copy(update={"status": status}))
        if self._audit:
            await self._audit.log_status_changed(participant_id, current.value, status.value)
        return updated


class SplitExpenseService(RecordService[SplitExpense]):
    collection = Collection.SPLIT_EXPENSES
    model = SplitExpense
    record_type = "split_expense"

    async def created_by(self, user_id: UUID) -> tuple[list[SplitExpense], Diagnostics]:
        return await self.query([FieldFilter(field="creator_id", op="==", value=user_id)])

    async def visible_to(
        self,
        user_id: UUID,
        participants: SplitParticipantService,
    ) -> tuple[list[SplitExpense], list[SplitParticipant], Diagnostics]:
        """
        Split expenses a user created or takes part in, with all their rows.

        Returns:
            (expenses, every participant row of those expenses, diagnostics)
        """
        created, created_diag = await self.created_by(user_id)
        own_rows, own_diag = await participants.for_user(user_id)

        expenses = {expense.id: expense for expense in created}
        missing = list(dict.fromkeys(
            row.split_expense_id for row in own_rows
            if row.split_expense_id not in expenses
        ))
        diagnostics = [created_diag, own_diag]
        if missing:
            joined, joined_diag = await self.query([
                FieldFilter(field="id", op="in", value=missing),
            ])
            expenses.update((expense.id, expense) for expense in joined)
            diagnostics.append(joined_diag)

        rows, rows_diag = await participants.for_expenses(list(expenses))
        diagnostics.append(rows_diag)

        # Rows whose expense is gone are handed on so settlement reports them
        known_rows = {row.id for row in rows}
        rows.extend(row for row in own_rows if row.id not in known_rows)

        return list(expenses.values()), rows, Diagnostics().merged(*diagnostics)

    async def create_split(
        self,
        expense: SplitExpense,
        participant_ids: Sequence[UUID],
        participants: SplitParticipantService,
    ) -> list[SplitParticipant]:
        """
        Store a split expense and one evenly divided share per person.

        The creator is always included; their share starts out Paid. If a
        share can't be written, the shares already written and the expense
        are deleted before the error is re-raised, so no expense is left
        with shares that don't add up to its total.
        """
        rows = allocate_participants(expense, participant_ids)
        await self.create(expense)
        written = []
        try:
            for row in rows:
                await participants.create(row)
                written.append(row)
        except Exception:
            for row in written:
                await participants.delete(row.id)
            await self.delete(expense.id)
            raise
        return rows


# =============================================================================
# USERS, FRIENDS, GOALS, BUDGETS
# =============================================================================

class UserService(RecordService[User]):
    collection = Collection.USERS
    model = User
    record_type = "user"

    async def find_by_email(self, email: str) -> Optional[User]:
        users, _ = await self.query([
            FieldFilter(field="email", op="==", value=email.strip()),
        ])
        return users[0] if users else None


class FriendshipService(RecordService[Friendship]):
    """
    Friendships are symmetric: one relation per pair of users, whichever
    side stored it. Duplicates left behind by older clients collapse to one
    entry per pair: the last one read, where entries naming the user second
    are read after those naming them first, each in store query order.
    """

    collection = Collection.FRIENDSHIPS
    model = Friendship
    record_type = "friendship"

    async def friendships_of(self, user_id: UUID) -> list[Friendship]:
        as_first, _ = await self.query([FieldFilter(field="user1_id", op="==", value=user_id)])
        as_second, _ = await self.query([FieldFilter(field="user2_id", op="==", value=user_id)])

        by_pair: dict[frozenset, Friendship] = {}
        for friendship in as_first + as_second:
            by_pair[friendship.pair] = friendship
        return list(by_pair.values())

    async def between(self, user_id: UUID, other_id: UUID) -> Optional[Friendship]:
        for friendship in await self.friendships_of(user_id):
            if other_id in friendship.pair:
                return friendship
        return None

    async def friends_of(
        self,
        user_id: UUID,
        status: FriendshipStatus = FriendshipStatus.ACCEPTED,
    ) -> list[UUID]:
        return [
            friendship.other_user(user_id)
            for friendship in await self.friendships_of(user_id)
            if friendship.status == status
        ]

    async def request(self, user_id: UUID, friend_id: UUID) -> Friendship:
        """
        Ask `friend_id` to be friends.

        An existing relation for the pair is returned untouched instead of
        creating a second one.
        """
        existing = await self.between(user_id, friend_id)
        if existing is not None:
            return existing
        return await self.create(Friendship(
            user1_id=user_id,
            user2_id=friend_id,
            action_user_id=user_id,
        ))

    async def respond(
        self,
        friendship_id: UUID,
        user_id: UUID,
        status: FriendshipStatus,
    ) -> Friendship:
        """Record `user_id`'s answer to (or change of) a friendship."""
        friendship = await self.get(friendship_id)
        if friendship is None:
            raise NotFoundError(f"{self.collection}/{friendship_id} not found")
        friendship.other_user(user_id)
        return await self.update(friendship.model_copy(update={
            "status": status,
            "action_user_id": user_id,
        }))


class SavingsGoalService(_UserOwnedService[SavingsGoal]):
    collection = Collection.SAVINGS_GOALS
    model = SavingsGoal
    record_type = "savings_goal"

    async def contribute(self, goal_id: UUID, amount: Decimal) -> SavingsGoal:
        if amount <= 0:
            raise ValueError(f"Contribution must be positive, got {amount}")
        goal = await self.get(goal_id)
        if goal is None:
            raise NotFoundError(f"{self.collection}/{goal_id} not found")
        return await self.update(goal.model_copy(update={
            "current_amount": goal.current_amount + amount,
        }))


class BudgetService(_UserOwnedService[Budget]):
    collection = Collection.BUDGETS
    model = Budget
    record_type = "budget"

    async def active_for_user(self, user_id: UUID, day: date) -> list[Budget]:
        budgets, _ = await self.for_user(user_id)
        return [b for b in budgets if b.is_active_on(day)]


# =============================================================================
# OUTSTANDING PAYMENTS AND VENDORS
# =============================================================================

class OutstandingPaymentService(_UserOwnedService[OutstandingPayment]):
    """Bills paid off in instalments, tracked until fully paid."""

    collection = Collection.OUTSTANDING_PAYMENTS
    model = OutstandingPayment
    record_type = "outstanding_payment"

    async def open_for_user(self, user_id: UUID) -> tuple[list[OutstandingPayment], Diagnostics]:
        """A user's payments that still have something left to pay."""
        payments, diagnostics = await self.for_user(user_id)
        return [p for p in payments if not p.is_paid], diagnostics

    async def total_outstanding(self, user_id: UUID) -> tuple[Decimal, Diagnostics]:
        payments, diagnostics = await self.open_for_user(user_id)
        return sum((p.remaining_amount for p in payments), Decimal("0")), diagnostics

    async def overdue(self, user_id: UUID, day: date) -> list[OutstandingPayment]:
        payments, _ = await self.open_for_user(user_id)
        return sorted(
            (p for p in payments if p.is_overdue_on(day)),
            key=lambda p: p.due_date,
        )

    async def upcoming(self, user_id: UUID, day: date, days: int = 7) -> list[OutstandingPayment]:
        """Unpaid payments falling due in the `days` days after `day`."""
        payments, _ = await self.open_for_user(user_id)
        return sorted(
            (p for p in payments if p.is_due_within(day, days)),
            key=lambda p: p.due_date,
        )

    async def update_progress(self, payment_id: UUID, paid_amount: Decimal) -> OutstandingPayment:
        """
        Set how much of a payment has been paid so far.

        Raises:
            ValueError: If `paid_amount` is negative
            NotFoundError: If the payment doesn't exist
        """
        if paid_amount < 0:
            raise ValueError(f"Paid amount cannot be negative, got {paid_amount}")
        payment = await self.get(payment_id)
        if payment is None:
            raise NotFoundError(f"{self.collection}/{payment_id} not found")
        return await self.update(payment.model_copy(update={
            "paid_amount": paid_amount,
            "updated_at": datetime.utcnow(),
        }))

    async def mark_paid(self, payment_id: UUID) -> OutstandingPayment:
        payment = await self.get(payment_id)
        if payment is None:
            raise NotFoundError(f"{self.collection}/{payment_id} not found")
        return await self.update_progress(payment_id, payment.total_amount)


class VendorService(_UserOwnedService[Vendor]):
    collection = Collection.VENDORS
    model = Vendor
    record_type = "vendor"

    async def search(self, user_id: UUID, prefix: str) -> list[Vendor]:
        """A user's vendors whose name starts with `prefix`, ignoring case."""
        prefix = prefix.strip().lower()
        vendors, _ = await self.for_user(user_id)
        return sorted(
            (v for v in vendors if v.name.lower().startswith(prefix)),
            key=lambda v: v.name.lower(),
        )

    async def frequent(self, user_id: UUID, limit: int = 5) -> list[Vendor]:
        """Most used vendors first; ties in name order."""
        vendors, _ = await self.for_user(user_id)
        vendors.sort(key=lambda v: (-v.usage_count, v.name.lower()))
        return vendors[:limit]

    async def record_use(self, vendor_id: UUID) -> Vendor:
        vendor = await self.get(vendor_id)
        if vendor is None:
            raise NotFoundError(f"{self.collection}/{vendor_id} not found")
        return await self.update(vendor.model_copy(update={
            "usage_count": vendor.usage_count + 1,
        }))
