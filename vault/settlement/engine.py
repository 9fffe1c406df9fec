"""
Settlement Engine

Works out who owes whom across split expenses.

DESIGN DECISION: Settlement is PURE. Callers pass in the split expenses a
user can see and their participant rows, grouped by expense id. Nothing is
fetched, cached or mutated here.

POLICY:
- Only Pending and Accepted shares are outstanding. Paid shares are settled
  and Declined shares were never debt, so both are left out of every total.
- The creator's own participant row never counts as money owed to them.
- A split expense without participant rows contributes nothing.
- A participant row whose expense is missing (or filed under another
  expense's key) contributes nothing and is reported as a diagnostic.
"""

from collections import defaultdict
from decimal import ROUND_DOWN, Decimal
from typing import Iterable, Mapping, Sequence
from uuid import UUID

from vault.models.records import ParticipantStatus, SplitExpense, SplitParticipant
from vault.models.results import (
    ZERO,
    DiagnosticIssue,
    DiagnosticKind,
    Diagnostics,
    SettlementSummary,
    SettlementTotal,
    ShareAllocation,
)


CENT = Decimal("0.01")

ParticipantsByExpense = Mapping[UUID, Sequence[SplitParticipant]]


def _valid_amount(amount: Decimal) -> bool:
    return isinstance(amount, Decimal) and amount.is_finite() and amount >= 0


def _resolve(
    split_expenses: Iterable[SplitExpense],
    participants_by_expense: ParticipantsByExpense,
) -> tuple[list[tuple[SplitExpense, list[SplitParticipant]]], Diagnostics]:
    """
    Pair every expense with its usable participant rows.

    Rows pointing at unknown expenses and rows with unusable amounts are
    dropped and reported.
    """
    expenses = {expense.id: expense for expense in split_expenses}
    grouped: dict[UUID, list[SplitParticipant]] = defaultdict(list)
    issues = []

    for expense_id, participants in participants_by_expense.items():
        for participant in participants:
            if (
                participant.split_expense_id not in expenses
                or participant.split_expense_id != expense_id
            ):
                issues.append(DiagnosticIssue(
                    kind=DiagnosticKind.PARTICIPANT_WITHOUT_EXPENSE,
                    record_type="split_participant",
                    record_id=participant.id,
                    message=(
                        f"references split expense {participant.split_expense_id}, "
                        "which is not among the supplied expenses"
                    ),
                ))
                continue
            if not _valid_amount(participant.amount_due):
                issues.append(DiagnosticIssue(
                    kind=DiagnosticKind.MALFORMED_RECORD,
                    record_type="split_participant",
                    record_id=participant.id,
                    message="amount due is negative or non-finite",
                ))
                continue
            grouped[expense_id].append(participant)

    pairs = [(expense, grouped.get(expense.id, [])) for expense in expenses.values()]
    return pairs, Diagnostics(issues=issues)


# =============================================================================
# TOTALS
# =============================================================================

def total_owed_by_user(
    user_id: UUID,
    split_expenses: Iterable[SplitExpense],
    participants_by_expense: ParticipantsByExpense,
) -> SettlementTotal:
    """Outstanding shares `user_id` owes on split expenses others created."""
    pairs, diagnostics = _resolve(split_expenses, participants_by_expense)

    amount = ZERO
    for expense, participants in pairs:
        if expense.creator_id == user_id:
            continue
        for participant in participants:
            if participant.user_id == user_id and participant.status.is_outstanding:
                amount += participant.amount_due

    return SettlementTotal(amount=amount, diagnostics=diagnostics)


def total_owed_to_user(
    user_id: UUID,
    split_expenses: Iterable[SplitExpense],
    participants_by_expense: ParticipantsByExpense,
) -> SettlementTotal:
    """Outstanding shares others owe on split expenses `user_id` created."""
    pairs, diagnostics = _resolve(split_expenses, participants_by_expense)

    amount = ZERO
    for expense, participants in pairs:
        if expense.creator_id != user_id:
            continue
        for participant in participants:
            if participant.user_id != user_id and participant.status.is_outstanding:
                amount += participant.amount_due

    return SettlementTotal(amount=amount, diagnostics=diagnostics)


def compute_settlement(
    user_id: UUID,
    split_expenses: Sequence[SplitExpense],
    participants_by_expense: ParticipantsByExpense,
) -> SettlementSummary:
    """Both directions of a user's settlement at once."""
    owed_by = total_owed_by_user(user_id, split_expenses, participants_by_expense)
    owed_to = total_owed_to_user(user_id, split_expenses, participants_by_expense)
    return SettlementSummary(
        owed_by_user=owed_by.amount,
        owed_to_user=owed_to.amount,
        diagnostics=owed_by.diagnostics.merged(owed_to.diagnostics),
    )


def balances_with_friend(
    user_id: UUID,
    friend_id: UUID,
    split_expenses: Sequence[SplitExpense],
    participants_by_expense: ParticipantsByExpense,
) -> SettlementSummary:
    """
    Settlement between exactly two users.

    `owed_by_user` is what the user owes on the friend's expenses and
    `owed_to_user` what the friend owes on the user's expenses.
    """
    pairs, diagnostics = _resolve(split_expenses, participants_by_expense)

    owed_by = ZERO
    owed_to = ZERO
    for expense, participants in pairs:
        if expense.creator_id == friend_id:
            debtor = user_id
        elif expense.creator_id == user_id:
            debtor = friend_id
        else:
            continue
        for participant in participants:
            if participant.user_id != debtor or not participant.status.is_outstanding:
                continue
            if debtor == user_id:
                owed_by += participant.amount_due
            else:
                owed_to += participant.amount_due

    return SettlementSummary(owed_by_user=owed_by, owed_to_user=owed_to, diagnostics=diagnostics)


# =============================================================================
# PARTICIPANT HELPERS
# =============================================================================

def unpaid_participants(
    expense_id: UUID,
    participants: Iterable[SplitParticipant],
) -> tuple[SplitParticipant, ...]:
    """Rows of `expense_id` that are not Paid (declined rows included)."""
    return tuple(
        participant for participant in participants
        if participant.split_expense_id == expense_id
        and participant.status != ParticipantStatus.PAID
    )


def group_participants(
    participants: Iterable[SplitParticipant],
) -> dict[UUID, list[SplitParticipant]]:
    """Group participant rows by the expense they reference."""
    grouped: dict[UUID, list[SplitParticipant]] = defaultdict(list)
    for participant in participants:
        grouped[participant.split_expense_id].append(participant)
    return dict(grouped)


def shares_balance(expense: SplitExpense, participants: Iterable[SplitParticipant]) -> bool:
    """True when the expense's shares add up exactly to its total."""
    shares = sum(
        (p.amount_due for p in participants if p.split_expense_id == expense.id),
        ZERO,
    )
    return shares == expense.total_amount


def split_evenly(
    total: Decimal,
    participant_ids: Sequence[UUID],
    creator_id: UUID,
) -> list[ShareAllocation]:
    """
    Divide `total` evenly between the creator and every participant.

    Shares are rounded down to the cent and the leftover cents go to the
    creator, so the shares always add up to `total` exactly.

    Raises:
        ValueError: If total is negative or non-finite
    """
    if not _valid_amount(total):
        raise ValueError(f"Cannot split a negative or non-finite total: {total}")

    user_ids = list(dict.fromkeys([creator_id, *participant_ids]))
    base = (total / Decimal(len(user_ids))).quantize(CENT, rounding=ROUND_DOWN)
    remainder = total - base * len(user_ids)

    return [
        ShareAllocation(
            user_id=user_id,
            amount_due=base + remainder if user_id == creator_id else base,
        )
        for user_id in user_ids
    ]


def allocate_participants(
    expense: SplitExpense,
    participant_ids: Sequence[UUID],
) -> list[SplitParticipant]:
    """
    Participant rows for a newly created split expense.

    The creator already paid, so their own share starts out Paid; everyone
    else starts Pending.
    """
    return [
        SplitParticipant(
            split_expense_id=expense.id,
            user_id=share.user_id,
            amount_due=share.amount_due,
            status=(
                ParticipantStatus.PAID
                if share.user_id == expense.creator_id
                else ParticipantStatus.PENDING
            ),
        )
        for share in split_evenly(expense.total_amount, participant_ids, expense.creator_id)
    ]
