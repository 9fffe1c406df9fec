"""Split-expense settlement."""

from vault.settlement.engine import (
    ParticipantsByExpense,
    allocate_participants,
    balances_with_friend,
    compute_settlement,
    group_participants,
    shares_balance,
    split_evenly,
    total_owed_by_user,
    total_owed_to_user,
    unpaid_participants,
)

__all__ = [
    "ParticipantsByExpense",
    "allocate_participants",
    "balances_with_friend",
    "compute_settlement",
    "group_participants",
    "shares_balance",
    "split_evenly",
    "total_owed_by_user",
    "total_owed_to_user",
    "unpaid_participants",
]
