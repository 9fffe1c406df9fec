"""
Data Models Package

This package contains all Pydantic models used in Vault.
All data flowing through the system must conform to these schemas.
"""

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
from vault.models.results import (
    CategoryBreakdown,
    DiagnosticIssue,
    DiagnosticKind,
    Diagnostics,
    FixedVariableSplit,
    MonthlyOverview,
    PeriodDelta,
    PeriodKind,
    PeriodSeries,
    PeriodSummary,
    PeriodTotals,
    SettlementSummary,
    SettlementTotal,
    ShareAllocation,
)
from vault.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "Budget",
    "Category",
    "Friendship",
    "FriendshipStatus",
    "Income",
    "OutstandingPayment",
    "ParticipantStatus",
    "SavingsGoal",
    "SplitExpense",
    "SplitParticipant",
    "Transaction",
    "User",
    "Vendor",
    # Result models
    "CategoryBreakdown",
    "DiagnosticIssue",
    "DiagnosticKind",
    "Diagnostics",
    "FixedVariableSplit",
    "MonthlyOverview",
    "PeriodDelta",
    "PeriodKind",
    "PeriodSeries",
    "PeriodSummary",
    "PeriodTotals",
    "SettlementSummary",
    "SettlementTotal",
    "ShareAllocation",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
