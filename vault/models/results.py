"""
Computation Result Models

Everything the aggregation and settlement engines hand back to callers.

DESIGN DECISION: Data-quality problems never raise. They travel alongside
the numbers as Diagnostics, so a dashboard can show partial results with a
muted warning instead of a blocking error screen.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


ZERO = Decimal("0")


# =============================================================================
# DIAGNOSTICS
# =============================================================================

class DiagnosticKind(str, Enum):
    """Kinds of non-fatal data-quality issues."""
    MALFORMED_RECORD = "malformed_record"
    PARTICIPANT_WITHOUT_EXPENSE = "participant_without_expense"


class DiagnosticIssue(BaseModel):
    """A single skipped record and why it was skipped."""
    model_config = ConfigDict(frozen=True)

    kind: DiagnosticKind
    record_type: str = Field(
        ...,
        description="Type of record (e.g., 'transaction', 'split_participant')"
    )
    record_id: Optional[UUID] = None
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


class Diagnostics(BaseModel):
    """Collection of non-fatal issues found during a computation."""

    issues: list[DiagnosticIssue] = Field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.issues)

    @property
    def malformed_count(self) -> int:
        return self._count(DiagnosticKind.MALFORMED_RECORD)

    @property
    def orphaned_count(self) -> int:
        return self._count(DiagnosticKind.PARTICIPANT_WITHOUT_EXPENSE)

    @property
    def is_clean(self) -> bool:
        return not self.issues

    def _count(self, kind: DiagnosticKind) -> int:
        return sum(1 for issue in self.issues if issue.kind == kind)

    def merged(self, *others: "Diagnostics") -> "Diagnostics":
        """
        Return a new Diagnostics holding this one's issues plus others'.

        Records reported by several computations appear once.
        """
        seen = set()
        issues = []
        for diagnostics in (self, *others):
            for issue in diagnostics.issues:
                if issue in seen:
                    continue
                seen.add(issue)
                issues.append(issue)
        return Diagnostics(issues=issues)


# =============================================================================
# AGGREGATION RESULTS
# =============================================================================

class PeriodKind(str, Enum):
    MONTH = "month"
    YEAR = "year"


class PeriodTotals(BaseModel):
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_savings: Decimal = ZERO
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


class CategoryBreakdown(BaseModel):
    """Summed expense amount per category id."""

    totals: dict[UUID, Decimal] = Field(default_factory=dict)
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)

    @property
    def grand_total(self) -> Decimal:
        return sum(self.totals.values(), ZERO)


class PeriodDelta(BaseModel):
    absolute_delta: Decimal
    percent_delta: Decimal


class FixedVariableSplit(BaseModel):
    fixed: Decimal = ZERO
    variable: Decimal = ZERO
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)

    @property
    def total(self) -> Decimal:
        return self.fixed + self.variable


class PeriodSummary(BaseModel):
    """One bar of the analytics chart."""

    label: str = Field(
        ...,
        description="Display label, e.g. 'Jan 2024' or '2024'"
    )
    period_start: datetime
    period_end: datetime
    income: Decimal = ZERO
    variable_expenses: Decimal = ZERO
    fixed_expenses: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_savings: Decimal = ZERO


class PeriodSeries(BaseModel):
    """Consecutive period summaries, oldest first."""

    period_kind: PeriodKind
    periods: list[PeriodSummary] = Field(default_factory=list)
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


class MonthlyOverview(BaseModel):
    """
    Dashboard summary of a calendar month against the month before it.

    `total_expenses` of both months already includes fixed expenses.
    """

    current: PeriodTotals
    previous: PeriodTotals
    current_split: FixedVariableSplit
    previous_split: FixedVariableSplit
    spending_delta: PeriodDelta
    income_delta: PeriodDelta
    savings_delta: PeriodDelta
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


# =============================================================================
# SETTLEMENT RESULTS
# =============================================================================

class SettlementTotal(BaseModel):
    amount: Decimal = ZERO
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


class SettlementSummary(BaseModel):
    """
    What a user owes others and what others owe them.

    Positive `net_balance` means the user is owed money overall.
    """

    owed_by_user: Decimal = ZERO
    owed_to_user: Decimal = ZERO
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)

    @property
    def net_balance(self) -> Decimal:
        return self.owed_to_user - self.owed_by_user


class ShareAllocation(BaseModel):
    """One participant's computed share of an evenly split expense."""
    model_config = ConfigDict(frozen=True)

    user_id: UUID
    amount_due: Decimal
